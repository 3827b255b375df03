"""Tests for the uav_load_balancing package."""
