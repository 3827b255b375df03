"""Entities, channel and utility models, and topology snapshots."""
