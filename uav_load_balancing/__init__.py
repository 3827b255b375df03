"""
Game-theoretic load balancing for UAV-assisted wireless access networks

This package assigns mobile users to fixed ground stations and mobile aerial
base stations (UAVs) with one of four game-theoretic solution concepts:
Nash equilibrium (best-response dynamics on an exact potential game),
Stackelberg leader-follower, cooperative allocation with sampled Shapley
values, and a sealed-bid second-price auction.
"""

__version__ = "0.1.0"

from .config import EngineConfig
from .core.base_station import BaseStation, StationKind
from .core.channel import Channel
from .core.exceptions import ConfigurationError, InvalidGameType, LoadBalancingError, MalformedTopology
from .core.mobile_user import MobileUser
from .core.snapshot import NetworkSnapshot
from .core.topology import random_topology
from .core.utility_model import TabularUtilityModel, UtilityModel
from .optimization.engine import GameType, LoadBalancingEngine, LoadBalancingResult, balance_load

__all__ = [
    "BaseStation",
    "StationKind",
    "MobileUser",
    "Channel",
    "NetworkSnapshot",
    "UtilityModel",
    "TabularUtilityModel",
    "EngineConfig",
    "GameType",
    "LoadBalancingEngine",
    "LoadBalancingResult",
    "LoadBalancingError",
    "InvalidGameType",
    "MalformedTopology",
    "ConfigurationError",
    "balance_load",
    "random_topology",
]
