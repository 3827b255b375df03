"""Reproducible random topologies for experiments and tests."""

import numpy as np
from typing import List, Optional, Tuple

from .base_station import BaseStation
from .mobile_user import MobileUser
from .snapshot import NetworkSnapshot

USER_DISTRIBUTIONS = ('random', 'even', 'hotspot')


def create_even_grid(num_users: int, region_size: float, height: float = 0.0) -> np.ndarray:
    """
    Create an even grid of positions for mobile users.

    Args:
        num_users: Number of users (must be a perfect square)
        region_size: Size of the square region (meters)
        height: Height of users (z-coordinate)

    Returns:
        Array of shape (3, num_users) with evenly spaced positions
    """
    grid_size = int(round(np.sqrt(num_users)))
    if grid_size * grid_size != num_users:
        raise ValueError(
            f"For even distribution, num_users must be a perfect square. "
            f"Got {num_users}, nearest perfect squares are {grid_size**2} and {(grid_size+1)**2}"
        )

    x = np.linspace(0, region_size, grid_size)
    y = np.linspace(0, region_size, grid_size)
    xx, yy = np.meshgrid(x, y)

    positions = np.zeros((3, num_users))
    positions[0, :] = xx.flatten()
    positions[1, :] = yy.flatten()
    positions[2, :] = height
    return positions


def create_hotspot(num_users: int, region_size: float, rng: np.random.Generator,
                   center=None, spread: Optional[float] = None, fraction: float = 0.7,
                   height: float = 0.0) -> np.ndarray:
    """
    Cluster most users around one centre.

    ``fraction`` of the users are drawn from a Gaussian around ``center``
    (default: middle of the region) with standard deviation ``spread``
    (default: a tenth of the region); the rest are uniform. Positions are
    clipped to the region.

    Returns:
        Array of shape (3, num_users)
    """
    center = np.array([region_size / 2, region_size / 2]) if center is None else np.asarray(center, dtype=float)
    spread = region_size / 10 if spread is None else spread
    clustered = int(round(num_users * fraction))

    positions = np.zeros((3, num_users))
    positions[:2, :clustered] = center[:, np.newaxis] + rng.normal(0.0, spread, size=(2, clustered))
    positions[:2, clustered:] = rng.random((2, num_users - clustered)) * region_size
    positions[:2] = np.clip(positions[:2], 0.0, region_size)
    positions[2, :] = height
    return positions


def random_topology(
    num_ground: int = 2,
    num_aerial: int = 3,
    num_users: int = 30,
    region_size: float = 1000.0,
    seed: Optional[int] = None,
    user_distribution: str = 'random',
    ground_capacity: int = 30,
    aerial_capacity: int = 15,
    ground_coverage: Optional[float] = 1500.0,
    aerial_coverage: Optional[float] = 300.0,
    required_rate: float = 5.0
) -> Tuple[List[BaseStation], List[MobileUser]]:
    """
    Generate stations and users in a square region.

    Ground stations get ids 0..num_ground-1, aerial stations follow; users
    are numbered from 0. The same seed always gives the same topology.

    Args:
        num_ground: Number of ground stations
        num_aerial: Number of aerial stations
        num_users: Number of mobile users
        region_size: Side of the square region (meters)
        seed: Random seed
        user_distribution: 'random', 'even' or 'hotspot'
        ground_capacity: Capacity of every ground station
        aerial_capacity: Capacity of every aerial station
        ground_coverage: Coverage radius of ground stations (None = unlimited)
        aerial_coverage: Coverage radius of aerial stations (None = unlimited)
        required_rate: Required rate of every user (Mbps)

    Returns:
        (stations, users)
    """
    if user_distribution not in USER_DISTRIBUTIONS:
        raise ValueError(f"user_distribution must be one of {USER_DISTRIBUTIONS}, got '{user_distribution}'")
    rng = np.random.default_rng(seed)

    stations = BaseStation.clone_at_random_positions(
        BaseStation.ground(0, capacity=ground_capacity, coverage_radius=ground_coverage),
        num_ground, region_size, rng=rng
    )
    stations += BaseStation.clone_at_random_positions(
        BaseStation.aerial(0, capacity=aerial_capacity, coverage_radius=aerial_coverage),
        num_aerial, region_size, rng=rng, first_id=num_ground
    )

    template_mu = MobileUser(0, required_rate=required_rate)
    if user_distribution == 'random':
        users = MobileUser.clone_at_random_positions(template_mu, num_users, region_size, rng=rng)
    elif user_distribution == 'even':
        users = MobileUser.clone_at_positions(template_mu, create_even_grid(num_users, region_size))
    else:
        users = MobileUser.clone_at_positions(template_mu, create_hotspot(num_users, region_size, rng))
    return stations, users


def random_snapshot(**kwargs) -> NetworkSnapshot:
    """``random_topology`` captured into a snapshot."""
    stations, users = random_topology(**kwargs)
    return NetworkSnapshot.capture(stations, users)
