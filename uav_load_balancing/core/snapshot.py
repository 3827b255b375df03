"""Immutable per-timestep view of the network topology."""

import numbers
import numpy as np
from typing import Dict, Iterable, Tuple

from .base_station import BaseStation, StationKind
from .exceptions import MalformedTopology
from .mobile_user import MobileUser, StationId, UserId


class NetworkSnapshot:
    """
    Read-only copy of the stations and users for one timestep.

    ``capture`` clones every entity and freezes its position array, so the
    caller may keep moving its live objects while a solver is running.
    Stations and users are stored sorted by identifier; array index order is
    therefore identifier order, which solvers rely on for tie-breaking.
    """

    def __init__(self, stations: Tuple[BaseStation, ...], users: Tuple[MobileUser, ...]):
        self._stations = stations
        self._users = users
        self._station_index = {bs.station_id: i for i, bs in enumerate(stations)}
        self._user_index = {mu.user_id: i for i, mu in enumerate(users)}

    @classmethod
    def capture(cls, stations: Iterable[BaseStation], users: Iterable[MobileUser]) -> 'NetworkSnapshot':
        """
        Validate and copy the live topology.

        Raises:
            MalformedTopology: duplicate ids, negative capacity, missing kind,
                               malformed position or non-positive rate
        """
        stations = [bs.clone() for bs in stations]
        users = [mu.clone() for mu in users]
        validate_topology(stations, users)

        for entity in stations + users:
            entity.position.flags.writeable = False
        stations.sort(key=lambda bs: bs.station_id)
        users.sort(key=lambda mu: mu.user_id)
        return cls(tuple(stations), tuple(users))

    @property
    def stations(self) -> Tuple[BaseStation, ...]:
        return self._stations

    @property
    def users(self) -> Tuple[MobileUser, ...]:
        return self._users

    @property
    def num_stations(self) -> int:
        return len(self._stations)

    @property
    def num_users(self) -> int:
        return len(self._users)

    @property
    def station_ids(self) -> Tuple[StationId, ...]:
        return tuple(bs.station_id for bs in self._stations)

    @property
    def user_ids(self) -> Tuple[UserId, ...]:
        return tuple(mu.user_id for mu in self._users)

    @property
    def is_empty(self) -> bool:
        """Zero stations or zero users."""
        return not self._stations or not self._users

    @property
    def is_degenerate(self) -> bool:
        """Empty, or no station able to serve anyone."""
        return self.is_empty or not any(bs.capacity > 0 for bs in self._stations)

    def station_index(self, station_id: StationId) -> int:
        return self._station_index[station_id]

    def user_index(self, user_id: UserId) -> int:
        return self._user_index[user_id]

    def capacities(self) -> np.ndarray:
        return np.array([bs.capacity for bs in self._stations], dtype=int)

    def station_positions(self) -> np.ndarray:
        """Station positions, shape (num_stations, 3)."""
        return np.array([bs.position for bs in self._stations]).reshape(-1, 3)

    def user_positions(self) -> np.ndarray:
        """User positions, shape (num_users, 3)."""
        return np.array([mu.position for mu in self._users]).reshape(-1, 3)

    def distance_matrix(self) -> np.ndarray:
        """User-to-station distances, shape (num_users, num_stations)."""
        if self.is_empty:
            return np.zeros((self.num_users, self.num_stations))
        diff = self.user_positions()[:, np.newaxis, :] - self.station_positions()[np.newaxis, :, :]
        return np.linalg.norm(diff, axis=2)

    def coverage_mask(self) -> np.ndarray:
        """Boolean (num_users, num_stations): station may serve the user."""
        distances = self.distance_matrix()
        radii = np.array([
            np.inf if bs.coverage_radius is None else bs.coverage_radius
            for bs in self._stations
        ], dtype=float)
        return distances <= radii[np.newaxis, :]

    def bound_station_indices(self) -> np.ndarray:
        """Index of each user's currently bound station, -1 if none or unknown."""
        bound = np.full(self.num_users, -1, dtype=int)
        for i, mu in enumerate(self._users):
            if mu.serving_station is not None and mu.serving_station in self._station_index:
                bound[i] = self._station_index[mu.serving_station]
        return bound

    def summary(self) -> Dict[str, int]:
        kinds = [bs.kind for bs in self._stations]
        return {
            'num_users': self.num_users,
            'num_stations': self.num_stations,
            'num_ground': sum(1 for k in kinds if k == StationKind.GROUND),
            'num_aerial': sum(1 for k in kinds if k == StationKind.AERIAL),
            'total_capacity': int(sum(bs.capacity for bs in self._stations)),
        }

    def __repr__(self) -> str:
        return f"NetworkSnapshot(stations={self.num_stations}, users={self.num_users})"


def _check_position(position, owner: str) -> None:
    if position.shape != (3,) or not np.all(np.isfinite(position)):
        raise MalformedTopology(f"{owner} has malformed position {position!r}")


def validate_topology(stations, users) -> None:
    """
    Check the structural invariants of a station/user set.

    Raises:
        MalformedTopology: on the first violated invariant
    """
    seen_stations = set()
    for bs in stations:
        if not isinstance(bs.station_id, numbers.Integral):
            raise MalformedTopology(f"Station id must be an integer, got {bs.station_id!r}")
        if bs.station_id in seen_stations:
            raise MalformedTopology(f"Duplicate station id: {bs.station_id}")
        seen_stations.add(bs.station_id)

        if not isinstance(bs.kind, StationKind):
            raise MalformedTopology(f"Station {bs.station_id} has invalid kind: {bs.kind!r}")
        if not isinstance(bs.capacity, numbers.Integral) or bs.capacity < 0:
            raise MalformedTopology(f"Station {bs.station_id} has invalid capacity: {bs.capacity!r}")
        if bs.transmit_power <= 0 or bs.bandwidth_mhz <= 0:
            raise MalformedTopology(
                f"Station {bs.station_id} needs positive power and bandwidth, "
                f"got {bs.transmit_power} W / {bs.bandwidth_mhz} MHz"
            )
        if bs.coverage_radius is not None and bs.coverage_radius < 0:
            raise MalformedTopology(f"Station {bs.station_id} has negative coverage radius")
        _check_position(bs.position, f"Station {bs.station_id}")

    seen_users = set()
    for mu in users:
        if not isinstance(mu.user_id, numbers.Integral):
            raise MalformedTopology(f"User id must be an integer, got {mu.user_id!r}")
        if mu.user_id in seen_users:
            raise MalformedTopology(f"Duplicate user id: {mu.user_id}")
        seen_users.add(mu.user_id)

        if not mu.required_rate > 0:
            raise MalformedTopology(f"User {mu.user_id} has non-positive required rate: {mu.required_rate}")
        _check_position(mu.position, f"User {mu.user_id}")
