"""Mutable working assignment used by the solvers."""

import numpy as np
from typing import Dict, FrozenSet, List, Set

from .mobile_user import StationId, UserId
from .snapshot import NetworkSnapshot

UNASSIGNED = -1

Assignment = Dict[StationId, FrozenSet[UserId]]


class AssignmentState:
    """
    Station index -> set of user indices, plus the inverse user -> station.

    Both views are updated together, so a user can never sit in two
    stations' sets at once. Indices refer to the ordering of a
    ``NetworkSnapshot`` (identifier order).
    """

    def __init__(self, num_stations: int, num_users: int):
        self.num_stations = num_stations
        self.num_users = num_users
        self._members: List[Set[int]] = [set() for _ in range(num_stations)]
        self._station_of = np.full(num_users, UNASSIGNED, dtype=int)

    @classmethod
    def from_station_indices(cls, station_of, num_stations: int) -> 'AssignmentState':
        """Build a state from a per-user station index array (-1 = unassigned)."""
        station_of = np.asarray(station_of, dtype=int)
        state = cls(num_stations, len(station_of))
        for user, station in enumerate(station_of):
            if station != UNASSIGNED:
                state.assign(user, int(station))
        return state

    def station_of(self, user: int) -> int:
        """Station index serving ``user`` or UNASSIGNED."""
        return int(self._station_of[user])

    @property
    def station_indices(self) -> np.ndarray:
        """Read-only copy of the per-user station index array."""
        return self._station_of.copy()

    def members(self, station: int) -> FrozenSet[int]:
        return frozenset(self._members[station])

    def occupancy(self, station: int) -> int:
        return len(self._members[station])

    def occupancies(self) -> np.ndarray:
        return np.array([len(m) for m in self._members], dtype=int)

    def assign(self, user: int, station: int) -> None:
        """Move ``user`` to ``station``, leaving its previous station."""
        if not 0 <= station < self.num_stations:
            raise IndexError(f"Station index out of range: {station}")
        self.unassign(user)
        self._members[station].add(user)
        self._station_of[user] = station

    def unassign(self, user: int) -> None:
        current = self._station_of[user]
        if current != UNASSIGNED:
            self._members[current].discard(user)
            self._station_of[user] = UNASSIGNED

    @property
    def num_assigned(self) -> int:
        return int(np.sum(self._station_of != UNASSIGNED))

    def unassigned_users(self) -> List[int]:
        return [int(u) for u in np.nonzero(self._station_of == UNASSIGNED)[0]]

    def copy(self) -> 'AssignmentState':
        return AssignmentState.from_station_indices(self._station_of, self.num_stations)

    def user_utilities(self, links: np.ndarray, congestion: np.ndarray) -> np.ndarray:
        """
        Utility each user receives under this assignment (0 for unassigned).

        Args:
            links: Link matrix (num_users, num_stations)
            congestion: Congestion table (num_stations, num_users + 1)
        """
        utilities = np.zeros(self.num_users)
        counts = self.occupancies()
        for user, station in enumerate(self._station_of):
            if station != UNASSIGNED:
                utilities[user] = links[user, station] + congestion[station, counts[station]]
        return utilities

    def to_assignment(self, snapshot: NetworkSnapshot) -> Assignment:
        """Identifier-keyed mapping; every station present, possibly empty."""
        user_ids = snapshot.user_ids
        return {
            station_id: frozenset(user_ids[u] for u in self._members[j])
            for j, station_id in enumerate(snapshot.station_ids)
        }

    def __eq__(self, other) -> bool:
        if not isinstance(other, AssignmentState):
            return NotImplemented
        return (self.num_stations == other.num_stations
                and np.array_equal(self._station_of, other._station_of))

    def __repr__(self) -> str:
        return f"AssignmentState(loads={self.occupancies().tolist()}, unassigned={len(self.unassigned_users())})"
