"""
Baseline assignments used for comparison with the game-theoretic solvers
and as the engine's liveness fallback.

Capacity-aware baselines never put more users on a station than its
capacity; users that find no station with room stay unassigned.
"""

import numpy as np
from typing import Callable, Dict, Optional

from ..core.assignment import AssignmentState
from ..core.snapshot import NetworkSnapshot
from ..core.utility_model import UtilityModel


def _has_room(counts, capacities, station) -> bool:
    return counts[station] < capacities[station]


def nearest_station(snapshot: NetworkSnapshot, respect_capacity: bool = True,
                    respect_coverage: bool = False) -> AssignmentState:
    """
    Assign every user to the geographically closest station.

    Args:
        snapshot: Topology
        respect_capacity: Skip stations that are already full
        respect_coverage: Skip stations whose coverage radius excludes the user
    """
    state = AssignmentState(snapshot.num_stations, snapshot.num_users)
    if snapshot.is_empty:
        return state
    distances = snapshot.distance_matrix()
    if respect_coverage:
        distances = np.where(snapshot.coverage_mask(), distances, np.inf)
    capacities = snapshot.capacities()
    counts = np.zeros(snapshot.num_stations, dtype=int)

    for user in range(snapshot.num_users):
        for station in np.argsort(distances[user], kind='stable'):
            if not np.isfinite(distances[user, station]):
                break
            if respect_capacity and not _has_room(counts, capacities, station):
                continue
            state.assign(user, int(station))
            counts[station] += 1
            break
    return state


def random_assignment(snapshot: NetworkSnapshot, rng: Optional[np.random.Generator] = None) -> AssignmentState:
    """Assign every user to a uniformly random covering station with room."""
    rng = np.random.default_rng() if rng is None else rng
    state = AssignmentState(snapshot.num_stations, snapshot.num_users)
    if snapshot.is_empty:
        return state
    mask = snapshot.coverage_mask()
    capacities = snapshot.capacities()
    counts = np.zeros(snapshot.num_stations, dtype=int)

    for user in range(snapshot.num_users):
        valid = [s for s in np.nonzero(mask[user])[0] if _has_room(counts, capacities, s)]
        if valid:
            station = int(rng.choice(valid))
            state.assign(user, station)
            counts[station] += 1
    return state


def round_robin(snapshot: NetworkSnapshot) -> AssignmentState:
    """Cycle through stations, giving each user the next covering station with room."""
    state = AssignmentState(snapshot.num_stations, snapshot.num_users)
    if snapshot.is_empty:
        return state
    mask = snapshot.coverage_mask()
    capacities = snapshot.capacities()
    counts = np.zeros(snapshot.num_stations, dtype=int)
    cursor = 0

    for user in range(snapshot.num_users):
        for offset in range(snapshot.num_stations):
            station = (cursor + offset) % snapshot.num_stations
            if mask[user, station] and _has_room(counts, capacities, station):
                state.assign(user, station)
                counts[station] += 1
                cursor = (station + 1) % snapshot.num_stations
                break
    return state


def greedy_utility(snapshot: NetworkSnapshot, utility_model: UtilityModel) -> AssignmentState:
    """Each user joins the covering station with room and the highest utility after joining."""
    state = AssignmentState(snapshot.num_stations, snapshot.num_users)
    if snapshot.is_empty:
        return state
    links = utility_model.link_matrix(snapshot)
    congestion = utility_model.congestion_table(snapshot)
    mask = snapshot.coverage_mask()
    capacities = snapshot.capacities()
    counts = np.zeros(snapshot.num_stations, dtype=int)

    for user in range(snapshot.num_users):
        allowed = [s for s in np.nonzero(mask[user])[0] if _has_room(counts, capacities, s)]
        if not allowed:
            continue
        allowed = np.array(allowed)
        values = links[user, allowed] + congestion[allowed, counts[allowed] + 1]
        station = int(allowed[np.argmax(values)])
        state.assign(user, station)
        counts[station] += 1
    return state


def least_loaded(snapshot: NetworkSnapshot) -> AssignmentState:
    """
    Assign users, heaviest demand first, to the covering station with the
    lowest aggregate required rate.
    """
    state = AssignmentState(snapshot.num_stations, snapshot.num_users)
    if snapshot.is_empty:
        return state
    mask = snapshot.coverage_mask()
    capacities = snapshot.capacities()
    counts = np.zeros(snapshot.num_stations, dtype=int)
    load = np.zeros(snapshot.num_stations)
    demands = np.array([mu.required_rate for mu in snapshot.users])

    for user in np.argsort(-demands, kind='stable'):
        allowed = [s for s in np.nonzero(mask[user])[0] if _has_room(counts, capacities, s)]
        if not allowed:
            continue
        station = int(min(allowed, key=lambda s: (load[s], s)))
        state.assign(int(user), station)
        counts[station] += 1
        load[station] += demands[user]
    return state


def strongest_signal(snapshot: NetworkSnapshot, utility_model: UtilityModel) -> AssignmentState:
    """Each user joins the covering station with room offering the highest rate."""
    state = AssignmentState(snapshot.num_stations, snapshot.num_users)
    if snapshot.is_empty:
        return state
    mask = snapshot.coverage_mask()
    capacities = snapshot.capacities()
    counts = np.zeros(snapshot.num_stations, dtype=int)
    rates = np.array([
        [utility_model.achievable_rate(mu, bs) for bs in snapshot.stations] for mu in snapshot.users
    ])

    for user in range(snapshot.num_users):
        for station in np.argsort(-rates[user], kind='stable'):
            if mask[user, station] and _has_room(counts, capacities, station):
                state.assign(user, int(station))
                counts[station] += 1
                break
    return state


BASELINES: Dict[str, Callable] = {
    'nearest': lambda snapshot, model, rng: nearest_station(snapshot),
    'random': lambda snapshot, model, rng: random_assignment(snapshot, rng),
    'round_robin': lambda snapshot, model, rng: round_robin(snapshot),
    'greedy': lambda snapshot, model, rng: greedy_utility(snapshot, model),
    'least_loaded': lambda snapshot, model, rng: least_loaded(snapshot),
    'strongest_signal': lambda snapshot, model, rng: strongest_signal(snapshot, model),
}


def run_baseline(name: str, snapshot: NetworkSnapshot, utility_model: UtilityModel,
                 rng: Optional[np.random.Generator] = None) -> AssignmentState:
    """Run a baseline by name (see ``BASELINES``)."""
    if name not in BASELINES:
        raise ValueError(f"Unknown baseline: {name}. Expected one of {sorted(BASELINES)}")
    return BASELINES[name](snapshot, utility_model, rng)
