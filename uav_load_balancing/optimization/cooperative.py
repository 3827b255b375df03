"""
Cooperative (coalition) load balancing with sampled Shapley values.

Stations are the players of a transferable-utility game whose characteristic
function v(S) is the total utility the stations in S achieve when they pool
and greedily serve all users among themselves. Exact Shapley values need all
|N|! orderings, so they are estimated from a fixed budget of random
permutations; the estimates weight a final greedy assignment in which
stations are rewarded in proportion to their marginal contribution.
"""

import logging
import numpy as np
from typing import Dict, FrozenSet, Optional

from ..config import CooperativeConfig
from ..core.assignment import AssignmentState
from ..core.snapshot import NetworkSnapshot
from ..core.utility_model import UtilityModel
from .base import Deadline, GameSolver, SolverOutput

logger = logging.getLogger(__name__)


def greedy_coalition_assignment(links: np.ndarray, mask: np.ndarray, congestion: np.ndarray,
                                coalition) -> AssignmentState:
    """
    UtilityModel-greedy assignment restricted to the stations in ``coalition``.

    Users are taken in index order; each joins the covering coalition
    station with the highest utility at its occupancy after joining.
    """
    num_users, num_stations = links.shape
    state = AssignmentState(num_stations, num_users)
    members = np.array(sorted(coalition), dtype=int)
    if members.size == 0:
        return state

    counts = np.zeros(num_stations, dtype=int)
    for user in range(num_users):
        allowed = members[mask[user, members]]
        if allowed.size == 0:
            continue
        values = links[user, allowed] + congestion[allowed, counts[allowed] + 1]
        station = int(allowed[np.argmax(values)])
        state.assign(user, station)
        counts[station] += 1
    return state


class CharacteristicFunction:
    """v(S): total utility of the greedy assignment over coalition S (memoised)."""

    def __init__(self, links: np.ndarray, mask: np.ndarray, congestion: np.ndarray):
        self.links = links
        self.mask = mask
        self.congestion = congestion
        self._values: Dict[FrozenSet[int], float] = {frozenset(): 0.0}

    def __call__(self, coalition) -> float:
        key = frozenset(coalition)
        if key not in self._values:
            state = greedy_coalition_assignment(self.links, self.mask, self.congestion, key)
            self._values[key] = float(np.sum(state.user_utilities(self.links, self.congestion)))
        return self._values[key]

    @property
    def evaluations(self) -> int:
        return len(self._values) - 1


def sampled_shapley_values(value_fn, num_players: int, num_samples: int,
                           rng: np.random.Generator, deadline: Optional[Deadline] = None):
    """
    Monte Carlo Shapley estimator.

    For each sampled permutation, every player's marginal contribution when
    it joins the coalition of its predecessors is recorded; the estimate is
    the average over permutations. Efficiency holds per sample: the
    contributions of one permutation sum to v(N).

    Returns:
        (estimates, samples actually drawn)
    """
    totals = np.zeros(num_players)
    drawn = 0
    for _ in range(num_samples):
        if deadline is not None and deadline.expired():
            break
        order = rng.permutation(num_players)
        coalition = set()
        previous = 0.0
        for player in order:
            coalition.add(int(player))
            value = value_fn(coalition)
            totals[player] += value - previous
            previous = value
        drawn += 1
    if drawn == 0:
        return totals, 0
    return totals / drawn, drawn


def shapley_weights(estimates: np.ndarray, floor: float) -> np.ndarray:
    """Non-negative Shapley estimates normalized to mean 1, floored at ``floor``."""
    positive = np.maximum(estimates, 0.0)
    if positive.sum() <= 0:
        return np.ones_like(estimates)
    weights = positive / positive.mean()
    return np.maximum(weights, floor)


class CooperativeSolver(GameSolver):
    """
    Shapley-weighted soft-capacity assignment.

    The Shapley values are an estimator: the sample budget is a tunable and
    is not derived from the number of stations. With a fixed seed the result
    is reproducible bit for bit.
    """

    name = 'cooperative'

    def __init__(self, utility_model: UtilityModel, config: Optional[CooperativeConfig] = None):
        super().__init__(utility_model)
        self.config = config or CooperativeConfig()

    def solve(
        self,
        snapshot: NetworkSnapshot,
        rng: Optional[np.random.Generator] = None,
        deadline: Optional[Deadline] = None
    ) -> SolverOutput:
        deadline = deadline or Deadline.unlimited()
        rng = np.random.default_rng() if rng is None else rng
        links, mask, congestion = self.prepare(snapshot)

        value_fn = CharacteristicFunction(links, mask, congestion)
        estimates, drawn = sampled_shapley_values(
            value_fn, snapshot.num_stations, self.config.shapley_samples, rng, deadline
        )
        weights = shapley_weights(estimates, self.config.weight_floor)
        state = self.weighted_assignment(links, mask, congestion, snapshot.capacities(), weights)

        timed_out = drawn < self.config.shapley_samples
        if timed_out:
            logger.warning(f"Deadline reached after {drawn} of {self.config.shapley_samples} Shapley samples")
        logger.info(
            f"Cooperative: {drawn} permutations, {value_fn.evaluations} coalitions evaluated, "
            f"v(N)={value_fn(range(snapshot.num_stations)):.4f}"
        )

        station_ids = snapshot.station_ids
        return SolverOutput(
            state=state,
            iterations=drawn,
            converged=not timed_out,
            user_utilities=state.user_utilities(links, congestion),
            details={
                'shapley_values': {sid: float(v) for sid, v in zip(station_ids, estimates)},
                'shapley_weights': {sid: float(w) for sid, w in zip(station_ids, weights)},
                'grand_coalition_value': value_fn(range(snapshot.num_stations)),
                'samples': drawn,
                'coalitions_evaluated': value_fn.evaluations,
                'timed_out': timed_out,
            }
        )

    def weighted_assignment(self, links, mask, congestion, capacities, weights) -> AssignmentState:
        """
        Greedy assignment maximizing utility × Shapley weight, with the
        over-capacity penalty folded into the weighting.
        """
        num_users, num_stations = links.shape
        state = AssignmentState(num_stations, num_users)
        counts = np.zeros(num_stations, dtype=int)
        for user in range(num_users):
            allowed = np.nonzero(mask[user])[0]
            if allowed.size == 0:
                continue
            occupancy = counts[allowed] + 1
            utility = links[user, allowed] + congestion[allowed, occupancy]
            overflow = np.maximum(0, occupancy - capacities[allowed])
            score = utility * weights[allowed] / (1.0 + self.config.capacity_penalty * overflow)
            station = int(allowed[np.argmax(score)])
            state.assign(user, station)
            counts[station] += 1
        return state
