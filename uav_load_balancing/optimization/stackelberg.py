"""
Stackelberg leader-follower load balancing.

Leader: the network operator, committing to one admission threshold
θ_s ∈ [0, 1] per station, i.e. the fraction of capacity the station serves
before the utility it offers is penalized.

Followers: the users, best-responding to the thresholds with the same
best-response dynamics as the Nash solver, on the biased congestion table

    c'(s, n) = c(s, n) - penalty · max(0, n - θ_s · capacity_s)

which still depends on (s, n) only, so the follower game remains an exact
potential game for every leader decision.

The leader maximizes welfare (sum of unbiased user utilities) by a
coordinate-wise search over stations: a discretized grid or a bounded
golden-section search per coordinate.
"""

import logging
import numpy as np
from typing import Dict, Optional, Tuple

from scipy.optimize import minimize_scalar

from ..config import NashConfig, StackelbergConfig
from ..core.snapshot import NetworkSnapshot
from ..core.utility_model import UtilityModel
from ..utils import vector_to_str
from .base import Deadline, GameSolver, SolverOutput
from .nash import BestResponseOutcome, NashSolver, initial_profile

logger = logging.getLogger(__name__)


class _FollowerEvaluator:
    """Runs the follower game for leader decisions and memoises the outcome."""

    def __init__(self, follower, links, mask, congestion, capacities, initial, penalty, rng, deadline):
        self.follower = follower
        self.links = links
        self.mask = mask
        self.congestion = congestion
        self.capacities = capacities
        self.initial = initial
        self.penalty = penalty
        self.rng = rng
        self.deadline = deadline
        self.inner_sweeps = 0
        self._cache: Dict[tuple, Tuple[float, BestResponseOutcome]] = {}

    @property
    def evaluations(self) -> int:
        return len(self._cache)

    def biased_congestion(self, thresholds: np.ndarray) -> np.ndarray:
        return biased_congestion(self.congestion, self.capacities, thresholds, self.penalty)

    def __call__(self, thresholds: np.ndarray) -> Tuple[float, BestResponseOutcome]:
        key = tuple(np.round(thresholds, 9))
        if key not in self._cache:
            outcome = self.follower.best_response_dynamics(
                self.links, self.mask, self.biased_congestion(thresholds),
                self.initial, rng=self.rng, deadline=self.deadline
            )
            self.inner_sweeps += outcome.sweeps
            welfare = float(np.sum(outcome.state.user_utilities(self.links, self.congestion)))
            self._cache[key] = (welfare, outcome)
        return self._cache[key]


def biased_congestion(congestion: np.ndarray, capacities: np.ndarray, thresholds: np.ndarray,
                      penalty: float) -> np.ndarray:
    """Congestion table perceived by followers under the leader's thresholds."""
    occupancy = np.arange(congestion.shape[1])[np.newaxis, :]
    admitted = (np.asarray(thresholds, dtype=float) * capacities)[:, np.newaxis]
    biased = congestion - penalty * np.maximum(0.0, occupancy - admitted)
    biased[:, 0] = 0.0
    return biased


class StackelbergSolver(GameSolver):
    """
    Bilevel optimization: outer leader search, inner follower best responses.

    Reported iterations are outer passes plus every inner sweep; the result
    is converged when the follower dynamics converged for the final leader
    decision (and no deadline interrupted the search).
    """

    name = 'stackelberg'

    def __init__(
        self,
        utility_model: UtilityModel,
        config: Optional[StackelbergConfig] = None,
        nash_config: Optional[NashConfig] = None
    ):
        super().__init__(utility_model)
        self.config = config or StackelbergConfig()
        self.follower = NashSolver(utility_model, nash_config)

    def solve(
        self,
        snapshot: NetworkSnapshot,
        rng: Optional[np.random.Generator] = None,
        deadline: Optional[Deadline] = None
    ) -> SolverOutput:
        deadline = deadline or Deadline.unlimited()
        links, mask, congestion = self.prepare(snapshot)
        initial = initial_profile(links, mask, snapshot.bound_station_indices())
        evaluate = _FollowerEvaluator(
            self.follower, links, mask, congestion, snapshot.capacities(), initial,
            self.config.admission_penalty, rng, deadline
        )

        thresholds = np.ones(snapshot.num_stations)
        best_welfare, best_outcome = evaluate(thresholds)
        welfare_history = [best_welfare]
        outer = 0
        timed_out = False

        while outer < self.config.max_outer_iterations:
            if deadline.expired():
                timed_out = True
                break
            outer += 1
            pass_start = best_welfare

            for station in range(snapshot.num_stations):
                if deadline.expired():
                    timed_out = True
                    break
                theta, welfare, outcome = self._search_coordinate(station, thresholds, best_welfare, evaluate)
                if welfare > best_welfare:
                    thresholds[station] = theta
                    best_welfare, best_outcome = welfare, outcome

            welfare_history.append(best_welfare)
            logger.debug(f"Leader pass {outer}: welfare={best_welfare:.4f}, thresholds={vector_to_str(thresholds)}")
            if timed_out or best_welfare - pass_start < self.config.outer_tolerance:
                break

        if timed_out:
            logger.warning(f"Deadline reached after {outer} leader passes; returning best leader decision so far")

        converged = best_outcome.converged and not timed_out and not best_outcome.timed_out
        iterations = outer + evaluate.inner_sweeps
        logger.info(
            f"Stackelberg: {outer} leader passes, {evaluate.evaluations} follower games, "
            f"welfare={best_welfare:.4f}, converged={converged}"
        )
        return SolverOutput(
            state=best_outcome.state,
            iterations=iterations,
            converged=converged,
            user_utilities=best_outcome.state.user_utilities(links, congestion),
            details={
                'thresholds': {sid: float(t) for sid, t in zip(snapshot.station_ids, thresholds)},
                'welfare': best_welfare,
                'welfare_history': welfare_history,
                'outer_iterations': outer,
                'inner_iterations': evaluate.inner_sweeps,
                'follower_games': evaluate.evaluations,
                'leader_search': self.config.leader_search,
                'timed_out': timed_out,
            }
        )

    def _search_coordinate(self, station, thresholds, current_welfare, evaluate):
        """
        Best threshold for one station with the others held fixed.

        Returns:
            (threshold, welfare, follower outcome); the current threshold is
            kept unless another one is strictly better
        """
        best_theta = thresholds[station]
        best_welfare = current_welfare
        best_outcome = None

        def trial(theta):
            candidate = thresholds.copy()
            candidate[station] = theta
            return evaluate(candidate)

        if self.config.leader_search == 'golden':
            result = minimize_scalar(
                lambda theta: -trial(theta)[0],
                bounds=(0.0, 1.0),
                method='bounded',
                options={'xatol': self.config.golden_tolerance}
            )
            grid = [float(result.x)]
        else:
            grid = np.linspace(0.0, 1.0, self.config.grid_size)

        for theta in grid:
            welfare, outcome = trial(theta)
            if welfare > best_welfare + 1e-12:
                best_theta, best_welfare, best_outcome = float(theta), welfare, outcome

        if best_outcome is None:
            best_outcome = trial(thresholds[station])[1]
        return best_theta, best_welfare, best_outcome
