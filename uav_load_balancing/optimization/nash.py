"""
Nash equilibrium via best-response dynamics.

Each user's strategy is the station it joins; its payoff is the utility
model's value given the station's current occupants. Because the utility
model induces an exact potential game, every strictly improving sequential
move strictly increases the Rosenthal potential, so sequential dynamics
reach a pure Nash equilibrium after finitely many moves.

Complexity: O(iterations × users × stations).
"""

import logging
import numpy as np
from dataclasses import dataclass, field
from typing import List, Optional

from ..config import NashConfig
from ..core.assignment import AssignmentState, UNASSIGNED
from ..core.snapshot import NetworkSnapshot
from ..core.utility_model import UtilityModel, potential_value
from .base import Deadline, GameSolver, SolverOutput

logger = logging.getLogger(__name__)


@dataclass
class BestResponseOutcome:
    """
    Result of one run of best-response dynamics.

    Attributes:
        state: Final (sequential) or best-potential (synchronous) assignment
        sweeps: Number of sweeps performed
        converged: True if the last sweep made no move
        moves: Total number of accepted moves
        potential_trace: Potential after the initial profile and after every
                         accepted move (sequential) or sweep (synchronous)
        timed_out: The deadline stopped the dynamics
    """
    state: AssignmentState
    sweeps: int
    converged: bool
    moves: int = 0
    potential_trace: List[float] = field(default_factory=list)
    timed_out: bool = False


def initial_profile(links: np.ndarray, mask: np.ndarray, bound: Optional[np.ndarray] = None) -> AssignmentState:
    """
    Starting assignment for best-response dynamics.

    A user keeps its bound station when that station covers it, otherwise
    it starts at the covering station with the best link (lowest index on
    ties). Users covered by no station stay unassigned.
    """
    num_users, num_stations = links.shape
    state = AssignmentState(num_stations, num_users)
    for user in range(num_users):
        if bound is not None and bound[user] >= 0 and mask[user, bound[user]]:
            state.assign(user, int(bound[user]))
            continue
        if not mask[user].any():
            continue
        candidates = np.where(mask[user], links[user], -np.inf)
        state.assign(user, int(np.argmax(candidates)))
    return state


class NashSolver(GameSolver):
    """
    Best-response dynamics over station choices.

    The dynamics routine is independent of the congestion table it is given,
    which lets the Stackelberg solver reuse it with leader-biased tables.
    """

    name = 'nash'

    def __init__(self, utility_model: UtilityModel, config: Optional[NashConfig] = None):
        super().__init__(utility_model)
        self.config = config or NashConfig()

    def solve(
        self,
        snapshot: NetworkSnapshot,
        rng: Optional[np.random.Generator] = None,
        deadline: Optional[Deadline] = None
    ) -> SolverOutput:
        links, mask, congestion = self.prepare(snapshot)
        initial = initial_profile(links, mask, snapshot.bound_station_indices())
        outcome = self.best_response_dynamics(links, mask, congestion, initial, rng=rng, deadline=deadline)

        logger.info(
            f"Nash dynamics: {outcome.sweeps} sweeps, {outcome.moves} moves, "
            f"converged={outcome.converged}"
        )
        return SolverOutput(
            state=outcome.state,
            iterations=outcome.sweeps,
            converged=outcome.converged,
            user_utilities=outcome.state.user_utilities(links, congestion),
            details={
                'update_mode': self.config.update_mode,
                'moves': outcome.moves,
                'potential': potential_value(outcome.state.station_indices, links, congestion),
                'potential_trace': outcome.potential_trace,
                'timed_out': outcome.timed_out,
            }
        )

    def best_response_dynamics(
        self,
        links: np.ndarray,
        mask: np.ndarray,
        congestion: np.ndarray,
        initial: AssignmentState,
        rng: Optional[np.random.Generator] = None,
        deadline: Optional[Deadline] = None,
        max_iterations: Optional[int] = None
    ) -> BestResponseOutcome:
        """
        Run best-response sweeps until no user moves or a cap is hit.

        Args:
            links: Link matrix (num_users, num_stations)
            mask: Coverage mask (num_users, num_stations)
            congestion: Congestion table (num_stations, num_users + 1)
            initial: Starting assignment (not modified)
            rng: Generator for randomized sweep order
            deadline: Wall-clock budget, checked before every sweep
            max_iterations: Overrides the configured sweep cap

        Returns:
            BestResponseOutcome
        """
        deadline = deadline or Deadline.unlimited()
        max_iterations = max_iterations or self.config.max_iterations
        if self.config.randomize_order and rng is None:
            rng = np.random.default_rng()

        if self.config.update_mode == 'synchronous':
            return self._synchronous(links, mask, congestion, initial.copy(), rng, deadline, max_iterations)
        return self._sequential(links, mask, congestion, initial.copy(), rng, deadline, max_iterations)

    def _sweep_order(self, num_users: int, rng) -> np.ndarray:
        if self.config.randomize_order:
            return rng.permutation(num_users)
        return np.arange(num_users)

    def _best_response(self, user, current, counts, links, mask, congestion):
        """
        Best station for ``user`` against the occupancies in ``counts``.

        Returns:
            (best station, its utility, utility at the current station)
        """
        candidates = np.nonzero(mask[user])[0]
        if candidates.size == 0:
            return UNASSIGNED, 0.0, 0.0
        occupancy = counts[candidates] + (candidates != current)
        values = links[user, candidates] + congestion[candidates, occupancy]
        k = int(np.argmax(values))  # first maximum = lowest station index
        current_value = -np.inf
        if current != UNASSIGNED:
            current_value = links[user, current] + congestion[current, counts[current]]
        return int(candidates[k]), float(values[k]), float(current_value)

    def _sequential(self, links, mask, congestion, state, rng, deadline, max_iterations):
        num_users = links.shape[0]
        counts = state.occupancies()
        record = self.config.record_potential
        trace = [potential_value(state.station_indices, links, congestion)] if record else []
        sweeps = 0
        moves = 0

        while sweeps < max_iterations:
            if deadline.expired():
                logger.warning(f"Deadline reached after {sweeps} sweeps; returning best assignment so far")
                return BestResponseOutcome(state, sweeps, False, moves, trace, timed_out=True)

            sweeps += 1
            sweep_moves = 0
            for user in self._sweep_order(num_users, rng):
                current = state.station_of(user)
                best, best_value, current_value = self._best_response(
                    user, current, counts, links, mask, congestion
                )
                if best == UNASSIGNED or best == current:
                    continue
                if best_value <= current_value + self.config.epsilon:
                    continue

                if current != UNASSIGNED:
                    counts[current] -= 1
                counts[best] += 1
                state.assign(int(user), best)
                sweep_moves += 1
                if record:
                    trace.append(potential_value(state.station_indices, links, congestion))

            moves += sweep_moves
            logger.debug(f"Sweep {sweeps}: {sweep_moves} moves")
            if sweep_moves == 0:
                return BestResponseOutcome(state, sweeps, True, moves, trace)

        return BestResponseOutcome(state, sweeps, False, moves, trace)

    def _synchronous(self, links, mask, congestion, state, rng, deadline, max_iterations):
        """
        Simultaneous updates: every user best-responds to the profile at the
        start of the sweep. No potential guarantee, so the dynamics may cycle;
        the best-potential profile seen is returned.
        """
        num_users = links.shape[0]
        best_state = state.copy()
        best_potential = potential_value(state.station_indices, links, congestion)
        trace = [best_potential] if self.config.record_potential else []
        sweeps = 0
        moves = 0

        while sweeps < max_iterations:
            if deadline.expired():
                logger.warning(f"Deadline reached after {sweeps} sweeps; returning best assignment so far")
                return BestResponseOutcome(best_state, sweeps, False, moves, trace, timed_out=True)

            sweeps += 1
            counts = state.occupancies()
            pending = []
            for user in self._sweep_order(num_users, rng):
                current = state.station_of(user)
                best, best_value, current_value = self._best_response(
                    user, current, counts, links, mask, congestion
                )
                if best != UNASSIGNED and best != current and best_value > current_value + self.config.epsilon:
                    pending.append((int(user), best))

            for user, station in pending:
                state.assign(user, station)
            moves += len(pending)

            phi = potential_value(state.station_indices, links, congestion)
            if self.config.record_potential:
                trace.append(phi)
            if phi > best_potential:
                best_potential = phi
                best_state = state.copy()

            logger.debug(f"Synchronous sweep {sweeps}: {len(pending)} moves")
            if not pending:
                return BestResponseOutcome(state, sweeps, True, moves, trace)

        return BestResponseOutcome(best_state, sweeps, False, moves, trace)
