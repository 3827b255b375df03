"""Shared pieces of the game solvers."""

import time
import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Tuple

from ..core.assignment import AssignmentState
from ..core.snapshot import NetworkSnapshot
from ..core.utility_model import UtilityModel


class Deadline:
    """Wall-clock budget measured with a monotonic clock (None = unlimited)."""

    def __init__(self, seconds: Optional[float] = None):
        self.seconds = seconds
        self._expires_at = None if seconds is None else time.monotonic() + seconds

    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    @classmethod
    def unlimited(cls) -> 'Deadline':
        return cls(None)


@dataclass
class SolverOutput:
    """
    Native output of a solver, wrapped by the engine into a
    ``LoadBalancingResult``.

    Attributes:
        state: Final assignment
        iterations: Solver-specific iteration count
        converged: Whether the solution concept was reached
        user_utilities: Unbiased utility per user (snapshot order)
        details: Solver-specific diagnostics
    """
    state: AssignmentState
    iterations: int
    converged: bool
    user_utilities: np.ndarray
    details: dict = field(default_factory=dict)


class GameSolver(ABC):
    """
    Abstract base class for the assignment solvers.

    A solver instance is stateless between calls; all per-call data lives
    in local variables, so one instance may be reused across timesteps.
    """

    name = 'solver'

    def __init__(self, utility_model: UtilityModel):
        self.utility_model = utility_model

    def prepare(self, snapshot: NetworkSnapshot) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Link matrix, coverage mask and congestion table of a snapshot."""
        links = self.utility_model.link_matrix(snapshot)
        mask = self.utility_model.coverage_mask(snapshot)
        congestion = self.utility_model.congestion_table(snapshot)
        return links, mask, congestion

    @abstractmethod
    def solve(
        self,
        snapshot: NetworkSnapshot,
        rng: Optional[np.random.Generator] = None,
        deadline: Optional[Deadline] = None
    ) -> SolverOutput:
        """
        Compute an assignment for one timestep.

        Args:
            snapshot: Validated, non-empty topology
            rng: Random generator for any sampling the solver does
            deadline: Wall-clock budget

        Returns:
            SolverOutput with the final assignment
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.utility_model!r})"
