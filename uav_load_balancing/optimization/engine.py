"""
Load balancing engine: one entry point over the four game solvers.
"""

import logging
import numpy as np
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

from ..config import EngineConfig
from ..core.assignment import Assignment, AssignmentState
from ..core.base_station import BaseStation
from ..core.channel import Channel
from ..core.exceptions import InvalidGameType
from ..core.mobile_user import MobileUser, StationId, UserId
from ..core.snapshot import NetworkSnapshot
from ..core.utility_model import UtilityModel
from ..utils import jain_index, load_variance
from .auction import AuctionSolver
from .base import Deadline, GameSolver
from .baselines import nearest_station
from .cooperative import CooperativeSolver
from .nash import NashSolver
from .stackelberg import StackelbergSolver

logger = logging.getLogger(__name__)


class GameType(Enum):
    NASH = 'nash'
    STACKELBERG = 'stackelberg'
    COOPERATIVE = 'cooperative'
    AUCTION = 'auction'

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, value: Union['GameType', str]) -> 'GameType':
        """
        Accept a member, a member name or a known alias (case-insensitive).

        Raises:
            InvalidGameType: for anything else
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower().replace('-', '_').replace(' ', '_')
            if key in _ALIASES:
                return _ALIASES[key]
        raise InvalidGameType(f"Invalid game type: {value!r}. Expected one of {[g.value for g in cls]}")


_DISPLAY_NAMES = {
    GameType.NASH: 'Nash Equilibrium',
    GameType.STACKELBERG: 'Stackelberg Game',
    GameType.COOPERATIVE: 'Cooperative Game',
    GameType.AUCTION: 'Auction-based',
}

_ALIASES = {
    'nash': GameType.NASH,
    'nash_equilibrium': GameType.NASH,
    'stackelberg': GameType.STACKELBERG,
    'stackelberg_game': GameType.STACKELBERG,
    'cooperative': GameType.COOPERATIVE,
    'cooperative_game': GameType.COOPERATIVE,
    'coalition': GameType.COOPERATIVE,
    'auction': GameType.AUCTION,
    'auction_based': GameType.AUCTION,
}


@dataclass
class LoadBalancingResult:
    """
    Outcome of one engine invocation.

    Attributes:
        assignment: Station id -> frozenset of user ids (every station present)
        station_utilities: Aggregate utility of the users served by each station
        user_utilities: Utility of every user (0.0 when unassigned)
        iterations: Solver-specific iteration count
        converged: Whether the solution concept was reached
        game_type: Game that produced the assignment
        fallback_used: The nearest-station fallback replaced the solver output
        details: Solver-specific diagnostics
    """
    assignment: Assignment
    station_utilities: Dict[StationId, float]
    user_utilities: Dict[UserId, float]
    iterations: int
    converged: bool
    game_type: GameType
    fallback_used: bool = False
    details: dict = field(default_factory=dict)

    @property
    def station_loads(self) -> Dict[StationId, int]:
        return {sid: len(users) for sid, users in self.assignment.items()}

    @property
    def assigned_users(self) -> List[UserId]:
        return sorted(uid for users in self.assignment.values() for uid in users)

    @property
    def unassigned_users(self) -> List[UserId]:
        assigned = set(self.assigned_users)
        return sorted(uid for uid in self.user_utilities if uid not in assigned)

    @property
    def total_utility(self) -> float:
        return float(sum(self.user_utilities.values()))

    def station_of(self, user_id: UserId) -> Optional[StationId]:
        for sid, users in self.assignment.items():
            if user_id in users:
                return sid
        return None

    def jain_index(self) -> float:
        """Jain's fairness index of the station loads."""
        return jain_index(self.station_loads.values())

    def load_variance(self) -> float:
        return load_variance(self.station_loads.values())

    def to_dict(self) -> dict:
        """JSON-serializable view (ids become strings where used as keys)."""
        return {
            'game_type': self.game_type.value,
            'assignment': {str(sid): sorted(int(u) for u in users) for sid, users in self.assignment.items()},
            'station_utilities': {str(sid): float(v) for sid, v in self.station_utilities.items()},
            'user_utilities': {str(uid): float(v) for uid, v in self.user_utilities.items()},
            'iterations': int(self.iterations),
            'converged': bool(self.converged),
            'fallback_used': bool(self.fallback_used),
            'total_utility': self.total_utility,
            'jain_index': self.jain_index(),
            'load_variance': self.load_variance(),
            'details': _jsonable(self.details),
        }

    def __repr__(self) -> str:
        return (f"LoadBalancingResult(game={self.game_type.value}, loads={list(self.station_loads.values())}, "
                f"unassigned={len(self.unassigned_users)}, iterations={self.iterations}, "
                f"converged={self.converged})")


def _jsonable(value):
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    return value


class LoadBalancingEngine:
    """
    Facade dispatching a topology to the configured game solver.

    The engine keeps no state between calls: every ``balance`` call copies
    the topology into a fresh snapshot and creates its own random generator
    from the seed.

    Example:
        engine = LoadBalancingEngine('nash')
        result = engine.balance(stations, users, seed=42)
    """

    def __init__(
        self,
        game_type: Union[GameType, str],
        config: Optional[EngineConfig] = None,
        utility_model: Optional[UtilityModel] = None
    ):
        """
        Args:
            game_type: GameType member or name/alias
            config: Engine configuration (defaults if None)
            utility_model: Overrides the model built from ``config.utility``

        Raises:
            InvalidGameType: unknown game type
            ConfigurationError: invalid configuration value
        """
        self.game_type = GameType.parse(game_type)
        self.config = (config or EngineConfig()).validate()
        self.utility_model = utility_model or self._build_utility_model()
        self.solver = self._build_solver()

    def _build_utility_model(self) -> UtilityModel:
        u = self.config.utility
        frequency_hz = u.frequency_ghz * 1e9
        return UtilityModel(
            channel=Channel.create_realistic_channel(frequency_hz),
            aerial_channel=Channel.create_air_to_ground_channel(frequency_hz),
            rate_weight=u.rate_weight,
            load_weight=u.load_weight,
            overload_discount=u.overload_discount
        )

    def _build_solver(self) -> GameSolver:
        if self.game_type == GameType.NASH:
            return NashSolver(self.utility_model, self.config.nash)
        if self.game_type == GameType.STACKELBERG:
            return StackelbergSolver(self.utility_model, self.config.stackelberg, self.config.nash)
        if self.game_type == GameType.COOPERATIVE:
            return CooperativeSolver(self.utility_model, self.config.cooperative)
        return AuctionSolver(self.utility_model, self.config.auction)

    def balance(
        self,
        stations: Iterable[BaseStation],
        users: Iterable[MobileUser],
        seed: Optional[int] = None
    ) -> LoadBalancingResult:
        """
        Assign users to stations for one timestep.

        Args:
            stations: Ground and aerial stations (copied, never modified)
            users: Mobile users (copied, never modified)
            seed: Seed of the per-call random generator

        Returns:
            LoadBalancingResult

        Raises:
            MalformedTopology: invalid station or user data
        """
        return self.balance_snapshot(NetworkSnapshot.capture(stations, users), seed=seed)

    def balance_snapshot(self, snapshot: NetworkSnapshot, seed: Optional[int] = None) -> LoadBalancingResult:
        """Assign users on an already captured snapshot."""
        if snapshot.is_empty:
            logger.info(f"Empty topology ({snapshot!r}); nothing to assign")
            return LoadBalancingResult(
                assignment={sid: frozenset() for sid in snapshot.station_ids},
                station_utilities={sid: 0.0 for sid in snapshot.station_ids},
                user_utilities={uid: 0.0 for uid in snapshot.user_ids},
                iterations=0,
                converged=True,
                game_type=self.game_type
            )

        rng = np.random.default_rng(seed)
        deadline = Deadline(self.config.deadline_s)
        logger.info(f"Running {self.game_type.display_name} on {snapshot!r}")
        output = self.solver.solve(snapshot, rng=rng, deadline=deadline)

        state = output.state
        user_utilities = output.user_utilities
        converged = output.converged
        fallback_used = False

        if state.num_assigned == 0 and not snapshot.is_degenerate:
            logger.warning(
                f"{self.game_type.display_name} assigned no users on a non-degenerate topology; "
                f"falling back to capacity-aware nearest-station assignment"
            )
            state = nearest_station(snapshot, respect_capacity=True)
            links, _, congestion = self.solver.prepare(snapshot)
            user_utilities = state.user_utilities(links, congestion)
            converged = False
            fallback_used = True

        return self._wrap(snapshot, state, user_utilities, output.iterations, converged, fallback_used,
                          output.details)

    def _wrap(self, snapshot, state: AssignmentState, user_utilities, iterations, converged,
              fallback_used, details) -> LoadBalancingResult:
        station_totals = np.zeros(snapshot.num_stations)
        for user, station in enumerate(state.station_indices):
            if station >= 0:
                station_totals[station] += user_utilities[user]

        result = LoadBalancingResult(
            assignment=state.to_assignment(snapshot),
            station_utilities={sid: float(v) for sid, v in zip(snapshot.station_ids, station_totals)},
            user_utilities={uid: float(v) for uid, v in zip(snapshot.user_ids, user_utilities)},
            iterations=int(iterations),
            converged=bool(converged),
            game_type=self.game_type,
            fallback_used=fallback_used,
            details=details
        )
        logger.info(f"{self.game_type.display_name}: {result!r}")
        return result

    def __repr__(self) -> str:
        return f"LoadBalancingEngine(game_type={self.game_type.value})"


def balance_load(stations, users, game_type: Union[GameType, str] = GameType.NASH,
                 config: Optional[EngineConfig] = None, seed: Optional[int] = None) -> LoadBalancingResult:
    """Convenience wrapper: build an engine and run a single timestep."""
    return LoadBalancingEngine(game_type, config).balance(stations, users, seed=seed)
