"""Configuration record for the load balancing engine."""

import json
import numbers
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Optional

from .core.exceptions import ConfigurationError

UPDATE_MODES = ('sequential', 'synchronous')
LEADER_SEARCHES = ('grid', 'golden')


def _check_types(section_name, section):
    """Check each field against the type of its default value."""
    for f in fields(section):
        value = getattr(section, f.name)
        if isinstance(f.default, bool):
            valid = isinstance(value, bool)
        elif isinstance(f.default, int):
            valid = isinstance(value, numbers.Integral) and not isinstance(value, bool)
        elif isinstance(f.default, float):
            valid = isinstance(value, numbers.Real) and not isinstance(value, bool)
        else:
            valid = isinstance(value, type(f.default))
        if not valid:
            raise ConfigurationError(
                f"{section_name}.{f.name} must be {type(f.default).__name__}, got {value!r}")


@dataclass
class UtilityConfig:
    """
    Weights of the utility model.

    Attributes:
        rate_weight: Weight of the link (rate satisfaction) term
        load_weight: Weight of the congestion (resource share) term
        overload_discount: Per-user discount of the congestion term above capacity
        frequency_ghz: Carrier frequency of both channel models
    """
    rate_weight: float = 1.0
    load_weight: float = 1.0
    overload_discount: float = 0.5
    frequency_ghz: float = 2.4


@dataclass
class NashConfig:
    """
    Best-response dynamics.

    Attributes:
        max_iterations: Sweep cap
        epsilon: Minimum utility gain for a move to count as improving
        update_mode: 'sequential' (one user at a time, default) or
                     'synchronous' (all users move on the sweep-start profile)
        randomize_order: Sweep users in a seeded random order instead of id order
        record_potential: Keep the potential after every accepted move
    """
    max_iterations: int = 100
    epsilon: float = 1e-9
    update_mode: str = 'sequential'
    randomize_order: bool = False
    record_potential: bool = True


@dataclass
class StackelbergConfig:
    """
    Leader (operator) search over per-station admission thresholds.

    Attributes:
        max_outer_iterations: Cap on full coordinate passes
        outer_tolerance: Minimum welfare gain of a pass to keep searching
        leader_search: 'grid' or 'golden'
        grid_size: Number of grid points in [0, 1]
        golden_tolerance: Absolute threshold tolerance of the golden-section search
        admission_penalty: Utility penalty per user above the admitted load
    """
    max_outer_iterations: int = 10
    outer_tolerance: float = 1e-3
    leader_search: str = 'grid'
    grid_size: int = 11
    golden_tolerance: float = 0.02
    admission_penalty: float = 1.0


@dataclass
class CooperativeConfig:
    """
    Sampled Shapley allocation.

    Attributes:
        shapley_samples: Number of sampled station permutations
        capacity_penalty: Soft penalty per user above capacity in the final weighting
        weight_floor: Minimum normalized Shapley weight
    """
    shapley_samples: int = 64
    capacity_penalty: float = 1.0
    weight_floor: float = 0.05


@dataclass
class AuctionConfig:
    """
    Sealed-bid auction.

    Attributes:
        reserve_price: Bids must exceed this value to be admitted
    """
    reserve_price: float = 0.0


@dataclass
class EngineConfig:
    """
    Complete engine configuration with documented defaults.

    Attributes:
        deadline_s: Optional wall-clock budget per invocation in seconds
        utility: Utility model weights
        nash: Best-response dynamics settings (also used by Stackelberg followers)
        stackelberg: Leader search settings
        cooperative: Shapley sampling settings
        auction: Auction settings
    """
    deadline_s: Optional[float] = None
    utility: UtilityConfig = field(default_factory=UtilityConfig)
    nash: NashConfig = field(default_factory=NashConfig)
    stackelberg: StackelbergConfig = field(default_factory=StackelbergConfig)
    cooperative: CooperativeConfig = field(default_factory=CooperativeConfig)
    auction: AuctionConfig = field(default_factory=AuctionConfig)

    _SECTIONS = {
        'utility': UtilityConfig,
        'nash': NashConfig,
        'stackelberg': StackelbergConfig,
        'cooperative': CooperativeConfig,
        'auction': AuctionConfig,
    }

    def validate(self) -> 'EngineConfig':
        """
        Check every value.

        Raises:
            ConfigurationError: on the first invalid value
        """
        if self.deadline_s is not None and (
                isinstance(self.deadline_s, bool) or not isinstance(self.deadline_s, numbers.Real)):
            raise ConfigurationError(f"deadline_s must be a number, got {self.deadline_s!r}")
        for name in self._SECTIONS:
            _check_types(name, getattr(self, name))

        if self.deadline_s is not None and self.deadline_s <= 0:
            raise ConfigurationError(f"deadline_s must be positive, got {self.deadline_s}")

        u = self.utility
        if u.rate_weight < 0 or u.load_weight < 0:
            raise ConfigurationError("Utility weights must be non-negative")
        if not 0 < u.overload_discount <= 1:
            raise ConfigurationError(f"Invalid overload_discount: {u.overload_discount}")
        if u.frequency_ghz <= 0:
            raise ConfigurationError(f"Invalid frequency_ghz: {u.frequency_ghz}")

        n = self.nash
        if n.max_iterations < 1:
            raise ConfigurationError(f"nash.max_iterations must be >= 1, got {n.max_iterations}")
        if n.epsilon < 0:
            raise ConfigurationError(f"nash.epsilon must be non-negative, got {n.epsilon}")
        if n.update_mode not in UPDATE_MODES:
            raise ConfigurationError(f"Invalid update_mode: {n.update_mode}")

        s = self.stackelberg
        if s.max_outer_iterations < 1:
            raise ConfigurationError(
                f"stackelberg.max_outer_iterations must be >= 1, got {s.max_outer_iterations}")
        if s.outer_tolerance < 0:
            raise ConfigurationError(f"Invalid outer_tolerance: {s.outer_tolerance}")
        if s.leader_search not in LEADER_SEARCHES:
            raise ConfigurationError(f"Invalid leader_search: {s.leader_search}")
        if s.grid_size < 2:
            raise ConfigurationError(f"stackelberg.grid_size must be >= 2, got {s.grid_size}")
        if not 0 < s.golden_tolerance < 1:
            raise ConfigurationError(f"Invalid golden_tolerance: {s.golden_tolerance}")
        if s.admission_penalty < 0:
            raise ConfigurationError(f"Invalid admission_penalty: {s.admission_penalty}")

        c = self.cooperative
        if c.shapley_samples < 1:
            raise ConfigurationError(f"cooperative.shapley_samples must be >= 1, got {c.shapley_samples}")
        if c.capacity_penalty < 0:
            raise ConfigurationError(f"Invalid capacity_penalty: {c.capacity_penalty}")
        if not 0 <= c.weight_floor <= 1:
            raise ConfigurationError(f"Invalid weight_floor: {c.weight_floor}")

        if self.auction.reserve_price < 0:
            raise ConfigurationError(f"Invalid reserve_price: {self.auction.reserve_price}")
        return self

    @classmethod
    def from_dict(cls, data: dict) -> 'EngineConfig':
        """
        Build a configuration from a (possibly partial) nested dictionary.

        Unknown keys are rejected so that typos do not silently fall back
        to defaults.
        """
        data = dict(data or {})
        kwargs = {}
        if 'deadline_s' in data:
            kwargs['deadline_s'] = data.pop('deadline_s')
        for name, section_cls in cls._SECTIONS.items():
            section = data.pop(name, None) or {}
            if not isinstance(section, dict):
                raise ConfigurationError(f"Section {name} must be a mapping, got {section!r}")
            known = {f.name for f in fields(section_cls)}
            unknown = set(section) - known
            if unknown:
                raise ConfigurationError(f"Unknown {name} option(s): {sorted(unknown)}")
            kwargs[name] = section_cls(**section)
        if data:
            raise ConfigurationError(f"Unknown configuration section(s): {sorted(data)}")
        return cls(**kwargs).validate()

    @classmethod
    def from_json(cls, path) -> 'EngineConfig':
        """Load a configuration from a JSON file."""
        with open(Path(path), 'r') as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Invalid configuration file {path}: {e}") from e
        return cls.from_dict(data)

    def to_dict(self) -> dict:
        return asdict(self)

    def save(self, filename: str) -> None:
        """Save the configuration as JSON."""
        with open(filename, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
