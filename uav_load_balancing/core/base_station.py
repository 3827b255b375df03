"""Base station implementations (ground and aerial) for load balancing."""

import numpy as np
from enum import Enum
from typing import List, Optional, Union

from .mobile_user import StationId


class StationKind(Enum):
    """Kind of access point."""
    GROUND = 'ground'
    AERIAL = 'aerial'

    @classmethod
    def parse(cls, value: Union['StationKind', str, None]) -> Optional['StationKind']:
        """Parse a kind from an enum member or its (case-insensitive) name.

        Returns None for an empty or unknown value so that snapshot
        validation can report it together with the station identifier.
        """
        if isinstance(value, cls):
            return value
        if not value or not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class BaseStation:
    """
    A fixed ground station or a mobile aerial station (UAV).

    Stations serve at most ``capacity`` users before the utility model
    starts discounting their congestion term; an optional coverage radius
    excludes far-away users entirely.
    """

    DEFAULT_HEIGHTS = {StationKind.GROUND: 30.0, StationKind.AERIAL: 100.0}

    def __init__(
        self,
        station_id: int,
        kind: Union[StationKind, str] = StationKind.GROUND,
        position: np.ndarray = None,
        capacity: int = 30,
        transmit_power: float = 20.0,
        bandwidth_mhz: float = 20.0,
        coverage_radius: Optional[float] = None
    ):
        """
        Initialize a base station.

        Args:
            station_id: Unique integer identifier
            kind: StationKind.GROUND or StationKind.AERIAL (or their names)
            position: 3D position [x, y, z] in meters. Default: origin at the
                      default height for the kind
            capacity: Maximum number of users served without overload
            transmit_power: Transmission power in Watts
            bandwidth_mhz: Channel bandwidth in MHz
            coverage_radius: Maximum serving distance in meters (None = unlimited)
        """
        self.station_id = StationId(station_id)
        parsed = StationKind.parse(kind)
        # Unparseable kinds are kept verbatim and rejected by snapshot validation
        self.kind = parsed if parsed is not None else kind
        if position is None:
            height = self.DEFAULT_HEIGHTS.get(parsed, 0.0)
            position = [0.0, 0.0, height]
        self.position = np.array(position, dtype=float)
        self.capacity = capacity
        self.transmit_power = transmit_power
        self.bandwidth_mhz = bandwidth_mhz
        self.coverage_radius = coverage_radius

    @property
    def is_aerial(self) -> bool:
        return self.kind == StationKind.AERIAL

    def distance_to(self, position: np.ndarray) -> float:
        """3D Euclidean distance from this station to ``position``."""
        return float(np.linalg.norm(self.position - np.asarray(position, dtype=float)))

    def covers(self, position: np.ndarray) -> bool:
        """Whether a user at ``position`` is inside the coverage radius."""
        if self.coverage_radius is None:
            return True
        return self.distance_to(position) <= self.coverage_radius

    def clone(self) -> 'BaseStation':
        """Create a copy of this base station."""
        return BaseStation(
            station_id=self.station_id,
            kind=self.kind,
            position=self.position.copy(),
            capacity=self.capacity,
            transmit_power=self.transmit_power,
            bandwidth_mhz=self.bandwidth_mhz,
            coverage_radius=self.coverage_radius
        )

    @classmethod
    def ground(cls, station_id: int, position=None, **kwargs) -> 'BaseStation':
        """Create a ground base station."""
        return cls(station_id, StationKind.GROUND, position, **kwargs)

    @classmethod
    def aerial(cls, station_id: int, position=None, **kwargs) -> 'BaseStation':
        """Create an aerial (UAV) base station; lower power than ground stations."""
        kwargs.setdefault('transmit_power', 1.0)
        kwargs.setdefault('capacity', 15)
        return cls(station_id, StationKind.AERIAL, position, **kwargs)

    @classmethod
    def clone_at_random_positions(
        cls,
        template: 'BaseStation',
        num_stations: int,
        region_size: float,
        rng: np.random.Generator = None,
        first_id: int = 0
    ) -> List['BaseStation']:
        """
        Create multiple base stations at random horizontal positions.

        Args:
            template: Template base station to clone (height and radio
                      parameters are kept)
            num_stations: Number of stations to create
            region_size: Size of the square region for random placement
            rng: Random generator (a fresh unseeded one if None)
            first_id: Identifier of the first created station

        Returns:
            List of base stations at random positions
        """
        rng = np.random.default_rng() if rng is None else rng
        stations = []
        for i in range(num_stations):
            bs = template.clone()
            bs.station_id = StationId(first_id + i)
            bs.position[:2] = rng.random(2) * region_size
            stations.append(bs)
        return stations

    def __repr__(self) -> str:
        kind = self.kind.value if isinstance(self.kind, StationKind) else self.kind
        return (f"BaseStation(id={self.station_id}, kind={kind}, pos={self.position}, "
                f"capacity={self.capacity}, power={self.transmit_power})")
