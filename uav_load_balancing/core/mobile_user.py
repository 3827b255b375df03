"""Mobile User implementation for load balancing."""

import numpy as np
from typing import List, NewType, Optional

UserId = NewType('UserId', int)
StationId = NewType('StationId', int)


class MobileUser:
    """
    Represents a mobile user that must be served by one base station.

    The simulation driver owns and moves these objects between timesteps;
    the load balancing engine only ever sees read-only clones of them
    (see ``NetworkSnapshot``).
    """

    def __init__(
        self,
        user_id: int,
        position: np.ndarray = None,
        required_rate: float = 5.0,
        serving_station: Optional[int] = None
    ):
        """
        Initialize a mobile user.

        Args:
            user_id: Unique integer identifier
            position: 3D position [x, y, z] in meters. Default: [0, 0, 0]
            required_rate: Required data rate in Mbps
            serving_station: Identifier of the station currently serving the
                             user, or None when unassigned
        """
        self.user_id = UserId(user_id)
        self.position = np.array([0.0, 0.0, 0.0]) if position is None else np.array(position, dtype=float)
        self.required_rate = required_rate
        self.serving_station = None if serving_station is None else StationId(serving_station)

    def clone(self) -> 'MobileUser':
        """Create a copy of this mobile user."""
        return MobileUser(
            user_id=self.user_id,
            position=self.position.copy(),
            required_rate=self.required_rate,
            serving_station=self.serving_station
        )

    @classmethod
    def clone_at_random_positions(
        cls,
        template: 'MobileUser',
        num_users: int,
        region_size: float,
        rng: np.random.Generator = None,
        first_id: int = 0
    ) -> List['MobileUser']:
        """
        Create multiple mobile users at uniformly random positions.

        Args:
            template: Template mobile user to clone (height and rate are kept)
            num_users: Number of users to create
            region_size: Size of the square region for random placement
            rng: Random generator (a fresh unseeded one if None)
            first_id: Identifier of the first created user

        Returns:
            List of mobile users at random positions
        """
        rng = np.random.default_rng() if rng is None else rng
        users = []
        for i in range(num_users):
            user = template.clone()
            user.user_id = UserId(first_id + i)
            user.position[:2] = rng.random(2) * region_size
            users.append(user)
        return users

    @classmethod
    def clone_at_positions(
        cls,
        template: 'MobileUser',
        positions: np.ndarray,
        first_id: int = 0
    ) -> List['MobileUser']:
        """
        Create multiple mobile users at specified positions.

        Args:
            template: Template mobile user to clone
            positions: Array of shape (3, N) with N positions
            first_id: Identifier of the first created user

        Returns:
            List of mobile users at specified positions
        """
        users = []
        for i in range(positions.shape[1]):
            user = template.clone()
            user.user_id = UserId(first_id + i)
            user.position = positions[:, i].astype(float)
            users.append(user)
        return users

    def __repr__(self) -> str:
        return (f"MobileUser(id={self.user_id}, pos={self.position}, "
                f"rate={self.required_rate}, station={self.serving_station})")
