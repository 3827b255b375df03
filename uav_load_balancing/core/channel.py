"""Channel models for ground and aerial base stations."""

import numpy as np
from scipy.spatial.distance import cdist

from ..utils import dbm_to_watt, db_to_linear

SPEED_OF_LIGHT = 3e8
NOISE_DENSITY_DBM_HZ = -174.0


class Channel:
    """
    Communication channel model between base stations and mobile users.

    Supported models:
        'freeSpace'   G = G0 / d², used for ground station links
        'airToGround' free-space path loss plus an elevation-dependent
                      LoS/NLoS excess loss, used for aerial station links
    """

    MODELS = ('freeSpace', 'airToGround')

    def __init__(
        self,
        model: str = 'freeSpace',
        gain_constant: float = 1.0,
        frequency_hz: float = 2.4e9,
        los_b1: float = 9.61,
        los_b2: float = 0.21,
        zeta_los_db: float = 1.0,
        zeta_nlos_db: float = 20.0,
        min_distance: float = 1.0
    ):
        """
        Initialize channel model.

        Args:
            model: Channel model type ('freeSpace' or 'airToGround')
            gain_constant: Gain at 1 m for the free space model
            frequency_hz: Carrier frequency (air-to-ground model)
            los_b1, los_b2: LoS probability regression coefficients
            zeta_los_db: Excess loss of the LoS component in dB
            zeta_nlos_db: Excess loss of the NLoS component in dB
            min_distance: Distances are floored to this value (meters)
        """
        if model not in self.MODELS:
            raise ValueError(f"Unsupported channel model: {model}")
        self.model = model
        self.gain_constant = gain_constant
        self.frequency_hz = frequency_hz
        self.los_b1 = los_b1
        self.los_b2 = los_b2
        self.zeta_los_db = zeta_los_db
        self.zeta_nlos_db = zeta_nlos_db
        self.min_distance = min_distance

    def gain(self, bs_position: np.ndarray, mu_position: np.ndarray) -> float:
        """
        Compute channel gain between base station and mobile user.

        Args:
            bs_position: Base station position [x, y, z]
            mu_position: Mobile user position [x, y, z]

        Returns:
            Channel gain value (linear)
        """
        gains = self.gain_matrix(
            np.asarray(bs_position, dtype=float).reshape(1, 3),
            np.asarray(mu_position, dtype=float).reshape(1, 3)
        )
        return float(gains[0, 0])

    def gain_matrix(self, bs_positions: np.ndarray, mu_positions: np.ndarray) -> np.ndarray:
        """
        Compute channel gains for every (user, station) pair.

        Args:
            bs_positions: Station positions, shape (num_bs, 3)
            mu_positions: User positions, shape (num_mu, 3)

        Returns:
            Gains of shape (num_mu, num_bs)
        """
        bs_positions = np.atleast_2d(np.asarray(bs_positions, dtype=float))
        mu_positions = np.atleast_2d(np.asarray(mu_positions, dtype=float))
        distances = np.maximum(cdist(mu_positions, bs_positions), self.min_distance)

        if self.model == 'freeSpace':
            return self._free_space_gain(distances)
        heights = bs_positions[np.newaxis, :, 2] - mu_positions[:, np.newaxis, 2]
        return self._air_to_ground_gain(distances, heights)

    def _free_space_gain(self, distances: np.ndarray) -> np.ndarray:
        """
        Free space path loss model: G = G0 / d²
        where d is the 3D distance between BS and MU.
        """
        return self.gain_constant / distances ** 2

    def los_probability(self, elevation_deg: np.ndarray) -> np.ndarray:
        """LoS probability as a logistic function of the elevation angle in degrees."""
        return 1.0 / (1.0 + self.los_b1 * np.exp(-self.los_b2 * (elevation_deg - self.los_b1)))

    def _air_to_ground_gain(self, distances: np.ndarray, heights: np.ndarray) -> np.ndarray:
        """
        Expected air-to-ground gain.

        PL = FSPL + P_LoS·ζ_LoS + (1 - P_LoS)·ζ_NLoS with
        FSPL = 20·log10(4π f d / c) and the LoS probability taken at the
        elevation angle of the station seen from the user.
        """
        ratio = np.clip(heights / distances, 0.0, 1.0)
        elevation_deg = np.degrees(np.arcsin(ratio))
        p_los = self.los_probability(elevation_deg)

        fspl_db = 20 * np.log10(4 * np.pi * self.frequency_hz * distances / SPEED_OF_LIGHT)
        path_loss_db = fspl_db + p_los * self.zeta_los_db + (1 - p_los) * self.zeta_nlos_db
        return db_to_linear(-path_loss_db)

    @staticmethod
    def noise_power(bandwidth_mhz) -> np.ndarray:
        """Thermal noise power in Watts over ``bandwidth_mhz``."""
        bandwidth_hz = np.asarray(bandwidth_mhz, dtype=float) * 1e6
        return dbm_to_watt(NOISE_DENSITY_DBM_HZ + 10 * np.log10(bandwidth_hz))

    def snr(self, transmit_power, gain, bandwidth_mhz) -> np.ndarray:
        """Signal-to-noise ratio (linear) of a link."""
        return np.asarray(transmit_power) * np.asarray(gain) / self.noise_power(bandwidth_mhz)

    def achievable_rate(self, transmit_power, gain, bandwidth_mhz) -> np.ndarray:
        """Shannon rate B·log2(1 + SNR) in Mbps."""
        return np.asarray(bandwidth_mhz) * np.log2(1 + self.snr(transmit_power, gain, bandwidth_mhz))

    @classmethod
    def create_realistic_channel(cls, frequency_hz: float = 2.4e9) -> 'Channel':
        """
        Create a realistic free space channel model.

        The gain constant is the Friis factor (λ / 4π)² for isotropic antennas.

        Args:
            frequency_hz: Carrier frequency in Hz

        Returns:
            Channel object with realistic parameters
        """
        wavelength = SPEED_OF_LIGHT / frequency_hz
        gain_constant = (wavelength / (4 * np.pi)) ** 2
        return cls(model='freeSpace', gain_constant=gain_constant, frequency_hz=frequency_hz)

    @classmethod
    def create_air_to_ground_channel(cls, frequency_hz: float = 2.4e9) -> 'Channel':
        """Create the air-to-ground channel used for aerial stations."""
        return cls(model='airToGround', frequency_hz=frequency_hz)

    def __repr__(self) -> str:
        if self.model == 'freeSpace':
            return f"Channel(model={self.model}, gain_constant={self.gain_constant})"
        return f"Channel(model={self.model}, frequency_hz={self.frequency_hz})"
