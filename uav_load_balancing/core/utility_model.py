"""
Achievable-utility model for (user, station, occupancy) triples.

Utility = link term + congestion term:

    u(i, s, n) = w_r · log2(1 + rate(i, s) / demand_i)
               + w_l · (1 / n) · δ^max(0, n - capacity_s)

The link term depends only on the user's own choice, the congestion term
only on the chosen station and its occupancy n (the user included). Station
selection is therefore an exact potential game with Rosenthal potential

    Φ = Σ_i link(i, s_i) + Σ_s Σ_{k=1..n_s} congestion(s, k)

which is what guarantees finite convergence of best-response dynamics.
"""

import numpy as np
from typing import Optional

from .base_station import BaseStation, StationKind
from .channel import Channel
from .mobile_user import MobileUser
from .snapshot import NetworkSnapshot


class UtilityModel:
    """
    Congestion-sensitive utility of serving a user from a station.

    All values are non-negative. Beyond capacity the congestion term is
    discounted geometrically by ``overload_discount``, which is how an
    exhausted station is represented (never as an error).
    """

    def __init__(
        self,
        channel: Optional[Channel] = None,
        aerial_channel: Optional[Channel] = None,
        rate_weight: float = 1.0,
        load_weight: float = 1.0,
        overload_discount: float = 0.5
    ):
        """
        Args:
            channel: Channel for ground station links (realistic free space by default)
            aerial_channel: Channel for aerial station links (air-to-ground by default)
            rate_weight: Weight of the link (rate satisfaction) term
            load_weight: Weight of the congestion (resource share) term
            overload_discount: Factor in (0, 1] applied per user above capacity
        """
        if rate_weight < 0 or load_weight < 0:
            raise ValueError("Utility weights must be non-negative")
        if not 0 < overload_discount <= 1:
            raise ValueError(f"Invalid overload_discount: {overload_discount}")
        self.channel = channel or Channel.create_realistic_channel()
        self.aerial_channel = aerial_channel or Channel.create_air_to_ground_channel()
        self.rate_weight = rate_weight
        self.load_weight = load_weight
        self.overload_discount = overload_discount

    def _channel_for(self, station: BaseStation) -> Channel:
        return self.aerial_channel if station.kind == StationKind.AERIAL else self.channel

    # ── scalar contract ──────────────────────────────────────────────────

    def achievable_rate(self, user: MobileUser, station: BaseStation) -> float:
        """Rate in Mbps the user would get with the station to itself."""
        channel = self._channel_for(station)
        gain = channel.gain(station.position, user.position)
        return float(channel.achievable_rate(station.transmit_power, gain, station.bandwidth_mhz))

    def link_utility(self, user: MobileUser, station: BaseStation) -> float:
        """Occupancy-independent part of the utility."""
        rate = self.achievable_rate(user, station)
        return self.rate_weight * float(np.log2(1 + rate / user.required_rate))

    def congestion_utility(self, station: BaseStation, occupancy: int) -> float:
        """Shared part of the utility when ``occupancy`` users are served."""
        if occupancy <= 0:
            return 0.0
        overflow = max(0, occupancy - station.capacity)
        return self.load_weight / occupancy * self.overload_discount ** overflow

    def utility(self, user: MobileUser, station: BaseStation, occupancy: int) -> float:
        """
        Utility of ``user`` at ``station`` when the station serves
        ``occupancy`` users in total (the user included).

        Returns:
            Scalar >= 0; 0.0 if the station does not cover the user
        """
        if not station.covers(user.position):
            return 0.0
        occupancy = max(1, occupancy)
        return self.link_utility(user, station) + self.congestion_utility(station, occupancy)

    # ── vectorized helpers used by the solvers ───────────────────────────

    def link_matrix(self, snapshot: NetworkSnapshot) -> np.ndarray:
        """Link utilities, shape (num_users, num_stations)."""
        links = np.zeros((snapshot.num_users, snapshot.num_stations))
        if snapshot.is_empty:
            return links

        user_positions = snapshot.user_positions()
        demands = np.array([mu.required_rate for mu in snapshot.users], dtype=float)
        for kind in (StationKind.GROUND, StationKind.AERIAL):
            cols = [j for j, bs in enumerate(snapshot.stations) if bs.kind == kind]
            if not cols:
                continue
            stations = [snapshot.stations[j] for j in cols]
            channel = self.channel if kind == StationKind.GROUND else self.aerial_channel
            gains = channel.gain_matrix(np.array([bs.position for bs in stations]), user_positions)
            powers = np.array([bs.transmit_power for bs in stations])
            bandwidths = np.array([bs.bandwidth_mhz for bs in stations])
            rates = channel.achievable_rate(powers[np.newaxis, :], gains, bandwidths[np.newaxis, :])
            links[:, cols] = self.rate_weight * np.log2(1 + rates / demands[:, np.newaxis])
        return links

    def coverage_mask(self, snapshot: NetworkSnapshot) -> np.ndarray:
        """Which stations may serve which users, shape (num_users, num_stations)."""
        return snapshot.coverage_mask()

    def congestion_table(self, snapshot: NetworkSnapshot) -> np.ndarray:
        """
        Congestion term for every station and occupancy.

        Returns:
            Array of shape (num_stations, num_users + 1); column n holds the
            value with n occupants (column 0 is unused and set to 0)
        """
        occupancies = np.arange(snapshot.num_users + 1)
        table = np.zeros((snapshot.num_stations, snapshot.num_users + 1))
        for j, bs in enumerate(snapshot.stations):
            table[j] = [self.congestion_utility(bs, int(n)) for n in occupancies]
        return table

    def potential(self, station_of: np.ndarray, links: np.ndarray, congestion: np.ndarray) -> float:
        """
        Rosenthal potential of an assignment.

        Args:
            station_of: Station index per user (-1 = unassigned)
            links: Link matrix from ``link_matrix``
            congestion: Congestion table from ``congestion_table`` (possibly biased)
        """
        return potential_value(station_of, links, congestion)

    def __repr__(self) -> str:
        return (f"UtilityModel(rate_weight={self.rate_weight}, load_weight={self.load_weight}, "
                f"overload_discount={self.overload_discount})")


class TabularUtilityModel(UtilityModel):
    """
    Utility model with externally supplied link values.

    The caller provides the occupancy-independent link utility for every
    (user, station) pair, e.g. from its own physical-layer simulation; the
    congestion term is the same as in ``UtilityModel``.
    """

    def __init__(self, link_values: dict, default: float = 0.0, **kwargs):
        """
        Args:
            link_values: Mapping (user_id, station_id) -> link utility (>= 0)
            default: Link utility for pairs missing from the mapping
            **kwargs: Congestion parameters forwarded to UtilityModel
        """
        super().__init__(**kwargs)
        if any(v < 0 for v in link_values.values()) or default < 0:
            raise ValueError("Link utilities must be non-negative")
        self.link_values = dict(link_values)
        self.default = default

    @classmethod
    def uniform(cls, user_ids, station_ids, value: float, **kwargs) -> 'TabularUtilityModel':
        """Same link utility for every user at every station."""
        table = {(u, s): value for u in user_ids for s in station_ids}
        return cls(table, **kwargs)

    def link_utility(self, user: MobileUser, station: BaseStation) -> float:
        return float(self.link_values.get((user.user_id, station.station_id), self.default))

    def link_matrix(self, snapshot: NetworkSnapshot) -> np.ndarray:
        links = np.zeros((snapshot.num_users, snapshot.num_stations))
        for i, mu in enumerate(snapshot.users):
            for j, bs in enumerate(snapshot.stations):
                links[i, j] = self.link_utility(mu, bs)
        return links


def potential_value(station_of: np.ndarray, links: np.ndarray, congestion: np.ndarray) -> float:
    """Rosenthal potential Σ_i link(i, s_i) + Σ_s Σ_{k=1..n_s} congestion(s, k)."""
    assigned = station_of >= 0
    total = float(np.sum(links[np.nonzero(assigned)[0], station_of[assigned]]))
    counts = np.bincount(station_of[assigned], minlength=congestion.shape[0])
    for s, n in enumerate(counts):
        if n > 0:
            total += float(np.sum(congestion[s, 1:n + 1]))
    return total
