"""
Sealed-bid second-price auction for station slots.

Each user bids, at every station, the utility the model predicts for it
there; bids are derived rather than chosen, so truthfulness is a property of
the mechanism. Every station clears independently in ascending id order:
bidders are ranked by bid (ties to the lower user id), the top ``capacity``
bidders win a slot, and each winner pays the bid of the highest bidder left
out, i.e. the bid that would have won in its absence. A bidder admitted at
one station is withdrawn from the stations cleared after it.

Properties:
    - deterministic: identical bid matrices give identical outcomes
    - individually rational: no winner pays more than its own bid
    - strategy-proof per station: a winner's payment does not depend on its
      own bid as long as it keeps winning

Complexity: O(stations × users log users).
"""

import logging
import numpy as np
from dataclasses import dataclass
from typing import Optional

from ..config import AuctionConfig
from ..core.assignment import AssignmentState, UNASSIGNED
from ..core.snapshot import NetworkSnapshot
from ..core.utility_model import UtilityModel
from .base import Deadline, GameSolver, SolverOutput

logger = logging.getLogger(__name__)


@dataclass
class AuctionOutcome:
    """
    Winner determination and payments.

    Attributes:
        station_of: Winning station index per user (-1 = rejected)
        prices: Payment per user (0 for rejected users)
        winning_bids: Bid of each user at the station it won (0 if rejected)
    """
    station_of: np.ndarray
    prices: np.ndarray
    winning_bids: np.ndarray

    @property
    def revenue(self) -> float:
        return float(np.sum(self.prices))

    @property
    def welfare(self) -> float:
        return float(np.sum(self.winning_bids))

    @property
    def winners(self) -> np.ndarray:
        return np.nonzero(self.station_of != UNASSIGNED)[0]


def run_auction(bids: np.ndarray, capacities, reserve_price: float = 0.0) -> AuctionOutcome:
    """
    Clear one sealed-bid auction per station.

    Args:
        bids: Bid matrix (num_users, num_stations); a user only takes part
              at stations where its bid exceeds the reserve price
        capacities: Slots per station
        reserve_price: Minimum winning bid, and the price when nobody is left out

    Returns:
        AuctionOutcome
    """
    bids = np.asarray(bids, dtype=float)
    num_users, num_stations = bids.shape
    station_of = np.full(num_users, UNASSIGNED, dtype=int)
    prices = np.zeros(num_users)
    winning_bids = np.zeros(num_users)
    user_index = np.arange(num_users)

    for station in range(num_stations):
        column = bids[:, station]
        eligible = user_index[(station_of == UNASSIGNED) & (column > reserve_price)]
        if eligible.size == 0:
            continue
        # lexsort: last key is primary -> bid descending, then user index ascending
        ranked = eligible[np.lexsort((eligible, -column[eligible]))]
        capacity = max(0, int(capacities[station]))
        winners, excluded = ranked[:capacity], ranked[capacity:]
        clearing_price = float(column[excluded[0]]) if excluded.size else reserve_price

        station_of[winners] = station
        prices[winners] = clearing_price
        winning_bids[winners] = column[winners]
        logger.debug(
            f"Station {station}: {winners.size} winners, {excluded.size} excluded, "
            f"clearing price {clearing_price:.4f}"
        )

    return AuctionOutcome(station_of, prices, winning_bids)


class AuctionSolver(GameSolver):
    """
    Deterministic single-pass auction.

    Bids are the utility at full admission, i.e. at occupancy
    max(1, capacity), and 0 at stations that do not cover the user.
    """

    name = 'auction'

    def __init__(self, utility_model: UtilityModel, config: Optional[AuctionConfig] = None):
        super().__init__(utility_model)
        self.config = config or AuctionConfig()

    def bid_matrix(self, snapshot: NetworkSnapshot, links: np.ndarray, mask: np.ndarray) -> np.ndarray:
        """Bid of every user at every station."""
        at_capacity = np.array([
            self.utility_model.congestion_utility(bs, max(1, bs.capacity)) for bs in snapshot.stations
        ])
        return np.where(mask, links + at_capacity[np.newaxis, :], 0.0)

    def solve(
        self,
        snapshot: NetworkSnapshot,
        rng: Optional[np.random.Generator] = None,
        deadline: Optional[Deadline] = None
    ) -> SolverOutput:
        links, mask, congestion = self.prepare(snapshot)
        bids = self.bid_matrix(snapshot, links, mask)
        outcome = run_auction(bids, snapshot.capacities(), self.config.reserve_price)
        state = AssignmentState.from_station_indices(outcome.station_of, snapshot.num_stations)

        user_ids = snapshot.user_ids
        rejected = [user_ids[u] for u in state.unassigned_users()]
        logger.info(
            f"Auction: {len(outcome.winners)} winners, {len(rejected)} rejected, "
            f"revenue={outcome.revenue:.4f}"
        )
        return SolverOutput(
            state=state,
            iterations=1,
            converged=True,
            user_utilities=state.user_utilities(links, congestion),
            details={
                'prices': {user_ids[u]: float(outcome.prices[u]) for u in outcome.winners},
                'winning_bids': {user_ids[u]: float(outcome.winning_bids[u]) for u in outcome.winners},
                'rejected': rejected,
                'revenue': outcome.revenue,
                'welfare': outcome.welfare,
            }
        )
