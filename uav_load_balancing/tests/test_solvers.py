"""Tests for the game solvers and baselines."""

import numpy as np
import pytest

from uav_load_balancing.config import (
    AuctionConfig, CooperativeConfig, NashConfig, StackelbergConfig
)
from uav_load_balancing.core.base_station import BaseStation
from uav_load_balancing.core.mobile_user import MobileUser
from uav_load_balancing.core.snapshot import NetworkSnapshot
from uav_load_balancing.core.topology import random_snapshot
from uav_load_balancing.core.utility_model import TabularUtilityModel, UtilityModel
from uav_load_balancing.optimization.auction import AuctionSolver, run_auction
from uav_load_balancing.optimization.baselines import BASELINES, nearest_station, run_baseline
from uav_load_balancing.optimization.cooperative import CooperativeSolver
from uav_load_balancing.optimization.nash import NashSolver, initial_profile
from uav_load_balancing.optimization.stackelberg import StackelbergSolver, biased_congestion
from uav_load_balancing.utils import load_variance


def scenario(capacities=(2, 2, 2), num_users=4):
    """Stations with identical link utility for every user."""
    stations = [BaseStation.ground(j, position=[j * 100.0, 0, 30], capacity=c) for j, c in enumerate(capacities)]
    users = [MobileUser(i, position=[i * 10.0, 0, 0]) for i in range(num_users)]
    snapshot = NetworkSnapshot.capture(stations, users)
    model = TabularUtilityModel.uniform(snapshot.user_ids, snapshot.station_ids, 1.0)
    return snapshot, model


def assert_valid(state, snapshot):
    """Every user at most once, only at covering stations."""
    mask = snapshot.coverage_mask()
    seen = set()
    for station in range(snapshot.num_stations):
        for user in state.members(station):
            assert user not in seen
            assert mask[user, station]
            seen.add(user)
    assert len(seen) == state.num_assigned


def assert_nash(state, links, mask, congestion, epsilon=1e-9):
    """No user gains more than epsilon by a unilateral move."""
    counts = state.occupancies()
    for user, current in enumerate(state.station_indices):
        if current < 0:
            assert not mask[user].any()
            continue
        current_value = links[user, current] + congestion[current, counts[current]]
        for station in np.nonzero(mask[user])[0]:
            if station == current:
                continue
            deviation = links[user, station] + congestion[station, counts[station] + 1]
            assert deviation <= current_value + epsilon


class TestNashSolver:
    """Test best-response dynamics."""

    @pytest.mark.parametrize('seed', range(8))
    def test_equilibrium_on_random_topologies(self, seed):
        snapshot = random_snapshot(num_users=25, seed=seed)
        solver = NashSolver(UtilityModel())
        output = solver.solve(snapshot)
        links, mask, congestion = solver.prepare(snapshot)

        assert output.converged
        assert_valid(output.state, snapshot)
        assert_nash(output.state, links, mask, congestion)

    @pytest.mark.parametrize('seed', range(8))
    def test_potential_strictly_increases(self, seed):
        snapshot = random_snapshot(num_ground=1, num_aerial=4, num_users=30, seed=seed, user_distribution='hotspot')
        output = NashSolver(UtilityModel(), NashConfig(randomize_order=True)).solve(
            snapshot, rng=np.random.default_rng(seed)
        )
        trace = output.details['potential_trace']
        assert len(trace) == output.details['moves'] + 1
        assert all(b > a for a, b in zip(trace, trace[1:]))

    def test_single_station_one_sweep(self):
        snapshot = NetworkSnapshot.capture(
            [BaseStation.ground(0, capacity=2)],
            [MobileUser(i, position=[i * 20.0, 0, 0]) for i in range(5)]
        )
        output = NashSolver(UtilityModel()).solve(snapshot)
        assert output.iterations == 1
        assert output.converged
        assert output.state.occupancies().tolist() == [5]

    def test_identical_links_balance_load(self):
        snapshot, model = scenario()
        output = NashSolver(model).solve(snapshot)
        loads = output.state.occupancies()

        assert output.converged
        assert output.state.num_assigned == 4
        assert loads.max() - loads.min() <= 1
        assert np.all(loads <= snapshot.capacities())

    def test_uncovered_user_stays_unassigned(self):
        snapshot = NetworkSnapshot.capture(
            [BaseStation.ground(0, position=[0, 0, 30], coverage_radius=100.0)],
            [MobileUser(0, position=[10, 0, 0]), MobileUser(1, position=[5000, 0, 0])]
        )
        output = NashSolver(UtilityModel()).solve(snapshot)
        assert output.state.unassigned_users() == [1]
        assert output.user_utilities[1] == 0.0

    def test_initial_profile_keeps_bound_station(self):
        links = np.array([[1.0, 3.0], [2.0, 1.0]])
        mask = np.array([[True, True], [False, True]])
        state = initial_profile(links, mask, bound=np.array([0, 0]))
        # User 0 keeps its covering bound station, user 1's bound station does not cover it
        assert state.station_indices.tolist() == [0, 1]

    def test_synchronous_updates_may_cycle(self):
        snapshot, model = scenario()
        solver = NashSolver(model, NashConfig(update_mode='synchronous', max_iterations=10))
        output = solver.solve(snapshot)

        assert not output.converged
        assert output.iterations == 10
        assert output.state.num_assigned == 4

    def test_synchronous_converges_without_conflicts(self):
        snapshot = NetworkSnapshot.capture(
            [BaseStation.ground(0, position=[0, 0, 30]), BaseStation.ground(1, position=[900, 0, 30])],
            [MobileUser(0, position=[10, 0, 0]), MobileUser(1, position=[890, 0, 0])]
        )
        output = NashSolver(UtilityModel(), NashConfig(update_mode='synchronous')).solve(snapshot)
        assert output.converged
        assert output.state.station_indices.tolist() == [0, 1]


class TestStackelbergSolver:
    """Test the leader-follower solver."""

    def test_biased_congestion(self):
        congestion = np.array([[0.0, 1.0, 0.5, 0.25]])
        biased = biased_congestion(congestion, np.array([2]), np.array([0.5]), penalty=1.0)
        # Admitted load 1: penalty on the second and third occupant
        assert np.allclose(biased, [[0.0, 1.0, -0.5, -1.75]])

    @pytest.mark.parametrize('leader_search', ['grid', 'golden'])
    def test_valid_leader_decision(self, leader_search):
        snapshot = random_snapshot(num_users=20, seed=11)
        solver = StackelbergSolver(UtilityModel(), StackelbergConfig(leader_search=leader_search))
        output = solver.solve(snapshot, rng=np.random.default_rng(0))
        details = output.details

        assert_valid(output.state, snapshot)
        assert output.converged
        assert set(details['thresholds']) == set(snapshot.station_ids)
        assert all(0.0 <= t <= 1.0 for t in details['thresholds'].values())
        assert output.iterations == details['outer_iterations'] + details['inner_iterations']

    def test_welfare_never_decreases(self):
        snapshot = random_snapshot(num_ground=1, num_aerial=3, num_users=25, seed=4, user_distribution='hotspot')
        output = StackelbergSolver(UtilityModel()).solve(snapshot)
        history = output.details['welfare_history']
        assert all(b >= a for a, b in zip(history, history[1:]))
        assert np.isclose(output.details['welfare'], np.sum(output.user_utilities))


class TestCooperativeSolver:
    """Test the Shapley-weighted solver."""

    def test_reproducible_with_seed(self):
        snapshot = random_snapshot(num_users=20, seed=2)
        solver = CooperativeSolver(UtilityModel(), CooperativeConfig(shapley_samples=16))
        first = solver.solve(snapshot, rng=np.random.default_rng(42))
        second = solver.solve(snapshot, rng=np.random.default_rng(42))

        assert first.state == second.state
        assert first.details['shapley_values'] == second.details['shapley_values']

    def test_shapley_efficiency(self):
        snapshot = random_snapshot(num_users=15, seed=3)
        config = CooperativeConfig(shapley_samples=10, weight_floor=0.0)
        output = CooperativeSolver(UtilityModel(), config).solve(
            snapshot, rng=np.random.default_rng(0)
        )
        details = output.details
        assert output.iterations == 10
        assert output.converged
        assert np.isclose(sum(details['shapley_values'].values()), details['grand_coalition_value'])
        assert np.isclose(np.mean(list(details['shapley_weights'].values())), 1.0)

    @pytest.mark.parametrize('seed', range(5))
    def test_identical_links_scenario(self, seed):
        """Every user is served within capacity; the sampled weights only decide {2, 2, 0} versus {2, 1, 1}."""
        snapshot, model = scenario()
        output = CooperativeSolver(model).solve(snapshot, rng=np.random.default_rng(seed))
        loads = output.state.occupancies()

        assert output.converged
        assert output.state.num_assigned == 4
        assert np.all(loads <= snapshot.capacities())
        assert sorted(loads.tolist()) in ([0, 2, 2], [1, 1, 2])

    def test_fairer_than_nearest_station(self):
        """Over hotspot topologies, loads are more even than with nearest-station association."""
        model = UtilityModel()
        solver = CooperativeSolver(model, CooperativeConfig(shapley_samples=128))
        cooperative, nearest = [], []
        for seed in range(10):
            snapshot = random_snapshot(
                num_ground=4, num_aerial=0, num_users=40, ground_capacity=10, ground_coverage=None,
                user_distribution='hotspot', seed=seed
            )
            output = solver.solve(snapshot, rng=np.random.default_rng(seed))
            cooperative.append(load_variance(output.state.occupancies()))
            nearest.append(load_variance(nearest_station(snapshot, respect_capacity=False).occupancies()))

        assert np.mean(cooperative) < np.mean(nearest)


class TestAuction:
    """Test the sealed-bid auction."""

    def test_second_price(self):
        bids = np.array([[5.0], [4.0], [3.0], [2.0]])
        outcome = run_auction(bids, [2])
        assert outcome.station_of.tolist() == [0, 0, -1, -1]
        assert outcome.prices.tolist() == [3.0, 3.0, 0.0, 0.0]
        assert outcome.revenue == 6.0
        assert outcome.welfare == 9.0

    def test_payment_independent_of_own_bid(self):
        bids = np.array([[5.0], [4.0], [3.0], [2.0]])
        base = run_auction(bids, [2])
        for user, new_bid in [(0, 10.0), (1, 3.5)]:
            changed = bids.copy()
            changed[user, 0] = new_bid
            outcome = run_auction(changed, [2])
            assert outcome.station_of[user] == 0
            assert outcome.prices[user] == base.prices[user]

    def test_reserve_price(self):
        outcome = run_auction(np.array([[1.0], [0.5]]), [5], reserve_price=0.8)
        assert outcome.station_of.tolist() == [0, -1]
        assert outcome.prices[0] == 0.8

    def test_ties_go_to_lower_user(self):
        outcome = run_auction(np.ones((3, 1)), [1])
        assert outcome.station_of.tolist() == [0, -1, -1]

    def test_withdrawn_after_winning(self):
        bids = np.array([[3.0, 3.0], [2.0, 2.0]])
        outcome = run_auction(bids, [1, 1])
        assert outcome.station_of.tolist() == [0, 1]
        assert outcome.prices.tolist() == [2.0, 0.0]

    def test_deterministic_and_individually_rational(self):
        snapshot = random_snapshot(num_users=40, seed=8)
        solver = AuctionSolver(UtilityModel())
        first = solver.solve(snapshot)
        second = solver.solve(snapshot)

        assert first.state == second.state
        assert first.details['prices'] == second.details['prices']
        for user_id, price in first.details['prices'].items():
            assert price <= first.details['winning_bids'][user_id] + 1e-12

    def test_identical_links_scenario(self):
        snapshot, model = scenario()
        output = AuctionSolver(model).solve(snapshot)

        assert output.state.to_assignment(snapshot) == {
            0: frozenset({0, 1}), 1: frozenset({2, 3}), 2: frozenset()
        }
        assert output.details['prices'] == {0: 1.5, 1: 1.5, 2: 0.0, 3: 0.0}
        assert output.iterations == 1
        assert output.converged

    def test_unit_capacity_rejects_one_user(self):
        snapshot, model = scenario(capacities=(1, 1, 1))
        output = AuctionSolver(model).solve(snapshot)
        assert output.details['rejected'] == [3]
        assert output.state.num_assigned == 3

    def test_reserve_from_config(self):
        snapshot, model = scenario()
        output = AuctionSolver(model, AuctionConfig(reserve_price=100.0)).solve(snapshot)
        assert output.state.num_assigned == 0


class TestBaselines:
    """Test the baseline assignments."""

    @pytest.mark.parametrize('name', sorted(BASELINES))
    def test_respect_capacity(self, name):
        snapshot = random_snapshot(num_users=60, ground_capacity=10, aerial_capacity=5, seed=6)
        state = run_baseline(name, snapshot, UtilityModel(), rng=np.random.default_rng(0))
        assert np.all(state.occupancies() <= snapshot.capacities())
        assert state.num_assigned + len(state.unassigned_users()) == snapshot.num_users

    def test_nearest_without_capacity(self):
        snapshot = NetworkSnapshot.capture(
            [BaseStation.ground(0, position=[0, 0, 30], capacity=1),
             BaseStation.ground(1, position=[800, 0, 30], capacity=5)],
            [MobileUser(i, position=[i * 5.0, 0, 0]) for i in range(3)]
        )
        assert nearest_station(snapshot, respect_capacity=False).occupancies().tolist() == [3, 0]
        assert nearest_station(snapshot).occupancies().tolist() == [1, 2]

    @pytest.mark.parametrize('name', ['round_robin', 'least_loaded'])
    def test_even_spread(self, name):
        snapshot, model = scenario(num_users=6)
        state = run_baseline(name, snapshot, model)
        assert state.occupancies().tolist() == [2, 2, 2]

    def test_random_is_seeded(self):
        snapshot = random_snapshot(num_users=20, seed=1)
        first = run_baseline('random', snapshot, UtilityModel(), rng=np.random.default_rng(3))
        second = run_baseline('random', snapshot, UtilityModel(), rng=np.random.default_rng(3))
        assert first == second

    def test_unknown_baseline(self):
        snapshot, model = scenario()
        with pytest.raises(ValueError):
            run_baseline('oracle', snapshot, model)
