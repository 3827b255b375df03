"""Tests for the load balancing engine and the command-line interface."""

import json

import numpy as np
import pytest

from uav_load_balancing import cli
from uav_load_balancing.config import EngineConfig
from uav_load_balancing.core.base_station import BaseStation
from uav_load_balancing.core.exceptions import ConfigurationError, InvalidGameType, MalformedTopology
from uav_load_balancing.core.mobile_user import MobileUser
from uav_load_balancing.core.topology import random_topology
from uav_load_balancing.core.utility_model import TabularUtilityModel
from uav_load_balancing.utils.logger import setup_logger
from uav_load_balancing.optimization.engine import (
    GameType, LoadBalancingEngine, LoadBalancingResult, balance_load
)


class TestGameType:
    """Test game type parsing."""

    @pytest.mark.parametrize('value, expected', [
        ('nash', GameType.NASH),
        ('NASH_EQUILIBRIUM', GameType.NASH),
        ('Stackelberg', GameType.STACKELBERG),
        ('stackelberg_game', GameType.STACKELBERG),
        ('cooperative', GameType.COOPERATIVE),
        ('auction_based', GameType.AUCTION),
        ('auction-based', GameType.AUCTION),
        (GameType.AUCTION, GameType.AUCTION),
    ])
    def test_parse(self, value, expected):
        assert GameType.parse(value) == expected

    @pytest.mark.parametrize('value', ['', 'minimax', None, 3])
    def test_invalid(self, value):
        with pytest.raises(InvalidGameType):
            GameType.parse(value)

    def test_display_name(self):
        assert GameType.NASH.display_name == 'Nash Equilibrium'


class TestLoadBalancingEngine:
    """Test the engine facade."""

    def test_invalid_game_type_at_construction(self):
        with pytest.raises(InvalidGameType):
            LoadBalancingEngine('roulette')

    def test_invalid_config_at_construction(self):
        config = EngineConfig()
        config.nash.update_mode = 'parallel'
        with pytest.raises(ConfigurationError):
            LoadBalancingEngine(GameType.NASH, config)

    @pytest.mark.parametrize('game', list(GameType))
    def test_no_users(self, game):
        stations = [BaseStation.ground(0), BaseStation.aerial(1)]
        result = LoadBalancingEngine(game).balance(stations, [])

        assert result.assignment == {0: frozenset(), 1: frozenset()}
        assert result.converged
        assert result.iterations == 0
        assert not result.fallback_used

    def test_no_stations(self):
        result = LoadBalancingEngine('nash').balance([], [MobileUser(0), MobileUser(1)])
        assert result.assignment == {}
        assert result.unassigned_users == [0, 1]
        assert result.converged
        assert result.iterations == 0

    def test_malformed_topology(self):
        with pytest.raises(MalformedTopology):
            LoadBalancingEngine('nash').balance([BaseStation.ground(0, capacity=-2)], [MobileUser(0)])

    @pytest.mark.parametrize('game', list(GameType))
    @pytest.mark.parametrize('seed', [0, 1, 2])
    def test_conservation(self, game, seed):
        stations, users = random_topology(num_users=30, seed=seed)
        result = LoadBalancingEngine(game).balance(stations, users, seed=seed)

        assert set(result.assignment) == {bs.station_id for bs in stations}
        assigned = [uid for members in result.assignment.values() for uid in members]
        assert len(assigned) == len(set(assigned))
        assert sorted(assigned + result.unassigned_users) == sorted(mu.user_id for mu in users)
        assert set(result.user_utilities) == {mu.user_id for mu in users}
        assert np.isclose(sum(result.station_utilities.values()), result.total_utility)
        assert all(result.user_utilities[uid] == 0.0 for uid in result.unassigned_users)

    def test_inputs_not_modified(self):
        stations, users = random_topology(num_users=10, seed=3)
        positions = [mu.position.copy() for mu in users]
        LoadBalancingEngine('stackelberg').balance(stations, users, seed=0)

        assert all(np.array_equal(mu.position, p) for mu, p in zip(users, positions))
        assert all(mu.serving_station is None for mu in users)

    def test_seeded_results_reproducible(self):
        stations, users = random_topology(num_users=25, seed=9)
        engine = LoadBalancingEngine('cooperative')
        assert engine.balance(stations, users, seed=4).assignment == engine.balance(stations, users, seed=4).assignment

    def test_single_station_one_iteration(self):
        result = LoadBalancingEngine('nash').balance(
            [BaseStation.ground(0, capacity=3)], [MobileUser(i, position=[i, 0, 0]) for i in range(4)]
        )
        assert result.iterations == 1
        assert result.converged
        assert result.station_loads == {0: 4}

    def test_liveness_fallback(self):
        """A solver that assigns nobody on a serviceable topology is replaced by nearest-station."""
        config = EngineConfig.from_dict({'auction': {'reserve_price': 1e9}})
        stations = [BaseStation.ground(0, position=[0, 0, 30], capacity=1),
                    BaseStation.ground(1, position=[500, 0, 30], capacity=2)]
        users = [MobileUser(i, position=[i * 10.0, 0, 0]) for i in range(3)]
        result = LoadBalancingEngine('auction', config).balance(stations, users)

        assert result.fallback_used
        assert not result.converged
        assert result.assignment == {0: frozenset({0}), 1: frozenset({1, 2})}
        assert result.total_utility > 0

    def test_no_fallback_without_capacity(self):
        result = LoadBalancingEngine('nash').balance([BaseStation.ground(0, capacity=0)], [MobileUser(0)])
        assert not result.fallback_used

    def test_deadline_returns_best_so_far(self):
        config = EngineConfig.from_dict({'deadline_s': 1e-9})
        stations, users = random_topology(num_users=20, seed=5)
        result = LoadBalancingEngine('nash', config).balance(stations, users)

        assert not result.converged
        assert result.details['timed_out']
        assert not result.unassigned_users

    def test_custom_utility_model(self):
        stations = [BaseStation.ground(j, position=[j * 100.0, 0, 30], capacity=2) for j in range(3)]
        users = [MobileUser(i, position=[i * 10.0, 0, 0]) for i in range(4)]
        model = TabularUtilityModel.uniform(range(4), range(3), 1.0)
        result = LoadBalancingEngine('auction', utility_model=model).balance(stations, users)

        assert result.assignment == {0: frozenset({0, 1}), 1: frozenset({2, 3}), 2: frozenset()}
        assert result.details['revenue'] == 3.0

    def test_result_helpers(self):
        stations, users = random_topology(num_users=20, seed=1)
        result = balance_load(stations, users, 'nash', seed=1)

        assert isinstance(result, LoadBalancingResult)
        assert result.game_type == GameType.NASH
        assert 0 < result.jain_index() <= 1
        assert result.load_variance() >= 0
        for uid in result.assigned_users:
            assert uid in result.assignment[result.station_of(uid)]

        exported = json.loads(json.dumps(result.to_dict()))
        assert exported['game_type'] == 'nash'
        assert len(exported['user_utilities']) == 20


class TestCLI:
    """Test the command-line interface."""

    @pytest.fixture(autouse=True)
    def detach_console(self):
        yield
        setup_logger('uav_load_balancing', console=False)

    def test_single_game(self, tmp_path):
        output = tmp_path / 'results.json'
        cli.main(['--num-users', '12', '--game', 'auction', '--seed', '3', '--output', str(output), '--quiet'])

        results = json.loads(output.read_text())
        assert list(results['games']) == ['auction']
        assert results['games']['auction']['iterations'] == 1

    def test_all_games_with_baselines(self, tmp_path):
        output = tmp_path / 'results.json'
        cli.main(['--num-users', '16', '--distribution', 'even', '--baselines', '--seed', '0',
                  '--output', str(output), '--quiet'])

        results = json.loads(output.read_text())
        assert set(results['games']) == {g.value for g in GameType}
        assert len(results['baselines']) == 6

    def test_invalid_topology_exits(self):
        with pytest.raises(SystemExit):
            cli.main(['--num-users', '10', '--distribution', 'even', '--quiet'])

    def test_quiet_prints_only_json(self, capsys):
        """Deadline warnings go to stderr and stdout stays parseable."""
        cli.main(['--num-users', '9', '--game', 'nash', '--deadline', '1e-9', '--seed', '0', '--quiet'])

        captured = capsys.readouterr()
        results = json.loads(captured.out)
        assert not results['games']['nash']['converged']
        assert 'Deadline' in captured.err

    def test_invalid_config_type_exits(self, tmp_path, capsys):
        path = tmp_path / 'config.json'
        path.write_text(json.dumps({'nash': {'max_iterations': '5'}}))
        with pytest.raises(SystemExit):
            cli.main(['--config', str(path), '--quiet'])
        assert 'max_iterations' in capsys.readouterr().err
