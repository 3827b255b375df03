"""Command-line interface for UAV load balancing."""

import argparse
import json
import logging
import sys

import numpy as np

from .config import EngineConfig
from .core.snapshot import NetworkSnapshot
from .core.topology import USER_DISTRIBUTIONS, random_topology
from .optimization.baselines import BASELINES, run_baseline
from .optimization.engine import GameType, LoadBalancingEngine
from .utils import coefficient_of_variation, jain_index
from .utils.logger import get_logger, setup_logger


def _baseline_summary(name, snapshot, engine, seed):
    state = run_baseline(name, snapshot, engine.utility_model, rng=np.random.default_rng(seed))
    links, _, congestion = engine.solver.prepare(snapshot)
    loads = state.occupancies()
    return {
        'baseline': name,
        'loads': loads.tolist(),
        'unassigned': len(state.unassigned_users()),
        'total_utility': float(np.sum(state.user_utilities(links, congestion))),
        'jain_index': jain_index(loads),
        'load_cv': coefficient_of_variation(loads),
    }


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Game-theoretic load balancing for UAV-assisted networks",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    # Topology parameters
    parser.add_argument('--num-ground', type=int, default=2,
                        help='Number of ground base stations')
    parser.add_argument('--num-aerial', type=int, default=3,
                        help='Number of aerial base stations')
    parser.add_argument('--num-users', type=int, default=30,
                        help='Number of mobile users')
    parser.add_argument('--region-size', type=float, default=1000.0,
                        help='Size of the square region (m)')
    parser.add_argument('--distribution', choices=USER_DISTRIBUTIONS, default='random',
                        help='User distribution')
    parser.add_argument('--no-coverage', action='store_true',
                        help='Disable station coverage radii')

    # Engine parameters
    parser.add_argument('--game', choices=[g.value for g in GameType] + ['all'], default='all',
                        help='Game type to run')
    parser.add_argument('--baselines', action='store_true',
                        help='Also run the baseline assignments')
    parser.add_argument('--config', type=str, default=None,
                        help='Engine configuration (JSON file)')
    parser.add_argument('--deadline', type=float, default=None,
                        help='Wall-clock budget per game in seconds')

    # Output parameters
    parser.add_argument('--output', type=str, default=None,
                        help='Output file for results (JSON format)')
    parser.add_argument('--seed', type=int, default=None,
                        help='Random seed for reproducibility')
    parser.add_argument('--quiet', action='store_true',
                        help='Suppress progress output')
    parser.add_argument('--verbose', action='store_true',
                        help='Log solver iterations')
    parser.add_argument('--log-dir', type=str, default=None,
                        help='Also write logs to a timestamped file in this directory')

    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.WARNING if args.quiet else logging.INFO
    setup_logger('uav_load_balancing', log_dir=args.log_dir, level=level, file=args.log_dir is not None)
    logger = get_logger(__name__)

    try:
        config = EngineConfig.from_json(args.config) if args.config else EngineConfig()
        if args.deadline is not None:
            config.deadline_s = args.deadline
        config.validate()
        logger.debug(f"Engine configuration: {config.to_dict()}")

        coverage = {}
        if args.no_coverage:
            coverage = {'ground_coverage': None, 'aerial_coverage': None}
        stations, users = random_topology(
            num_ground=args.num_ground,
            num_aerial=args.num_aerial,
            num_users=args.num_users,
            region_size=args.region_size,
            seed=args.seed,
            user_distribution=args.distribution,
            **coverage
        )
        snapshot = NetworkSnapshot.capture(stations, users)

        if not args.quiet:
            summary = snapshot.summary()
            print("Starting UAV load balancing...")
            print(f"Configuration: {summary['num_ground']} ground + {summary['num_aerial']} aerial stations, "
                  f"{summary['num_users']} users, {args.region_size} m region, capacity {summary['total_capacity']}")

        games = list(GameType) if args.game == 'all' else [GameType.parse(args.game)]
        output = {'parameters': vars(args), 'config': config.to_dict(), 'games': {}, 'baselines': []}
        engine = None

        for game in games:
            engine = LoadBalancingEngine(game, config)
            result = engine.balance_snapshot(snapshot, seed=args.seed)
            output['games'][game.value] = result.to_dict()
            if not args.quiet:
                loads = list(result.station_loads.values())
                print(f"\n{game.display_name}:")
                print(f"  Station loads: {loads}")
                print(f"  Unassigned users: {len(result.unassigned_users)}")
                print(f"  Total utility: {result.total_utility:.4f}")
                print(f"  Jain index: {result.jain_index():.4f}")
                print(f"  Iterations: {result.iterations}, converged: {result.converged}"
                      f"{' (fallback)' if result.fallback_used else ''}")

        if args.baselines:
            if not args.quiet:
                print("\nBaselines:")
            for name in BASELINES:
                summary = _baseline_summary(name, snapshot, engine, args.seed)
                output['baselines'].append(summary)
                if not args.quiet:
                    print(f"  {name:<17} utility={summary['total_utility']:.4f} "
                          f"jain={summary['jain_index']:.4f} unassigned={summary['unassigned']}")

        if args.output:
            with open(args.output, 'w') as f:
                json.dump(output, f, indent=2)
            if not args.quiet:
                print(f"Results saved to {args.output}")

        # Output results to stdout for programmatic access
        if args.quiet:
            print(json.dumps(output, indent=2))

    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
