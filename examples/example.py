"""Example usage of the UAV load balancing package."""

from uav_load_balancing import EngineConfig, GameType, LoadBalancingEngine, random_topology
from uav_load_balancing.utils.logger import setup_logger


def main():
    """Compare the four games on one hotspot topology."""
    print("UAV Load Balancing Example")
    print("==========================")

    setup_logger('uav_load_balancing')

    stations, users = random_topology(
        num_ground=2,
        num_aerial=4,
        num_users=49,
        region_size=1000.0,
        user_distribution='hotspot',
        seed=42  # For reproducibility
    )
    config = EngineConfig.from_dict({'cooperative': {'shapley_samples': 128}})

    results = {}
    for game in GameType:
        engine = LoadBalancingEngine(game, config)
        results[game] = engine.balance(stations, users, seed=42)

    print(f"\n{'Game':<20} {'Utility':>10} {'Jain':>8} {'Unassigned':>11} {'Iterations':>11}")
    for game, result in results.items():
        print(f"{game.display_name:<20} {result.total_utility:>10.3f} {result.jain_index():>8.3f} "
              f"{len(result.unassigned_users):>11d} {result.iterations:>11d}")

    auction = results[GameType.AUCTION]
    print(f"\nAuction revenue: {auction.details['revenue']:.3f}")

    stackelberg = results[GameType.STACKELBERG]
    print("Stackelberg admission thresholds:")
    for station_id, threshold in stackelberg.details['thresholds'].items():
        print(f"  station {station_id}: {threshold:.2f}")


if __name__ == '__main__':
    main()
