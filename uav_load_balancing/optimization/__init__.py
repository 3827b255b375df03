"""Game solvers, baselines and the load balancing engine."""
