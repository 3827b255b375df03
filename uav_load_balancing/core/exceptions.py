"""Exceptions raised by the load balancing engine.

Only input validation is fatal. Algorithmic non-idealities (non-convergence,
deadline expiry, liveness fallback, capacity overflow) are reported on the
result object instead of being raised.
"""


class LoadBalancingError(ValueError):
    """Base class for invalid inputs to the load balancing engine."""


class InvalidGameType(LoadBalancingError):
    """Unknown game type requested from the engine."""


class MalformedTopology(LoadBalancingError):
    """Station/user snapshot violates a structural invariant."""


class ConfigurationError(LoadBalancingError):
    """Engine configuration holds an invalid value."""
