"""Utility functions for the UAV load balancing package."""

import numpy as np


def dbm_to_watt(power_dbm):
    """Convert power from dBm to Watts.

    Args:
        power_dbm: Power in dBm

    Returns:
        Power in Watts
    """
    return 10 ** ((np.asarray(power_dbm) - 30) / 10)


def watt_to_dbm(power_watt):
    """Convert power from Watts to dBm.

    Args:
        power_watt: Power in Watts

    Returns:
        Power in dBm
    """
    return 10 * np.log10(power_watt) + 30


def db_to_linear(value_db):
    """Convert a ratio in dB to linear scale."""
    return 10 ** (np.asarray(value_db) / 10)


def jain_index(values) -> float:
    """Jain's fairness index of a non-negative allocation.

    J(x) = (Σx)² / (n · Σx²), equal to 1 for a perfectly even allocation
    and 1/n when a single claimant receives everything.

    Args:
        values: Allocation per claimant (loads, utilities, ...)

    Returns:
        Index in [1/n, 1]; 1.0 for an empty or all-zero allocation
    """
    x = np.asarray(list(values), dtype=float)
    if x.size == 0:
        return 1.0
    denominator = x.size * np.sum(x ** 2)
    if denominator == 0:
        return 1.0
    return float(np.sum(x) ** 2 / denominator)


def load_variance(loads) -> float:
    """Population variance of per-station loads (0.0 when empty)."""
    x = np.asarray(list(loads), dtype=float)
    if x.size == 0:
        return 0.0
    return float(np.var(x))


def coefficient_of_variation(loads) -> float:
    """Load balance index σ/μ of per-station loads (0.0 when the mean is zero)."""
    x = np.asarray(list(loads), dtype=float)
    if x.size == 0 or np.mean(x) == 0:
        return 0.0
    return float(np.std(x) / np.mean(x))


def vector_to_str(vector, precision=3):
    """Convert vector to formatted string representation.

    Args:
        vector: Input vector
        precision: Number of decimal places

    Returns:
        String representation of vector
    """
    if np.isscalar(vector):
        return f"{vector:.{precision}f}"
    return "[" + ", ".join([f"{x:.{precision}f}" for x in vector]) + "]"
