"""
convergence.py - Steady-State Detection
=======================================
A run counts as steady once no cell's velocity moves by more than a
threshold between two consecutive steps.
"""

import numpy as np


def max_velocity_delta(u: np.ndarray, v: np.ndarray,
                       prev_u: np.ndarray, prev_v: np.ndarray) -> float:
    """
    Largest absolute per-cell change across both velocity components.

    NaN anywhere gives NaN, which never compares below a threshold, so a
    blown-up field can never be mistaken for a converged one.
    """
    return float(np.max([np.max(np.abs(u - prev_u)), np.max(np.abs(v - prev_v))]))


def has_converged(current, previous, threshold: float = 0.001) -> bool:
    """
    Compare two {"u": ..., "v": ...} velocity fields.

    Returns False when either field is missing (nothing to compare yet).
    """
    if current is None or previous is None:
        return False

    delta = max_velocity_delta(
        np.asarray(current["u"]), np.asarray(current["v"]),
        np.asarray(previous["u"]), np.asarray(previous["v"]),
    )
    return delta < threshold
