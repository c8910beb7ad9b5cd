"""
Weight sources and weight validation shared by the estimators.
"""

import numpy as np
from typing import Optional, Sequence

from ..errors import PreconditionViolation


def uniform_weights(count: int) -> np.ndarray:
    """Weight source that yields 1.0 for each of ``count`` samples."""
    return np.ones(count)


def normalize_weights(weights: Sequence[float]) -> np.ndarray:
    """
    Normalize weights so they sum to one: ŵᵢ = wᵢ / Σw.

    Args:
        weights: Unnormalized weights (need not be positive)

    Returns:
        Normalized weight array

    Raises:
        PreconditionViolation: If the weights sum to zero or are not finite
    """
    w = np.asarray(weights, dtype=float).reshape(-1)
    total = np.sum(w)
    if not np.isfinite(total):
        raise PreconditionViolation(f"Weights must be finite, got total {total}")
    if total == 0.0:
        raise PreconditionViolation("Weights sum to zero, cannot normalize")
    return w / total


def prepare_weights(sample_count: int, weights: Optional[Sequence[float]] = None) -> np.ndarray:
    """
    Validate a (sample, weight) pairing and return normalized weights.

    A covariance needs at least two samples carrying non-zero weight, and one
    weight per sample. ``weights=None`` means uniform weights.

    Raises:
        PreconditionViolation: If any of the above does not hold
    """
    if sample_count < 2:
        raise PreconditionViolation(f"At least two weighted samples are required, got {sample_count}")
    if weights is None:
        weights = uniform_weights(sample_count)
    w = np.asarray(weights, dtype=float).reshape(-1)
    if len(w) != sample_count:
        raise PreconditionViolation(f"Expected {sample_count} weights, got {len(w)}")
    if np.count_nonzero(w) < 2:
        raise PreconditionViolation("At least two samples must carry non-zero weight")
    return normalize_weights(w)
