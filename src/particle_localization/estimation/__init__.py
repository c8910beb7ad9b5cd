"""
Weighted statistics for particle populations.

This module reduces (state, weight) samples into mean and covariance
estimates for scalar, Euclidean and rigid motion states.
"""

from .weights import normalize_weights, uniform_weights
from .statistics import (
    weighted_mean,
    weighted_covariance,
    estimate_scalar,
    estimate_euclidean,
    estimate_se2,
    estimate_se3,
    estimate_lie_group,
    rotation_variance
)
from .averaging import (
    average_unit_complex,
    average_unit_quaternion,
    average_so2,
    average_se2,
    average_so3,
    average_se3,
    markley_average_so3,
    iterative_mean
)

__all__ = [
    # Weights
    "normalize_weights",
    "uniform_weights",

    # Estimators
    "weighted_mean",
    "weighted_covariance",
    "estimate_scalar",
    "estimate_euclidean",
    "estimate_se2",
    "estimate_se3",
    "estimate_lie_group",
    "rotation_variance",

    # Group averages
    "average_unit_complex",
    "average_unit_quaternion",
    "average_so2",
    "average_se2",
    "average_so3",
    "average_se3",
    "markley_average_so3",
    "iterative_mean"
]
