"""
Weighted Statistics for Particle Populations

This module reduces an ordered sequence of (state, weight) samples into a
mean and a covariance, for flat vectors as well as for rigid motion states.

Euclidean States (xᵢ ∈ ℝⁿ):
    ŵᵢ = wᵢ / Σw
    x̄ = Σ ŵᵢ xᵢ
    Σ = Σ ŵᵢ (xᵢ - x̄)(xᵢ - x̄)ᵀ / (1 - Σ ŵᵢ²)

    The denominator is the effective-sample-size bias correction. For uniform
    weights ŵᵢ = 1/N it reduces to the classical N - 1 sample covariance.

SE(2) States:
    Translation: Euclidean formulas above
    Rotation:    R = Σ ŵᵢ e^{iθᵢ},  θ̄ = arg(R),  σ²_θ = -2 ln |R|

    σ²_θ → +∞ as the weighted rotations cancel (|R| → 0). Two antipodal,
    equally weighted rotations give exactly +∞, which is returned as such.

    Covariance (block diagonal, no translation/rotation cross terms):
        [ Σ_xy  0   ]
        [ 0     σ²_θ]

SE(3) States:
    Translation: Euclidean formulas above
    Rotation:    hemisphere-aligned unit quaternion resultant (see averaging)
    Covariance:  rotation block from tangent vectors ωᵢ = log(R̄⁻¹ Rᵢ)
        [ Σ_t   0   ]
        [ 0     Σ_ω ]

General Lie Groups:
    x̄ = average(xᵢ, ŵᵢ)    supplied group-average primitive
    ξᵢ = log(x̄⁻¹ xᵢ)
    Σ = Σ ŵᵢ ξᵢ ξᵢᵀ / (1 - Σ ŵᵢ²)

Preconditions (PreconditionViolation otherwise):
    - at least two samples, and at least two of them with non-zero weight
    - one weight per sample
    - non-zero total weight

References:
    - Mardia, K. V., Jupp, P. E. (2000). Directional Statistics
    - Price, G. R. (1972). Extension of covariance selection mathematics
"""

import logging
from typing import Optional, Sequence, Tuple, Union

import numpy as np
from scipy.spatial.transform import Rotation

from ..errors import PreconditionViolation
from ..geometry import SE2, SE3, SO2, SO3
from .averaging import GroupAverage, average_unit_complex, average_unit_quaternion, iterative_mean
from .weights import prepare_weights

# Configure logging for estimator diagnostics
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Resultant magnitudes below this are treated as full cancellation.
CANCELLATION_TOLERANCE = 1e-10

Weights = Optional[Sequence[float]]


def _as_samples(values) -> np.ndarray:
    samples = np.asarray(values, dtype=float)
    if samples.ndim not in (1, 2):
        raise ValueError(f"Samples must be a 1D or 2D array, got {samples.ndim}D")
    return samples


def weighted_mean(values, weights: Weights = None) -> Union[float, np.ndarray]:
    """
    Weighted mean x̄ = Σ ŵᵢ xᵢ.

    Args:
        values: (N,) scalars or (N, D) vectors
        weights: Optional unnormalized weights, uniform if None

    Returns:
        Scalar mean for (N,) input, (D,) mean vector otherwise

    Raises:
        PreconditionViolation: If the weights do not match or sum to zero
    """
    samples = _as_samples(values)
    w = prepare_weights(len(samples), weights)
    mean = w @ samples
    return float(mean) if samples.ndim == 1 else mean


def weighted_covariance(values, weights: Weights = None,
                        mean: Optional[Union[float, np.ndarray]] = None) -> Union[float, np.ndarray]:
    """
    Bias-corrected weighted covariance.

        Σ = Σ ŵᵢ (xᵢ - x̄)(xᵢ - x̄)ᵀ / (1 - Σ ŵᵢ²)

    Args:
        values: (N,) scalars or (N, D) vectors
        weights: Optional unnormalized weights, uniform if None
        mean: Optional precomputed mean; the weighted mean is used if None

    Returns:
        Scalar variance for (N,) input, (D, D) covariance otherwise

    Raises:
        PreconditionViolation: If fewer than two samples carry weight
    """
    samples = _as_samples(values)
    w = prepare_weights(len(samples), weights)
    center = w @ samples if mean is None else np.asarray(mean, dtype=float)

    # Σ ŵᵢ (1 - ŵᵢ) equals 1 - Σ ŵᵢ² without cancellation on peaked weights
    denominator = np.sum(w * (1.0 - w))
    if denominator == 0.0:
        raise PreconditionViolation("Weights are concentrated on a single sample, covariance is undefined")

    deviations = samples - center
    if samples.ndim == 1:
        return float(np.sum(w * deviations ** 2) / denominator)

    covariance = (w[:, np.newaxis] * deviations).T @ deviations / denominator
    # Enforce exact symmetry
    return (covariance + covariance.T) * 0.5


def estimate_scalar(values: Sequence[float], weights: Weights = None) -> Tuple[float, float]:
    """
    Estimate mean and variance of scalar samples.

    Returns:
        Tuple of (mean, variance)
    """
    samples = _as_samples(values).reshape(-1)
    mean = weighted_mean(samples, weights)
    return mean, weighted_covariance(samples, weights, mean)


def estimate_euclidean(values, weights: Weights = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Estimate mean vector and covariance matrix of vector samples.

    Args:
        values: (N, D) array; a (N,) array is treated as N samples of dimension 1
        weights: Optional unnormalized weights, uniform if None

    Returns:
        Tuple of ((D,) mean, (D, D) covariance)
    """
    samples = _as_samples(values)
    if samples.ndim == 1:
        samples = samples[:, np.newaxis]
    mean = weighted_mean(samples, weights)
    return mean, weighted_covariance(samples, weights, mean)


def _se2_rows(states) -> np.ndarray:
    if isinstance(states, np.ndarray) and states.dtype != object:
        rows = np.asarray(states, dtype=float)
    else:
        rows = np.array([s.to_array() if isinstance(s, SE2) else np.asarray(s, dtype=float)
                         for s in states])
    if rows.ndim != 2 or rows.shape[1] != 3:
        raise ValueError(f"SE2 states must be SE2 objects or [x, y, theta] rows, got shape {rows.shape}")
    return rows


def _se3_rows(states) -> np.ndarray:
    if isinstance(states, np.ndarray) and states.dtype != object:
        rows = np.asarray(states, dtype=float)
    else:
        rows = np.array([s.to_array() if isinstance(s, SE3) else np.asarray(s, dtype=float)
                         for s in states])
    if rows.ndim != 2 or rows.shape[1] != 7:
        raise ValueError(f"SE3 states must be SE3 objects or [t, q] rows, got shape {rows.shape}")
    return rows


def rotation_variance(resultant_magnitude: float) -> float:
    """
    Circular variance proxy σ²_θ = -2 ln |R|.

    Returns +∞ when the resultant vanishes (within CANCELLATION_TOLERANCE).
    """
    if resultant_magnitude < CANCELLATION_TOLERANCE:
        return float('inf')
    return float(-2.0 * np.log(min(resultant_magnitude, 1.0)))


def estimate_se2(states, weights: Weights = None) -> Tuple[SE2, np.ndarray]:
    """
    Estimate the mean pose and 3x3 covariance of planar poses.

    Args:
        states: Sequence of SE2 poses or (N, 3) array of [x, y, θ] rows
        weights: Optional unnormalized weights, uniform if None

    Returns:
        Tuple of (mean SE2 pose, covariance over [x, y, θ])

    Raises:
        PreconditionViolation: If the preconditions above are not met
    """
    rows = _se2_rows(states)
    w = prepare_weights(len(rows), weights)

    translation_mean = w @ rows[:, 0:2]
    translation_covariance = weighted_covariance(rows[:, 0:2], w, translation_mean)

    mean_rotation, magnitude = average_unit_complex(np.exp(1j * rows[:, 2]), w)
    orientation_variance = rotation_variance(magnitude)
    if np.isinf(orientation_variance):
        logger.warning(f"Weighted orientations cancel out (|R|={magnitude:.2e}), "
                       "orientation variance is infinite")

    covariance = np.zeros((3, 3))
    covariance[0:2, 0:2] = translation_covariance
    covariance[2, 2] = orientation_variance

    logger.debug(f"SE2 estimate from {len(rows)} samples: |R|={magnitude:.4f}")
    return SE2(SO2.from_complex(mean_rotation), translation_mean), covariance


def estimate_se3(states, weights: Weights = None) -> Tuple[SE3, np.ndarray]:
    """
    Estimate the mean pose and 6x6 covariance of spatial poses.

    Covariance ordering follows the SE(3) tangent: [tx, ty, tz, ωx, ωy, ωz].

    Args:
        states: Sequence of SE3 poses or (N, 7) array of [t, q] rows
        weights: Optional unnormalized weights, uniform if None

    Returns:
        Tuple of (mean SE3 pose, block-diagonal covariance)
    """
    rows = _se3_rows(states)
    w = prepare_weights(len(rows), weights)

    translation_mean = w @ rows[:, 0:3]
    translation_covariance = weighted_covariance(rows[:, 0:3], w, translation_mean)

    quaternions = rows[:, 3:7] / np.linalg.norm(rows[:, 3:7], axis=1)[:, np.newaxis]
    mean_quaternion, magnitude = average_unit_quaternion(quaternions, w)
    mean_rotation = Rotation.from_quat(mean_quaternion)

    # Tangent-space deviations at the mean rotation
    deviations = (mean_rotation.inv() * Rotation.from_quat(quaternions)).as_rotvec()
    rotation_covariance = weighted_covariance(deviations, w, np.zeros(3))

    covariance = np.zeros((6, 6))
    covariance[0:3, 0:3] = translation_covariance
    covariance[3:6, 3:6] = rotation_covariance

    logger.debug(f"SE3 estimate from {len(rows)} samples: |R|={magnitude:.4f}")
    return SE3(SO3(mean_rotation), translation_mean), covariance


def estimate_lie_group(states: Sequence, weights: Weights = None,
                       average: GroupAverage = iterative_mean) -> Tuple[object, np.ndarray]:
    """
    Estimate mean and tangent-space covariance on an arbitrary Lie group.

    Args:
        states: Group elements exposing exp (on their class), log, * and inverse
        weights: Optional unnormalized weights, uniform if None
        average: Group-average primitive ``average(states, normalized_weights)``

    Returns:
        Tuple of (mean element, DoF x DoF covariance of log(mean⁻¹ xᵢ))
    """
    states = list(states)
    w = prepare_weights(len(states), weights)

    mean = average(states, w)
    mean_inverse = mean.inverse()
    tangents = np.array([(mean_inverse * state).log() for state in states])
    covariance = weighted_covariance(tangents, w, np.zeros(tangents.shape[1]))
    return mean, covariance
