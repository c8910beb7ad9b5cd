"""
Rotation and Rigid Motion Averaging

Averaging angles or rotations component-wise is wrong: the mean of 179° and
-179° is 180°, not 0°. This module averages rotations in their ambient
embedding instead.

Planar Rotations (unit complex numbers):
    R = Σ ŵᵢ e^{iθᵢ}           weighted resultant, |R| ∈ [0, 1]
    θ̄ = arg(R)                  mean rotation
    |R| → 0 as the rotations cancel each other out

Spatial Rotations (unit quaternions):
    q and -q encode the same rotation, so every quaternion is first flipped
    into the hemisphere of a reference quaternion (the heaviest sample):
        sᵢ = sign(qᵢ · q_ref)
        R = Σ ŵᵢ sᵢ qᵢ,  q̄ = R / |R|

Alternatives exposed for the general Lie group estimator:
    markley_average_so3: eigenvector method (Markley et al., 2007) through
                         scipy's Rotation.mean
    iterative_mean:      Karcher mean by fixed-point iteration on exp/log,
                         valid for any group exposing exp, log, *, inverse

Every function takes weights that are already validated and normalized;
see estimation.weights.
"""

import logging
from typing import Callable, List, Sequence, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from ..errors import PreconditionViolation
from ..geometry import SO2, SE2, SO3, SE3

logger = logging.getLogger(__name__)

GroupAverage = Callable[[Sequence, np.ndarray], object]


def average_unit_complex(values: np.ndarray, weights: np.ndarray) -> Tuple[complex, float]:
    """
    Weighted mean of unit complex numbers.

    Args:
        values: Unit complex numbers e^{iθᵢ}
        weights: Normalized weights ŵᵢ

    Returns:
        Tuple of (unit complex mean, resultant magnitude |R|). When the
        resultant vanishes the mean is the identity 1 + 0i.
    """
    resultant = complex(np.sum(np.asarray(weights) * np.asarray(values, dtype=complex)))
    magnitude = abs(resultant)
    if magnitude == 0.0:
        return complex(1.0, 0.0), 0.0
    return resultant / magnitude, magnitude


def average_unit_quaternion(quaternions: np.ndarray, weights: np.ndarray) -> Tuple[np.ndarray, float]:
    """
    Weighted mean of unit quaternions after hemisphere alignment.

    Args:
        quaternions: (N, 4) array of scalar-last unit quaternions
        weights: Normalized weights ŵᵢ

    Returns:
        Tuple of (unit quaternion mean, resultant magnitude |R|)

    Raises:
        PreconditionViolation: If the aligned quaternions cancel out
    """
    q = np.asarray(quaternions, dtype=float).reshape(-1, 4)
    w = np.asarray(weights, dtype=float)
    reference = q[np.argmax(np.abs(w))]
    signs = np.where(q @ reference < 0.0, -1.0, 1.0)
    resultant = np.sum((w * signs)[:, np.newaxis] * q, axis=0)
    magnitude = float(np.linalg.norm(resultant))
    if magnitude == 0.0:
        raise PreconditionViolation("Weighted quaternions cancel out, mean rotation is undefined")
    return resultant / magnitude, magnitude


def average_so2(states: Sequence[SO2], weights: np.ndarray) -> SO2:
    mean, _ = average_unit_complex(np.array([s.unit_complex for s in states]), weights)
    return SO2.from_complex(mean)


def average_se2(states: Sequence[SE2], weights: np.ndarray) -> SE2:
    translations = np.array([s.translation for s in states])
    return SE2(average_so2([s.so2 for s in states], weights), np.asarray(weights) @ translations)


def average_so3(states: Sequence[SO3], weights: np.ndarray) -> SO3:
    quaternion, _ = average_unit_quaternion(np.array([s.quaternion for s in states]), weights)
    return SO3.from_quaternion(quaternion)


def average_se3(states: Sequence[SE3], weights: np.ndarray) -> SE3:
    translations = np.array([s.translation for s in states])
    return SE3(average_so3([s.so3 for s in states], weights), np.asarray(weights) @ translations)


def markley_average_so3(states: Sequence[SO3], weights: np.ndarray) -> SO3:
    """
    Mean rotation as the principal eigenvector of Σ wᵢ qᵢ qᵢᵀ.

    Delegates to scipy's Rotation.mean, which requires non-negative weights.
    """
    rotations = Rotation.concatenate([s.rotation for s in states])
    return SO3(rotations.mean(weights=np.asarray(weights, dtype=float)))


def iterative_mean(states: Sequence, weights: np.ndarray,
                   max_iterations: int = 50, tolerance: float = 1e-12):
    """
    Weighted Karcher mean on a Lie group.

    Fixed-point iteration, starting from the heaviest sample:
        δ = Σ ŵᵢ log(μ⁻¹ xᵢ)
        μ ← μ exp(δ)
    until |δ| < tolerance.

    Args:
        states: Group elements exposing exp (on their class), log, *, inverse
        weights: Normalized weights ŵᵢ
        max_iterations: Iteration cap
        tolerance: Convergence threshold on the tangent update norm

    Returns:
        Mean group element (the last iterate if the cap is reached)
    """
    w = np.asarray(weights, dtype=float)
    group = type(states[0])
    mean = states[int(np.argmax(np.abs(w)))]
    for iteration in range(max_iterations):
        mean_inverse = mean.inverse()
        tangents: List[np.ndarray] = [(mean_inverse * state).log() for state in states]
        delta = w @ np.array(tangents)
        mean = mean * group.exp(delta)
        if np.linalg.norm(delta) < tolerance:
            logger.debug(f"Iterative mean converged after {iteration + 1} iterations")
            return mean
    logger.warning(f"Iterative mean did not converge within {max_iterations} iterations")
    return mean
