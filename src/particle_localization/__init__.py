"""
Particle Localization: Numerical Core of Monte Carlo Localization

A scientific Python package providing the pieces of a particle filter that
sit between the motion update and resampling.

This package implements:
- Columnar particle storage with aliasing row and column views
- Beam sensor model producing per-particle importance weights from range scans
- Weighted mean and covariance estimation for Euclidean, SE(2), SE(3) and
  general Lie group states

The filter loop itself (motion models, resampling, map loading, message
conversion) is left to the caller.
"""

from .errors import LocalizationError, PreconditionViolation, ConfigurationError, OutOfBoundsError
from .geometry import SO2, SE2, SO3, SE3
from .containers import Particle, ParticleContainer
from .maps import OccupancyMap, OccupancyGrid
from .sensors import BeamModelConfig, BeamSensorModel
from .estimation import (
    estimate_scalar,
    estimate_euclidean,
    estimate_se2,
    estimate_se3,
    estimate_lie_group
)

__version__ = "1.0.0"
__author__ = "Particle Localization Team"

__all__ = [
    "LocalizationError",
    "PreconditionViolation",
    "ConfigurationError",
    "OutOfBoundsError",
    "SO2",
    "SE2",
    "SO3",
    "SE3",
    "Particle",
    "ParticleContainer",
    "OccupancyMap",
    "OccupancyGrid",
    "BeamModelConfig",
    "BeamSensorModel",
    "estimate_scalar",
    "estimate_euclidean",
    "estimate_se2",
    "estimate_se3",
    "estimate_lie_group"
]
