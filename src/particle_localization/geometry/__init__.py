"""
Geometry collaborators for particle localization.

This module provides the rotation and rigid motion groups that pose particles
live on, each exposing exp/log maps, composition and inversion.
"""

from .lie import SO2, SE2, SO3, SE3

__all__ = [
    "SO2",
    "SE2",
    "SO3",
    "SE3"
]
