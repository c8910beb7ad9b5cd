"""
Particle storage for particle localization.

This module contains the columnar particle container and the row/column views
that alias its backing arrays.
"""

from .particles import Particle, ParticleContainer, ParticleRef, ParticleRowView

__all__ = [
    "Particle",
    "ParticleContainer",
    "ParticleRef",
    "ParticleRowView"
]
