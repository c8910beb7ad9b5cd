"""
Sensor models for particle localization.

This module contains the beam range-finder model that converts raw scans into
per-particle importance weights.
"""

from .beam import BeamModelConfig, BeamSensorModel, BeamWeightingFunction

__all__ = [
    "BeamModelConfig",
    "BeamSensorModel",
    "BeamWeightingFunction"
]
