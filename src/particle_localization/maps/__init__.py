"""
Map collaborators for particle localization.

This module contains the occupancy map query contract used by sensor models
and an in-memory occupancy grid implementing it.
"""

from .occupancy import OccupancyMap, OccupancyGrid, bresenham

__all__ = [
    "OccupancyMap",
    "OccupancyGrid",
    "bresenham"
]
