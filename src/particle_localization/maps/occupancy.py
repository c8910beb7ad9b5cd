"""
Occupancy map queries for sensor models.

The beam sensor model only needs two questions answered by a map:

    is_occupied(point)               is there an obstacle at this world point?
    ray_cast(pose, bearing, range)   how far does a beam travel before hitting one?

OccupancyMap states that contract; OccupancyGrid implements it over an
in-memory boolean grid. Building and persisting grids is left to the caller.

Grid Conventions:
    - cells[row, col] with row ↔ y index and col ↔ x index
    - cell (i, j) covers [i·res, (i+1)·res) × [j·res, (j+1)·res) in the grid frame
    - the grid frame is placed in the world by an SE2 origin pose

Ray Casting:
    Cells along the beam are visited with Bresenham's line algorithm, from the
    cell holding the sensor to the cell at max range. The expected range is the
    distance between the centers of the sensor cell and the first occupied
    cell, capped at max range. A ray that leaves the grid without hitting
    anything reports max range ("no obstacle"), never an error.

    Ranges are quantized to the grid: the sensor position within its cell is
    discarded, so every pose in one cell with the same heading gets the same
    expected range. Finer range resolution requires a finer grid.
"""

import math
from abc import ABC, abstractmethod
from typing import Iterator, Optional, Sequence, Tuple, Union

import numpy as np

from ..geometry import SE2

Cell = Tuple[int, int]


class OccupancyMap(ABC):
    """Map collaborator contract consumed by sensor models."""

    @abstractmethod
    def is_occupied(self, point: Sequence[float]) -> bool:
        """Occupancy at a world point; False outside the map."""

    @abstractmethod
    def ray_cast(self, pose: SE2, bearing: float, max_range: float) -> float:
        """Expected range along ``bearing`` (relative to ``pose``), at most ``max_range``."""


def bresenham(start: Cell, end: Cell) -> Iterator[Cell]:
    """Yield the cells on the discrete line from ``start`` to ``end``, inclusive."""
    x0, y0 = start
    x1, y1 = end
    dx = abs(x1 - x0)
    dy = -abs(y1 - y0)
    step_x = 1 if x0 < x1 else -1
    step_y = 1 if y0 < y1 else -1
    error = dx + dy

    while True:
        yield x0, y0
        if x0 == x1 and y0 == y1:
            return
        doubled = 2 * error
        if doubled >= dy:
            error += dy
            x0 += step_x
        if doubled <= dx:
            error += dx
            y0 += step_y


class OccupancyGrid(OccupancyMap):
    """
    Boolean occupancy grid placed in the world by an SE2 origin.

    Attributes:
        resolution: Cell side length in meters
        origin: Pose of the grid frame in the world frame
        width: Number of cells along x
        height: Number of cells along y
    """

    def __init__(self, cells: Union[Sequence, np.ndarray], resolution: float,
                 origin: Optional[SE2] = None, width: Optional[int] = None):
        """
        Initialize the grid.

        Args:
            cells: 2D (height, width) array of occupancy flags, or a flat
                   row-major sequence together with ``width``
            resolution: Cell side length in meters (> 0)
            origin: Grid frame pose in the world, identity if None
            width: Row length when ``cells`` is flat

        Raises:
            ValueError: If the resolution or the cell layout is invalid
        """
        if resolution <= 0:
            raise ValueError(f"Grid resolution must be positive, got {resolution}")

        data = np.asarray(cells, dtype=bool)
        if data.ndim == 1:
            if width is None or width <= 0 or data.size % width != 0:
                raise ValueError("Flat cell data requires a width that divides its length")
            data = data.reshape(-1, width)
        elif data.ndim != 2:
            raise ValueError(f"Cell data must be 1D or 2D, got {data.ndim}D")

        self._cells = data.copy()
        self.resolution = float(resolution)
        self.origin = origin if origin is not None else SE2()
        self._origin_inverse = self.origin.inverse()

    @property
    def width(self) -> int:
        return self._cells.shape[1]

    @property
    def height(self) -> int:
        return self._cells.shape[0]

    @property
    def cells(self) -> np.ndarray:
        """Copy of the occupancy flags, indexed [row, col]."""
        return self._cells.copy()

    def contains(self, cell: Cell) -> bool:
        x, y = cell
        return 0 <= x < self.width and 0 <= y < self.height

    def cell_at(self, point: Sequence[float]) -> Cell:
        """Cell index (x, y) of a world point; may lie outside the grid."""
        local = self._origin_inverse * np.asarray(point, dtype=float)
        return int(math.floor(local[0] / self.resolution)), int(math.floor(local[1] / self.resolution))

    def coordinates_at(self, cell: Cell) -> np.ndarray:
        """World coordinates of a cell center."""
        local = (np.asarray(cell, dtype=float) + 0.5) * self.resolution
        return self.origin * local

    def occupied_cell(self, cell: Cell) -> bool:
        return self.contains(cell) and bool(self._cells[cell[1], cell[0]])

    def is_occupied(self, point: Sequence[float]) -> bool:
        return self.occupied_cell(self.cell_at(point))

    def ray_cast(self, pose: SE2, bearing: float, max_range: float) -> float:
        """
        Distance from the sensor to the first obstacle along a beam.

        Args:
            pose: Sensor pose in the world frame
            bearing: Beam angle relative to the sensor heading (radians)
            max_range: Beam length (meters)

        Returns:
            Distance between the centers of the sensor cell and the first
            occupied cell, or ``max_range`` if none is hit
        """
        local_pose = self._origin_inverse * pose
        source = local_pose.translation
        heading = local_pose.angle + bearing
        target = source + max_range * np.array([math.cos(heading), math.sin(heading)])

        source_cell = (int(math.floor(source[0] / self.resolution)),
                       int(math.floor(source[1] / self.resolution)))
        target_cell = (int(math.floor(target[0] / self.resolution)),
                       int(math.floor(target[1] / self.resolution)))

        for cell in bresenham(source_cell, target_cell):
            if not self.contains(cell):
                break
            if self._cells[cell[1], cell[0]]:
                distance = self.resolution * math.hypot(cell[0] - source_cell[0], cell[1] - source_cell[1])
                return min(distance, max_range)
        return max_range

    def __repr__(self) -> str:
        return (f"OccupancyGrid(width={self.width}, height={self.height}, "
                f"resolution={self.resolution}, occupied={int(np.count_nonzero(self._cells))})")
