"""
Static 2D occupancy grid with a precomputed ray-casting cache.

The grid is indexed ``prob[gx, gy]`` (x first). World coordinates map to grid
coordinates through the map offset (world position of the map center cell),
the map center (world units, converted to cells once) and the resolution
(world units per cell).
"""

import logging
import math
from enum import Enum
from typing import NamedTuple, Optional, Tuple

import numpy as np

from .errors import ConfigurationError
from .particle import Pose2D, TWO_PI

logger = logging.getLogger(__name__)

# cached range for a ray that leaves the map without hitting anything
NO_HIT_RANGE = -1.0


class RayCastStatus(Enum):
    OUT_OF_BOUNDS = -1
    ALREADY_OCCUPIED = 0
    HIT = 1
    NO_HIT = 2


class RayCastResult(NamedTuple):
    status: RayCastStatus
    hit_cell: Optional[Tuple[int, int]] = None
    distance: float = NO_HIT_RANGE


class RayCastCache:
    """
    Expected range per free cell per angle bin.

    Bin ``i`` holds the ray cast in direction ``i * angle_resolution``.
    Only free cells own a row, ``index[gx, gy]`` is -1 for occupied cells.
    """

    def __init__(self, angle_resolution, index, ranges):
        self.angle_resolution = float(angle_resolution)
        self.angle_step = ranges.shape[1]
        self.index = index
        self.ranges = ranges
        self.index.setflags(write=False)
        self.ranges.setflags(write=False)

    @property
    def free_cell_count(self):
        return self.ranges.shape[0]

    @property
    def size(self):
        return self.ranges.size

    def ranges_at(self, gx, gy):
        """Row of cached ranges for a cell, or None on a cache miss."""
        if gx < 0 or gy < 0 or gx >= self.index.shape[0] or gy >= self.index.shape[1]:
            return None
        row = self.index[gx, gy]
        if row < 0:
            return None
        return self.ranges[row]

    def bin_index(self, angles):
        """Nearest cached angle bin for angle(s) in radians, any range."""
        a = np.mod(angles, TWO_PI)
        idx = np.rint(a / self.angle_resolution).astype(int) % self.angle_step
        if np.ndim(idx) == 0:
            return int(idx)
        return idx

    def bin_angle(self, i):
        return i * self.angle_resolution


class OccupancyGrid:
    def __init__(self, prob, resolution=1.0, offset=(0.0, 0.0), center=(0.0, 0.0)):
        prob = np.array(prob, dtype=float)
        if prob.ndim != 2 or prob.size == 0:
            raise ConfigurationError(f"occupancy grid must be a non-empty 2D array, got shape {prob.shape}",
                                     parameter='prob')
        if np.any(~np.isfinite(prob)) or prob.min() < 0.0 or prob.max() > 1.0:
            raise ConfigurationError("occupancy probabilities must be within [0, 1]", parameter='prob')
        if not resolution > 0:
            raise ConfigurationError(f"resolution must be > 0, got {resolution}", parameter='resolution')

        prob.setflags(write=False)
        self.prob = prob
        self.width, self.height = prob.shape
        self.resolution = float(resolution)
        self.offset = (float(offset[0]), float(offset[1]))
        # center is given in world units and kept in cells
        self.center = (float(center[0]) / self.resolution, float(center[1]) / self.resolution)
        self._cache = None

    @classmethod
    def from_array(cls, prob, resolution=1.0, offset=(0.0, 0.0), center=(0.0, 0.0)):
        return cls(prob, resolution=resolution, offset=offset, center=center)

    @classmethod
    def from_image_values(cls, pixels, resolution=1.0, offset=(0.0, 0.0), center=(0.0, 0.0)):
        """
        Build a grid from 8-bit pixel values indexed [x, y].
        Dark pixels are occupied; probabilities below 0.5 are clamped to 0.
        """
        pixels = np.asarray(pixels, dtype=float)
        prob = (255.0 - pixels) / 255.0
        prob[prob < 0.5] = 0.0
        return cls(prob, resolution=resolution, offset=offset, center=center)

    def __repr__(self):
        return (f"OccupancyGrid({self.width}x{self.height}, resolution={self.resolution}, "
                f"offset={self.offset}, center={self.center})")

    # ---------- coordinates ----------

    def is_inside(self, gx, gy):
        return 0 <= gx < self.width and 0 <= gy < self.height

    def world_to_grid(self, x, y):
        """Grid cell containing world point (x, y), or None when outside the map."""
        gx = int(math.floor(self.center[0] + (x - self.offset[0]) / self.resolution + 0.5))
        gy = int(math.floor(self.center[1] + (y - self.offset[1]) / self.resolution + 0.5))
        if self.is_inside(gx, gy):
            return gx, gy
        return None

    def grid_to_world(self, gx, gy):
        if not self.is_inside(gx, gy):
            return None
        x = (gx - self.center[0]) * self.resolution + self.offset[0]
        y = (gy - self.center[1]) * self.resolution + self.offset[1]
        return x, y

    def occupancy(self, gx, gy):
        """Occupancy probability of a cell, -1 when outside the map."""
        if not self.is_inside(gx, gy):
            return -1.0
        return float(self.prob[gx, gy])

    def occupancy_at(self, x, y):
        cell = self.world_to_grid(x, y)
        if cell is None:
            return -1.0
        return float(self.prob[cell])

    def is_occupied(self, gx, gy):
        return self.occupancy(gx, gy) > 0.0

    @property
    def free_mask(self):
        return ~(self.prob > 0.0)

    # ---------- sampling ----------

    def sample_free_cell(self, rng, max_probability=0.0, retries=100):
        """
        Uniform rejection sampling of a cell with occupancy <= max_probability.

        Returns the world position of the cell as a Pose2D (heading 0), or None
        when no such cell was drawn within ``retries + 1`` attempts.
        """
        for _ in range(int(retries) + 1):
            gx = int(rng.random() * self.width)
            gy = int(rng.random() * self.height)
            if self.prob[gx, gy] <= max_probability:
                x, y = self.grid_to_world(gx, gy)
                return Pose2D(x, y, 0.0)
        return None

    # ---------- ray casting ----------

    def cast_ray(self, gx, gy, direction):
        """
        Walk the grid from the center of cell (gx, gy) along ``direction``
        (radians, map frame) until an occupied cell is reached or the ray
        leaves the map.
        """
        if not self.is_inside(gx, gy):
            return RayCastResult(RayCastStatus.OUT_OF_BOUNDS)
        prob = self.prob
        if prob[gx, gy] > 0:
            return RayCastResult(RayCastStatus.ALREADY_OCCUPIED, (gx, gy), 0.0)

        dir_x = math.cos(direction)
        dir_y = math.sin(direction)
        delta_x = abs(1.0 / dir_x) if dir_x != 0.0 else math.inf
        delta_y = abs(1.0 / dir_y) if dir_y != 0.0 else math.inf
        step_x = -1 if dir_x < 0 else 1
        step_y = -1 if dir_y < 0 else 1
        # ray starts at the cell center, half a cell from either border
        side_x = 0.5 * delta_x
        side_y = 0.5 * delta_y

        map_x, map_y = gx, gy
        width, height = self.width, self.height
        while True:
            if side_x < side_y:
                side_x += delta_x
                map_x += step_x
            else:
                side_y += delta_y
                map_y += step_y
            if map_x < 0 or map_x >= width or map_y < 0 or map_y >= height:
                return RayCastResult(RayCastStatus.NO_HIT)
            if prob[map_x, map_y] > 0:
                break

        distance = math.hypot(gx - map_x, gy - map_y) * self.resolution
        return RayCastResult(RayCastStatus.HIT, (map_x, map_y), distance)

    @property
    def cache(self) -> Optional[RayCastCache]:
        return self._cache

    def build_cache(self, angle_resolution):
        """
        Precompute ``cast_ray`` for every free cell and every angle bin.
        Computed once per resolution; calling again with the same resolution
        returns the existing cache.
        """
        if angle_resolution is None or not math.isfinite(angle_resolution) or angle_resolution <= 0:
            raise ConfigurationError(f"angle resolution must be > 0, got {angle_resolution}",
                                     parameter='angle_resolution')
        if self._cache is not None and self._cache.angle_resolution == float(angle_resolution):
            return self._cache

        # tolerance keeps an exact divisor of 2*pi from gaining a spurious bin
        angle_step = int(math.ceil(TWO_PI / angle_resolution - 1e-9))
        directions = [i * angle_resolution for i in range(angle_step)]
        free_cells = np.argwhere(self.free_mask)

        index = np.full((self.width, self.height), -1, dtype=np.int64)
        ranges = np.empty((len(free_cells), angle_step), dtype=float)

        logger.info("Start ray casting compute: %d free cells x %d angle bins", len(free_cells), angle_step)
        report_every = max(1, len(free_cells) // 10)
        for row, (gx, gy) in enumerate(free_cells):
            gx, gy = int(gx), int(gy)
            index[gx, gy] = row
            for i, direction in enumerate(directions):
                result = self.cast_ray(gx, gy, direction)
                ranges[row, i] = result.distance if result.status is RayCastStatus.HIT else NO_HIT_RANGE
            if row % report_every == 0:
                logger.debug("ray casting %d/%d cells", row, len(free_cells))

        self._cache = RayCastCache(angle_resolution, index, ranges)
        logger.info("Ray casting done with %d operations", ranges.size)
        return self._cache
