# coding: utf-8

"""
Simulated robot with a range scanner on a known occupancy grid.

The true pose follows the commands with gaussian noise; odometry integrates
the commands exactly, so the gap between them is what the filter must absorb.
"""

import math

import numpy as np

from ..core.occupancy_grid import OccupancyGrid, RayCastStatus
from ..core.particle import Pose2D, normalize_angle


def generate_map(width, height, rng, wall=1, obstacles=10, obstacle_min=2, obstacle_max=5, keep_free=()):
    """
    Bordered grid with random square obstacles, 1 = occupied.
    Indexed [x, y] like OccupancyGrid. Cells listed in ``keep_free`` and their
    8 neighbours stay free of obstacles (walls excepted).
    """
    grid = np.zeros((width, height))
    grid[:wall, :] = 1
    grid[-wall:, :] = 1
    grid[:, :wall] = 1
    grid[:, -wall:] = 1
    inner_w = width - 2 * wall
    inner_h = height - 2 * wall
    for _ in range(obstacles):
        size = int(rng.integers(obstacle_min, obstacle_max + 1))
        if size >= inner_w or size >= inner_h:
            continue
        x0 = int(rng.integers(wall, wall + inner_w - size + 1))
        y0 = int(rng.integers(wall, wall + inner_h - size + 1))
        grid[x0:x0 + size, y0:y0 + size] = 1
    for gx, gy in keep_free:
        x_lo, x_hi = max(wall, gx - 1), min(width - wall, gx + 2)
        y_lo, y_hi = max(wall, gy - 1), min(height - wall, gy + 2)
        grid[x_lo:x_hi, y_lo:y_hi] = 0
    return grid


def scan_bearings(beam_count, field_of_view=2 * math.pi):
    """Beam bearings in the sensor frame, centered on the robot heading."""
    full_circle = field_of_view >= 2 * math.pi - 1e-12
    return np.linspace(-field_of_view / 2, field_of_view / 2, beam_count, endpoint=not full_circle)


def scan_from_points(points):
    """Convert sensor-frame (x, y) hit points into (ranges, bearings)."""
    points = np.asarray(points, dtype=float).reshape(-1, 2)
    return np.hypot(points[:, 0], points[:, 1]), np.arctan2(points[:, 1], points[:, 0])


class RobotSim:
    '''
    Robot moving on ``grid`` and scanning it with a ray-cast range sensor.
    '''
    def __init__(self, grid: OccupancyGrid, pose: Pose2D, rng=None, **params):
        self.grid = grid
        self.rng = rng if rng is not None else np.random.default_rng()
        self.pose = Pose2D.normalized(*pose)
        self.odometry = self.pose
        self.sigma_dx = params.get('sigma_dx', 0.0)
        self.sigma_dtheta = params.get('sigma_dtheta', 0.0)
        self.sigma_range = params.get('sigma_range', 0.0)
        self.max_range = params.get('max_range', 10.0)
        self.bearings = scan_bearings(params.get('beam_count', 36),
                                      params.get('field_of_view', 2 * math.pi))
        if grid.world_to_grid(self.pose.x, self.pose.y) is None:
            raise ValueError(f"start pose {tuple(self.pose)} is outside the map")

    def _noise(self, sigma):
        return self.rng.normal(0.0, sigma) if sigma > 0 else 0.0

    def command_and_get_data(self, dx, dtheta):
        """
        Rotate by ``dtheta`` (radians) then drive ``dx`` forward.
        Returns ((ranges, bearings), odometry pose, ground truth pose).
        """
        theta = normalize_angle(self.pose.theta + dtheta + self._noise(self.sigma_dtheta))
        dx_true = dx + self._noise(self.sigma_dx)
        x = self.pose.x + math.cos(theta) * dx_true
        y = self.pose.y + math.sin(theta) * dx_true

        cell = self.grid.world_to_grid(x, y)
        if cell is None:
            raise RuntimeError("CRASH OUT OF BOUNDS!")
        if self.grid.is_occupied(*cell):
            raise RuntimeError("CRASH ON OBSTACLE!")
        self.pose = Pose2D(x, y, theta)

        odo_theta = normalize_angle(self.odometry.theta + dtheta)
        self.odometry = Pose2D(self.odometry.x + math.cos(odo_theta) * dx,
                               self.odometry.y + math.sin(odo_theta) * dx,
                               odo_theta)
        return self.generate_data(), self.odometry, self.pose

    def expected_ranges(self, pose=None):
        """Noise-free ranges from the cell containing ``pose``, max range on a miss."""
        pose = self.pose if pose is None else pose
        cell = self.grid.world_to_grid(pose.x, pose.y)
        ranges = np.full(len(self.bearings), self.max_range)
        if cell is None:
            return ranges
        for i, bearing in enumerate(self.bearings):
            result = self.grid.cast_ray(cell[0], cell[1], pose.theta + bearing)
            if result.status is RayCastStatus.HIT:
                ranges[i] = min(result.distance, self.max_range)
        return ranges

    def generate_data(self):
        ranges = self.expected_ranges()
        if self.sigma_range > 0:
            ranges = ranges + self.rng.normal(0.0, self.sigma_range, size=len(ranges))
            ranges = np.clip(ranges, 0.0, self.max_range)
        return ranges, self.bearings.copy()
