"""
Particle seeding strategies

Each strategy is one member of InitStrategy and owns one sampler below.
Integer codes 0..7 are accepted for configuration files using the numeric form.
"""

import math
from enum import Enum

import numpy as np

from .errors import ConfigurationError, SamplingError, UnimplementedStrategyError
from .particle import Pose2D, normalize_angle


class InitStrategy(Enum):
    FIXED_POSE = 0
    FIXED_POSITION_RANDOM_HEADING = 1
    DISK_FIXED_HEADING = 2
    DISK_RANDOM_HEADING = 3
    DISK_GAUSSIAN_HEADING = 4
    MAP_FIXED_HEADING = 5
    MAP_RANDOM_HEADING = 6
    MAP_GAUSSIAN_HEADING = 7

    @classmethod
    def parse(cls, value):
        """Accept a member, its name (any case) or its integer code."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise UnimplementedStrategyError(f"Unknown initialization strategy: {value!r}") from None
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            raise UnimplementedStrategyError(f"Unknown initialization strategy: {value!r}") from None

    @property
    def uses_map(self):
        return self in (InitStrategy.MAP_FIXED_HEADING,
                        InitStrategy.MAP_RANDOM_HEADING,
                        InitStrategy.MAP_GAUSSIAN_HEADING)


class ParticleSeed:
    """
    How to spread the initial population.

    start            - reference pose
    radius           - disk radius for the DISK_* strategies (world units)
    heading_variance - variance of the heading perturbation for *_GAUSSIAN_HEADING
    """

    __slots__ = ('strategy', 'start', 'radius', 'heading_variance')

    def __init__(self, strategy, start=Pose2D(0.0, 0.0, 0.0), radius=0.0, heading_variance=0.0):
        strategy = InitStrategy.parse(strategy)
        if strategy not in _SAMPLERS:
            raise UnimplementedStrategyError(f"Initialization strategy {strategy.name} is not implemented")
        if radius < 0:
            raise ConfigurationError(f"radius must be >= 0, got {radius}", parameter='radius')
        if heading_variance < 0:
            raise ConfigurationError(f"heading variance must be >= 0, got {heading_variance}",
                                     parameter='heading_variance')
        self.strategy = strategy
        self.start = Pose2D.normalized(*start)
        self.radius = float(radius)
        self.heading_variance = float(heading_variance)

    def __repr__(self):
        return (f"ParticleSeed({self.strategy.name}, start={tuple(self.start)}, radius={self.radius}, "
                f"heading_variance={self.heading_variance})")


# ---------- heading helpers ----------

def _random_headings(n, rng):
    return normalize_angle(rng.uniform(-math.pi, math.pi, size=n))


def _gaussian_headings(start, variance, n, rng):
    if variance <= 0:
        return np.full(n, start.theta)
    return normalize_angle(start.theta + rng.normal(0.0, math.sqrt(variance), size=n))


# ---------- position helpers ----------

def _disk_positions(start, radius, n, rng):
    # sqrt of a uniform radius gives a uniform density over the disk
    a = rng.uniform(-math.pi, math.pi, size=n)
    r = np.sqrt(rng.random(n)) * radius
    return start.x + r * np.cos(a), start.y + r * np.sin(a)


def _map_positions(grid, n, rng, retries):
    xs = np.empty(n)
    ys = np.empty(n)
    for i in range(n):
        pose = grid.sample_free_cell(rng, retries=retries)
        if pose is None:
            raise SamplingError(f"No free cell found after {retries} retries while seeding particle {i}")
        xs[i], ys[i] = pose.x, pose.y
    return xs, ys


def _poses(xs, ys, headings):
    return [Pose2D(float(x), float(y), float(t)) for x, y, t in zip(xs, ys, headings)]


# ---------- samplers ----------

def _fixed_pose(seed, n, grid, rng, retries):
    return [seed.start] * n


def _fixed_position_random_heading(seed, n, grid, rng, retries):
    return _poses(np.full(n, seed.start.x), np.full(n, seed.start.y), _random_headings(n, rng))


def _disk_fixed_heading(seed, n, grid, rng, retries):
    xs, ys = _disk_positions(seed.start, seed.radius, n, rng)
    return _poses(xs, ys, np.full(n, seed.start.theta))


def _disk_random_heading(seed, n, grid, rng, retries):
    xs, ys = _disk_positions(seed.start, seed.radius, n, rng)
    return _poses(xs, ys, _random_headings(n, rng))


def _disk_gaussian_heading(seed, n, grid, rng, retries):
    xs, ys = _disk_positions(seed.start, seed.radius, n, rng)
    return _poses(xs, ys, _gaussian_headings(seed.start, seed.heading_variance, n, rng))


def _map_fixed_heading(seed, n, grid, rng, retries):
    xs, ys = _map_positions(grid, n, rng, retries)
    return _poses(xs, ys, np.full(n, seed.start.theta))


def _map_random_heading(seed, n, grid, rng, retries):
    xs, ys = _map_positions(grid, n, rng, retries)
    return _poses(xs, ys, _random_headings(n, rng))


def _map_gaussian_heading(seed, n, grid, rng, retries):
    xs, ys = _map_positions(grid, n, rng, retries)
    return _poses(xs, ys, _gaussian_headings(seed.start, seed.heading_variance, n, rng))


_SAMPLERS = {
    InitStrategy.FIXED_POSE: _fixed_pose,
    InitStrategy.FIXED_POSITION_RANDOM_HEADING: _fixed_position_random_heading,
    InitStrategy.DISK_FIXED_HEADING: _disk_fixed_heading,
    InitStrategy.DISK_RANDOM_HEADING: _disk_random_heading,
    InitStrategy.DISK_GAUSSIAN_HEADING: _disk_gaussian_heading,
    InitStrategy.MAP_FIXED_HEADING: _map_fixed_heading,
    InitStrategy.MAP_RANDOM_HEADING: _map_random_heading,
    InitStrategy.MAP_GAUSSIAN_HEADING: _map_gaussian_heading,
}


def seed_poses(seed: ParticleSeed, n, grid, rng, retries=100):
    """Draw ``n`` initial poses according to ``seed``."""
    if seed.strategy.uses_map and grid is None:
        raise ConfigurationError(f"{seed.strategy.name} samples free map cells and needs a grid",
                                 parameter='strategy')
    return _SAMPLERS[seed.strategy](seed, n, grid, rng, retries)
