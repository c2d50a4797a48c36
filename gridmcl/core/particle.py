import math
from typing import NamedTuple

import numpy as np

TWO_PI = 2.0 * math.pi

# ---------- helper functions ----------

def normalize_angle(a):
    """Wrap an angle (scalar or array) into (-pi, pi]."""
    if np.ndim(a) == 0:
        a = float(a)
        if -math.pi < a <= math.pi:
            return a
        a = math.fmod(a + math.pi, TWO_PI)
        if a < 0.0:
            a += TWO_PI
        a -= math.pi
        return math.pi if a == -math.pi else a
    a = np.asarray(a, dtype=float)
    wrapped = np.mod(a + np.pi, TWO_PI) - np.pi
    wrapped = np.where(wrapped == -np.pi, np.pi, wrapped)
    # angles already inside the interval are returned untouched
    return np.where((a > -np.pi) & (a <= np.pi), a, wrapped)


def angle_diff(a, b):
    """Minimum signed difference b - a, in (-pi, pi]."""
    return normalize_angle(b - a)


# ---------- Pose ----------
class Pose2D(NamedTuple):
    x: float
    y: float
    theta: float = 0.0

    @classmethod
    def normalized(cls, x, y, theta=0.0):
        return cls(float(x), float(y), normalize_angle(theta))

    def distance_to(self, other: "Pose2D") -> float:
        return math.hypot(other.x - self.x, other.y - self.y)


# ---------- Particle class ----------
class Particle:
    __slots__ = ('pose', 'weight')

    def __init__(self, pose: Pose2D, weight: float = 0.0):
        self.pose = pose
        self.weight = weight

    def assign(self, pose: Pose2D, weight: float):
        self.pose = pose
        self.weight = weight

    @property
    def x(self):
        return self.pose.x

    @property
    def y(self):
        return self.pose.y

    @property
    def theta(self):
        return self.pose.theta

    def __repr__(self):
        return f"Particle({self.pose.x:.3f}, {self.pose.y:.3f}, {self.pose.theta:.3f}, w={self.weight:.3g})"
