"""
Sample-based motion models (Probabilistic Robotics, ch. 5)

Noise coefficients ``a`` weight squared motion magnitudes into a variance:
the odometry model reads a[0..3], the velocity model a[0..5].
"""

import math
from enum import Enum

from .errors import UnimplementedStrategyError
from .particle import Pose2D, angle_diff, normalize_angle

# translations shorter than this carry no meaningful heading
MIN_TRANSLATION = 1e-9


class MotionModelType(Enum):
    ODOMETRY = 'odometry'
    VELOCITY = 'velocity'

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise UnimplementedStrategyError(f"Unknown motion model: {value!r}") from None


def sample_normal(rng, variance):
    """Zero-mean normal sample, 0 for a non-positive variance."""
    if variance <= 0.0:
        return 0.0
    return rng.normal(0.0, math.sqrt(variance))


def decompose_odometry(odo_now: Pose2D, odo_prev: Pose2D):
    """Split an odometry delta into (rot1, trans, rot2)."""
    dx = odo_now.x - odo_prev.x
    dy = odo_now.y - odo_prev.y
    trans = math.hypot(dx, dy)
    if trans < MIN_TRANSLATION:
        rot1 = 0.0
    else:
        rot1 = angle_diff(odo_prev.theta, math.atan2(dy, dx))
    rot2 = angle_diff(rot1, angle_diff(odo_prev.theta, odo_now.theta))
    return rot1, trans, rot2


def sample_odometry_motion(odo_now: Pose2D, odo_prev: Pose2D, pose: Pose2D, noise, rng) -> Pose2D:
    """
    Draw a new pose for ``pose`` given the odometry reading moved from
    ``odo_prev`` to ``odo_now``.
    """
    rot1, trans, rot2 = decompose_odometry(odo_now, odo_prev)
    rot1_sq = rot1 * rot1
    trans_sq = trans * trans
    rot2_sq = rot2 * rot2

    n_rot1 = rot1 + sample_normal(rng, noise[0] * rot1_sq + noise[1] * trans_sq)
    n_trans = trans + sample_normal(rng, noise[2] * trans_sq + noise[3] * (rot1_sq + rot2_sq))
    n_rot2 = rot2 + sample_normal(rng, noise[0] * rot2_sq + noise[1] * trans_sq)

    heading = pose.theta + n_rot1
    x = pose.x + n_trans * math.cos(heading)
    y = pose.y + n_trans * math.sin(heading)
    return Pose2D(x, y, normalize_angle(heading + n_rot2))


def sample_velocity_motion(control, pose: Pose2D, dt, noise, rng) -> Pose2D:
    """
    Draw a new pose after applying control (v, w) for ``dt`` seconds.
    Follows a circular arc, or a straight line when the sampled w is exactly 0.
    """
    v_cmd, w_cmd = control
    v_sq = v_cmd * v_cmd
    w_sq = w_cmd * w_cmd
    v = v_cmd + sample_normal(rng, noise[0] * v_sq + noise[1] * w_sq)
    w = w_cmd + sample_normal(rng, noise[2] * v_sq + noise[3] * w_sq)
    drift = sample_normal(rng, noise[4] * v_sq + noise[5] * w_sq)

    theta = pose.theta
    if w != 0.0:
        radius = v / w
        x = pose.x - radius * math.sin(theta) + radius * math.sin(theta + w * dt)
        y = pose.y + radius * math.cos(theta) - radius * math.cos(theta + w * dt)
        heading = theta + w * dt + drift * dt
    else:
        x = pose.x + v * dt * math.cos(theta)
        y = pose.y + v * dt * math.sin(theta)
        heading = theta + drift * dt
    return Pose2D(x, y, normalize_angle(heading))


def sample_motion(model, pose: Pose2D, noise, rng, odo_now=None, odo_prev=None, control=None, dt=None):
    model = MotionModelType.parse(model)
    if model is MotionModelType.ODOMETRY:
        return sample_odometry_motion(odo_now, odo_prev, pose, noise, rng)
    if model is MotionModelType.VELOCITY:
        return sample_velocity_motion(control, pose, dt, noise, rng)
    raise UnimplementedStrategyError(f"Motion model {model} is not implemented")
