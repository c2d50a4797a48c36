"""
Core Monte Carlo Localization components
"""

from .errors import (ConfigurationError, FilterStateError, MCLError, SamplingError,
                     UnimplementedStrategyError)
from .particle import Particle, Pose2D, angle_diff, normalize_angle
from .occupancy_grid import NO_HIT_RANGE, OccupancyGrid, RayCastCache, RayCastResult, RayCastStatus
from .motion_model import MotionModelType, sample_motion, sample_odometry_motion, sample_velocity_motion
from .measurement_model import beam_likelihood, log_scan_likelihood
from .resampling import (effective_sample_size, injection_count, injection_ratio, normalize_weights,
                         stratified_resample)
from .initialization import InitStrategy, ParticleSeed, seed_poses
from .particle_filter import FilterState, ParticleFilter, UpdateStats

__all__ = [
    'MCLError', 'ConfigurationError', 'FilterStateError', 'SamplingError', 'UnimplementedStrategyError',
    'Particle', 'Pose2D', 'angle_diff', 'normalize_angle',
    'NO_HIT_RANGE', 'OccupancyGrid', 'RayCastCache', 'RayCastResult', 'RayCastStatus',
    'MotionModelType', 'sample_motion', 'sample_odometry_motion', 'sample_velocity_motion',
    'beam_likelihood', 'log_scan_likelihood',
    'effective_sample_size', 'injection_count', 'injection_ratio', 'normalize_weights',
    'stratified_resample',
    'InitStrategy', 'ParticleSeed', 'seed_poses',
    'FilterState', 'ParticleFilter', 'UpdateStats',
]
