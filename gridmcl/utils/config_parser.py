"""
Configuration file parser for MCL parameters
"""

import math
import os
from typing import Any, Dict, NamedTuple, Optional, Tuple

import numpy as np
import yaml

from ..core.errors import ConfigurationError
from ..core.initialization import ParticleSeed
from ..core.motion_model import MotionModelType
from ..core.particle import Pose2D


class Config:
    """Configuration container with dot notation access"""

    def __init__(self, config_dict: Dict[str, Any], source: Optional[str] = None):
        self._source = source
        for key, value in config_dict.items():
            if isinstance(value, dict):
                setattr(self, key, Config(value, source))
            else:
                setattr(self, key, value)

    def __repr__(self):
        return f"Config({self.to_dict()})"

    def get(self, key: str, default: Any = None) -> Any:
        return getattr(self, key, default)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config back to dictionary"""
        result = {}
        for key, value in self.__dict__.items():
            if key.startswith('_'):
                continue
            if isinstance(value, Config):
                result[key] = value.to_dict()
            else:
                result[key] = value
        return result


# ---------- immutable parameter bundles ----------

class MapParams(NamedTuple):
    path: Optional[str]
    width: int
    height: int
    resolution: float
    offset: Tuple[float, float]
    center: Tuple[float, float]
    angle_resolution: float         # radians
    obstacles: int = 0


class FilterParams(NamedTuple):
    num_particles: int
    min_particles: float = 0.5      # fraction of num_particles
    augmented: bool = False
    a_slow: float = 0.001
    a_fast: float = 0.1
    v_factor: float = 1.0
    free_cell_retries: int = 100


class MotionParams(NamedTuple):
    model: MotionModelType
    noise: Tuple[float, ...]


class MeasurementParams(NamedTuple):
    max_range: float
    hit_variance: float
    short_rate: float
    weights: Tuple[float, float, float, float]


class SensorParams(NamedTuple):
    beam_count: int
    field_of_view: float            # radians
    range_noise: float


class RobotParams(NamedTuple):
    start: Pose2D
    sigma_dx: float
    sigma_dtheta: float             # radians


REQUIRED_SECTIONS = ['map', 'particle_filter', 'motion', 'measurement']
MIXTURE_TOLERANCE = 1e-6


def load_config(config_path: str = "config.yaml") -> Config:
    """
    Load configuration from YAML file

    Args:
        config_path: Path to configuration file

    Returns:
        Config object with dot notation access

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigurationError: If config file is invalid or misses a section
    """
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, 'r') as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML: {e}", source=config_path) from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration: {e}", source=config_path) from e

    if not isinstance(config_dict, dict):
        raise ConfigurationError("Configuration must be a mapping", source=config_path)

    # Validate required sections
    for section in REQUIRED_SECTIONS:
        if section not in config_dict:
            raise ConfigurationError(f"Missing required configuration section: {section}",
                                     parameter=section, source=config_path)

    return Config(config_dict, source=config_path)


def _require(section: Config, key: str, name: str):
    value = section.get(key)
    if value is None:
        raise ConfigurationError("Missing required parameter", parameter=name, source=section._source)
    return value


def _positive(value, name: str, source) -> float:
    value = float(value)
    if not math.isfinite(value) or value <= 0:
        raise ConfigurationError(f"must be > 0, got {value}", parameter=name, source=source)
    return value


def get_map_params(config: Config) -> MapParams:
    """
    Extract map geometry from config. Angles are given in degrees in the file.

    Args:
        config: Configuration object

    Returns:
        MapParams bundle
    """
    m = config.map
    src = config._source
    return MapParams(
        path=m.get('path'),
        width=int(m.get('width', 0)),
        height=int(m.get('height', 0)),
        resolution=_positive(_require(m, 'resolution', 'map.resolution'), 'map.resolution', src),
        offset=tuple(float(v) for v in m.get('offset', [0.0, 0.0])),
        center=tuple(float(v) for v in m.get('center', [0.0, 0.0])),
        angle_resolution=np.radians(_positive(_require(m, 'angle_resolution_deg', 'map.angle_resolution_deg'),
                                              'map.angle_resolution_deg', src)),
        obstacles=int(m.get('obstacles', 0)),
    )


def get_particle_filter_params(config: Config) -> FilterParams:
    """
    Extract particle filter parameters from config

    Args:
        config: Configuration object

    Returns:
        FilterParams bundle
    """
    pf = config.particle_filter
    src = config._source
    num_particles = int(_require(pf, 'num_particles', 'particle_filter.num_particles'))
    if num_particles < 1:
        raise ConfigurationError(f"must be >= 1, got {num_particles}",
                                 parameter='particle_filter.num_particles', source=src)
    min_particles = float(pf.get('min_particles', 0.5))
    if not 0.0 <= min_particles <= 1.0:
        raise ConfigurationError(f"must be a fraction in [0, 1], got {min_particles}",
                                 parameter='particle_filter.min_particles', source=src)
    a_slow = float(pf.get('a_slow', 0.001))
    a_fast = float(pf.get('a_fast', 0.1))
    for name, rate in (('a_slow', a_slow), ('a_fast', a_fast)):
        if not 0.0 <= rate <= 1.0:
            raise ConfigurationError(f"decay rate must be in [0, 1], got {rate}",
                                     parameter=f'particle_filter.{name}', source=src)
    return FilterParams(
        num_particles=num_particles,
        min_particles=min_particles,
        augmented=bool(pf.get('augmented', False)),
        a_slow=a_slow,
        a_fast=a_fast,
        v_factor=float(pf.get('v_factor', 1.0)),
        free_cell_retries=int(pf.get('free_cell_retries', 100)),
    )


def get_motion_params(config: Config) -> MotionParams:
    motion = config.motion
    src = config._source
    noise = tuple(float(v) for v in _require(motion, 'noise', 'motion.noise'))
    if len(noise) not in (4, 6):
        raise ConfigurationError(f"expected 4 or 6 noise coefficients, got {len(noise)}",
                                 parameter='motion.noise', source=src)
    if any(v < 0 for v in noise):
        raise ConfigurationError("noise coefficients must be >= 0", parameter='motion.noise', source=src)
    model = MotionModelType.parse(motion.get('model', 'odometry'))
    if model is MotionModelType.VELOCITY and len(noise) != 6:
        raise ConfigurationError("velocity motion model needs 6 noise coefficients",
                                 parameter='motion.noise', source=src)
    return MotionParams(model=model, noise=noise)


def get_measurement_params(config: Config) -> MeasurementParams:
    meas = config.measurement
    src = config._source
    weights = tuple(float(v) for v in _require(meas, 'weights', 'measurement.weights'))
    if len(weights) != 4:
        raise ConfigurationError(f"expected 4 mixture weights (hit, short, max, random), got {len(weights)}",
                                 parameter='measurement.weights', source=src)
    if any(w < 0 for w in weights) or abs(sum(weights) - 1.0) > MIXTURE_TOLERANCE:
        raise ConfigurationError(f"mixture weights must be >= 0 and sum to 1, got {weights}",
                                 parameter='measurement.weights', source=src)
    return MeasurementParams(
        max_range=_positive(_require(meas, 'max_range', 'measurement.max_range'), 'measurement.max_range', src),
        hit_variance=_positive(_require(meas, 'hit_variance', 'measurement.hit_variance'),
                               'measurement.hit_variance', src),
        short_rate=float(meas.get('short_rate', 0.0)),
        weights=weights,
    )


def get_sensor_params(config: Config) -> SensorParams:
    sensor = config.get('sensor')
    if sensor is None:
        return SensorParams(beam_count=36, field_of_view=2 * np.pi, range_noise=0.0)
    return SensorParams(
        beam_count=int(sensor.get('beam_count', 36)),
        field_of_view=np.radians(float(sensor.get('field_of_view_deg', 360.0))),
        range_noise=float(sensor.get('range_noise', 0.0)),
    )


def get_robot_params(config: Config) -> RobotParams:
    """
    Extract simulated robot parameters from config
    """
    robot = config.get('robot')
    if robot is None:
        return RobotParams(start=Pose2D(0.0, 0.0, 0.0), sigma_dx=0.0, sigma_dtheta=0.0)
    return RobotParams(
        start=Pose2D.normalized(robot.get('initial_x', 0.0), robot.get('initial_y', 0.0),
                                np.radians(robot.get('initial_theta_deg', 0.0))),
        sigma_dx=float(robot.get('sigma_dx', 0.0)),
        sigma_dtheta=np.radians(float(robot.get('sigma_dtheta_deg', 0.0))),
    )


def get_particle_seed(config: Config, start: Optional[Pose2D] = None) -> ParticleSeed:
    """
    Build the initialization strategy. The reference pose defaults to the robot start.
    """
    init = config.particle_filter.get('init')
    if start is None:
        start = get_robot_params(config).start
    if init is None:
        return ParticleSeed('fixed_pose', start=start)
    if init.get('x') is not None or init.get('y') is not None:
        start = Pose2D.normalized(init.get('x', start.x), init.get('y', start.y),
                                  np.radians(init.get('theta_deg', np.degrees(start.theta))))
    return ParticleSeed(init.get('strategy', 'fixed_pose'),
                        start=start,
                        radius=float(init.get('radius', 0.0)),
                        heading_variance=float(init.get('heading_variance', 0.0)))


def print_config(config: Config, indent: int = 0):
    """
    Pretty print configuration

    Args:
        config: Configuration object
        indent: Indentation level
    """
    for key, value in config.__dict__.items():
        if key.startswith('_'):
            continue
        if isinstance(value, Config):
            print("  " * indent + f"{key}:")
            print_config(value, indent + 1)
        else:
            print("  " * indent + f"{key}: {value}")
