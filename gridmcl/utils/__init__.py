"""
Utility functions for configuration parsing
"""

from .config_parser import (Config, FilterParams, MapParams, MeasurementParams, MotionParams, RobotParams,
                            SensorParams, get_map_params, get_measurement_params, get_motion_params,
                            get_particle_filter_params, get_particle_seed, get_robot_params, get_sensor_params,
                            load_config, print_config)

__all__ = [
    'Config',
    'FilterParams',
    'MapParams',
    'MeasurementParams',
    'MotionParams',
    'RobotParams',
    'SensorParams',
    'load_config',
    'get_map_params',
    'get_particle_filter_params',
    'get_motion_params',
    'get_measurement_params',
    'get_sensor_params',
    'get_robot_params',
    'get_particle_seed',
    'print_config',
]
