"""
Synthetic maps and a simulated range-sensing robot
"""

from .robot_sim import RobotSim, generate_map, scan_bearings, scan_from_points

__all__ = ['RobotSim', 'generate_map', 'scan_bearings', 'scan_from_points']
