"""
Monte Carlo Localization on 2D occupancy grids
"""

__version__ = '0.1.0'
