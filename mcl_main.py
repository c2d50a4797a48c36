#! /usr/bin/env python3
# -*- coding: utf-8 -*-

import argparse
import logging
import sys
import time

import numpy as np

# MCL components
from gridmcl.core import ConfigurationError, OccupancyGrid, ParticleFilter, ParticleSeed
# robot simulator
from gridmcl.simulation import RobotSim, generate_map
# configuration
from gridmcl.utils import (get_map_params, get_measurement_params, get_motion_params, get_particle_filter_params,
                           get_particle_seed, get_robot_params, get_sensor_params, load_config, print_config)

logger = logging.getLogger("mcl_main")


def load_grid(map_params, rng, start):
    """
    Occupancy grid from ``map.path`` (whitespace separated probabilities) or a
    generated map keeping the robot start cell free.
    """
    if map_params.path:
        try:
            prob = np.loadtxt(map_params.path, ndmin=2)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Cannot load map: {e}", parameter='map.path', source=map_params.path) from e
    else:
        if map_params.width < 3 or map_params.height < 3:
            raise ConfigurationError("generated map needs width and height >= 3", parameter='map.width')
        start_cell = tuple(int(np.floor((c + p - o) / map_params.resolution + 0.5))
                           for c, p, o in zip(map_params.center, start[:2], map_params.offset))
        prob = generate_map(map_params.width, map_params.height, rng, obstacles=map_params.obstacles,
                            keep_free=[start_cell])
    return OccupancyGrid(prob, resolution=map_params.resolution,
                         offset=map_params.offset, center=map_params.center)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Monte Carlo Localization on a simulated robot")
    parser.add_argument("--config", default="config.yaml", help="YAML configuration file")
    parser.add_argument("--steps", type=int, default=None, help="override run.steps")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    # Load configuration
    try:
        config = load_config(args.config)
        print("=== Configuration Loaded ===")
        print_config(config)
        print("=" * 30 + "\n")
        map_params = get_map_params(config)
        pf_params = get_particle_filter_params(config)
        motion_params = get_motion_params(config)
        measurement_params = get_measurement_params(config)
        sensor_params = get_sensor_params(config)
        robot_params = get_robot_params(config)
        seed = get_particle_seed(config)
    except (FileNotFoundError, ConfigurationError) as e:
        print(f"Error loading configuration: {e}")
        return 1

    # one generator for the whole run
    rng = np.random.default_rng(config.get('random_seed'))

    try:
        grid = load_grid(map_params, rng, robot_params.start)
    except ConfigurationError as e:
        print(f"Error loading map: {e}")
        return 1
    print(grid)

    start_time = time.time()
    grid.build_cache(map_params.angle_resolution)
    print(f"Ray casting cache: {grid.cache.free_cell_count} free cells x {grid.cache.angle_step} bins "
          f"in {time.time() - start_time:.2f}s")

    sim = RobotSim(grid, robot_params.start, rng,
                   sigma_dx=robot_params.sigma_dx,
                   sigma_dtheta=robot_params.sigma_dtheta,
                   sigma_range=sensor_params.range_noise,
                   beam_count=sensor_params.beam_count,
                   field_of_view=sensor_params.field_of_view,
                   max_range=measurement_params.max_range)

    particle_filter = ParticleFilter(grid, pf_params, motion_params, measurement_params, rng=rng)
    particle_filter.initialize(seed, odometry=sim.odometry)

    # Control commands from config
    control = config.get('predefined_control')
    dx = control.get('dx', 0.1) if control else 0.1
    dtheta = np.radians(control.get('dtheta_deg', 0.0)) if control else 0.0
    run = config.get('run')
    steps = args.steps if args.steps is not None else (run.get('steps', 50) if run else 50)
    print(f"Using dx={dx}, dtheta={np.degrees(dtheta):.1f} deg for {steps} steps\n")

    estimates = []
    ground_truth = []
    n_resampled = 0
    for i in range(steps):
        try:
            (ranges, bearings), odometry, truth = sim.command_and_get_data(dx, dtheta)
        except RuntimeError as e:
            # turn away from the obstacle and keep going
            print(repr(e))
            dtheta = np.pi / 2
            continue

        stats = particle_filter.update(ranges, bearings, odometry=odometry)
        n_resampled += int(stats.resampled)
        estimate = particle_filter.estimate()
        estimates.append(estimate)
        ground_truth.append(truth)
        logger.debug("step %d: n_eff=%.1f resampled=%s injected=%d starved=%d", i, stats.n_eff,
                     stats.resampled, stats.n_injected, stats.n_starved)
        if stats.degenerate:
            print(f"Step {i}: total sensor/map mismatch, re-initializing around odometry")
            # odometry starts at the robot start pose, so it lives in the map frame
            reseed = ParticleSeed(seed.strategy, odometry, seed.radius, seed.heading_variance)
            particle_filter.initialize(reseed, odometry=odometry)
        dtheta = np.radians(control.get('dtheta_deg', 0.0)) if control else 0.0

    if estimates:
        est = np.array(estimates)
        gt = np.array(ground_truth)

        # Calculate errors
        pos_error = np.hypot(est[:, 0] - gt[:, 0], est[:, 1] - gt[:, 1])
        theta_error = np.abs(np.angle(np.exp(1j * (est[:, 2] - gt[:, 2]))))

        print(f"\n=== Tracking Performance ===")
        print(f"Updates: {len(estimates)} (resampled {n_resampled})")
        print(f"Mean position error: {np.mean(pos_error):.3f}")
        print(f"Max position error: {np.max(pos_error):.3f}")
        print(f"Mean theta error: {np.degrees(np.mean(theta_error)):.2f} deg")
        print(f"Max theta error: {np.degrees(np.max(theta_error)):.2f} deg")
    return 0


# = MAIN PROGRAM =

if __name__ == "__main__":
    sys.exit(main())
