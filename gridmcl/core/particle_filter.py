# Monte Carlo Localization on a static occupancy grid
# - Particles store a pose (x, y, theta) and an importance weight
# - Motion update samples odometry (or velocity) motion per particle
# - Measurement update: 1) score each beam against the ray-casting cache
#                      2) weight = product of beam likelihoods, normalize
#                      3) resample when the effective sample size drops,
#                         optionally injecting free-map particles (augmented MCL)

import logging
import math
from enum import Enum
from typing import NamedTuple

import numpy as np
from scipy.special import logsumexp

from .errors import ConfigurationError, FilterStateError
from .initialization import ParticleSeed, seed_poses
from .measurement_model import log_scan_likelihood
from .motion_model import MotionModelType, sample_motion
from .occupancy_grid import NO_HIT_RANGE
from .particle import Particle, Pose2D, normalize_angle
from .resampling import (effective_sample_size, injection_count, normalize_log_weights,
                         stratified_resample)

logger = logging.getLogger(__name__)


class FilterState(Enum):
    UNINITIALIZED = 'uninitialized'
    READY = 'ready'


class UpdateStats(NamedTuple):
    n_eff: float
    resampled: bool = False
    degenerate: bool = False
    w_avg: float = 0.0
    n_injected: int = 0
    n_starved: int = 0


# ---------- Particle Filter Class ----------
class ParticleFilter:
    def __init__(self, grid, filter_params, motion_params, measurement_params,
                 rng=None, angle_resolution=None):
        if int(filter_params.num_particles) < 1:
            raise ConfigurationError(f"num_particles must be >= 1, got {filter_params.num_particles}",
                                     parameter='num_particles')
        self.N = int(filter_params.num_particles)
        self.n_min = filter_params.min_particles * self.N
        self.params = filter_params
        self.motion = motion_params
        self.motion_model = MotionModelType.parse(motion_params.model)
        needed = 6 if self.motion_model is MotionModelType.VELOCITY else 4
        if len(motion_params.noise) < needed:
            raise ConfigurationError(f"{self.motion_model.value} motion model needs {needed} noise coefficients, "
                                     f"got {len(motion_params.noise)}", parameter='motion.noise')
        self.measurement = measurement_params
        self.rng = rng if rng is not None else np.random.default_rng()

        # READY implies a built cache: build it here if the caller did not
        self.grid = grid
        if grid.cache is None:
            if angle_resolution is None:
                raise ConfigurationError("grid has no ray casting cache and no angle resolution was given",
                                         parameter='angle_resolution')
            grid.build_cache(angle_resolution)
        self.cache = grid.cache

        # current set and the buffer resampling writes into
        self.particles = [Particle(Pose2D(0.0, 0.0, 0.0)) for _ in range(self.N)]
        self._buffer = [Particle(Pose2D(0.0, 0.0, 0.0)) for _ in range(self.N)]
        self.last_odometry = None
        self.w_slow = 0.0
        self.w_fast = 0.0
        self.state = FilterState.UNINITIALIZED

    # ---------- lifecycle ----------

    def initialize(self, seed: ParticleSeed, odometry=Pose2D(0.0, 0.0, 0.0)):
        poses = seed_poses(seed, self.N, self.grid, self.rng, retries=self.params.free_cell_retries)
        for p, pose in zip(self.particles, poses):
            p.assign(pose, 1.0 / self.N)
        self.last_odometry = Pose2D.normalized(*odometry)
        self.w_slow = 0.0
        self.w_fast = 0.0
        self.state = FilterState.READY
        logger.info("Initialized %d particles with %s", self.N, seed)

    def _require_ready(self):
        if self.state is not FilterState.READY:
            raise FilterStateError("particle filter is not initialized, call initialize() first")

    # ---------- predict ----------

    def predict(self, odometry=None, control=None, dt=None):
        """
        Move every particle with the configured motion model.
        Odometry model: ``odometry`` is the current odometry pose, the delta is
        taken from the previous one. Velocity model: ``control`` = (v, w) over ``dt``.
        """
        self._require_ready()
        if self.motion_model is MotionModelType.ODOMETRY:
            if odometry is None:
                raise ValueError("odometry motion model needs the current odometry pose")
            odometry = Pose2D.normalized(*odometry)
            for p in self.particles:
                p.pose = sample_motion(self.motion_model, p.pose, self.motion.noise, self.rng,
                                       odo_now=odometry, odo_prev=self.last_odometry)
            self.last_odometry = odometry
        else:
            if control is None or dt is None:
                raise ValueError("velocity motion model needs a (v, w) control and dt")
            for p in self.particles:
                p.pose = sample_motion(self.motion_model, p.pose, self.motion.noise, self.rng,
                                       control=control, dt=dt)

    # ---------- weight ----------

    def measurement_log_likelihood(self, pose, ranges, bearings):
        """
        Log-likelihood of a scan seen from ``pose``; -inf when the pose is off
        the map or on a cell without cached rays.
        """
        cell = self.grid.world_to_grid(pose.x, pose.y)
        if cell is None:
            return -math.inf
        expected_row = self.cache.ranges_at(*cell)
        if expected_row is None:
            return -math.inf
        if len(ranges) == 0:
            return 0.0
        # sensor frame -> map frame, then nearest cached bin
        angles = normalize_angle(bearings + pose.theta)
        expected = expected_row[self.cache.bin_index(angles)]
        expected = np.where(expected == NO_HIT_RANGE, self.measurement.max_range, expected)
        return log_scan_likelihood(ranges, expected, self.measurement)

    def weight(self, ranges, bearings):
        """
        Reweight particles with a scan given as ranges and bearings (sensor frame).
        Returns (w_avg, degenerate, n_starved): the mean raw scan likelihood, whether
        every weight was zero, and how many particles got zero likelihood.
        """
        self._require_ready()
        ranges = np.atleast_1d(np.asarray(ranges, dtype=float))
        bearings = np.atleast_1d(np.asarray(bearings, dtype=float))
        if ranges.shape != bearings.shape:
            raise ValueError(f"ranges and bearings differ in shape: {ranges.shape} vs {bearings.shape}")

        log_likes = np.array([self.measurement_log_likelihood(p.pose, ranges, bearings)
                              for p in self.particles])
        n_starved = int(np.sum(np.isneginf(log_likes)))
        w_avg = float(np.exp(logsumexp(log_likes) - math.log(self.N)))

        # each cycle scores the scan alone, the previous weight is not carried over
        weights, degenerate = normalize_log_weights(log_likes)
        if degenerate:
            logger.warning("All %d particle weights are zero (%d off map or on occupied cells), "
                           "keeping predicted poses with uniform weights", self.N, n_starved)
        for p, w in zip(self.particles, weights):
            p.weight = float(w)
        return w_avg, degenerate, n_starved

    # ---------- resample ----------

    def effective_sample_size(self):
        return effective_sample_size(self.weights)

    def _swap(self):
        self.particles, self._buffer = self._buffer, self.particles

    def resample(self):
        """Stratified resampling when N_eff < n_min. Returns True if it resampled."""
        self._require_ready()
        if self.N < 2:
            return False
        weights = self.weights
        if effective_sample_size(weights) >= self.n_min:
            return False
        indexes = stratified_resample(weights, self.rng)
        for slot, idx in zip(self._buffer, indexes):
            slot.assign(self.particles[idx].pose, 1.0 / self.N)
        self._swap()
        return True

    def update_weight_trackers(self, w_avg):
        """Exponentially smoothed short/long term average weight."""
        if not math.isfinite(w_avg) or w_avg < 0:
            w_avg = 0.0
        if self.w_slow <= 0.0:
            # first real sample seeds both trackers, injection stays off until then
            if w_avg > 0.0:
                self.w_slow = w_avg
                self.w_fast = w_avg
            return
        self.w_slow += self.params.a_slow * (w_avg - self.w_slow)
        self.w_fast += self.params.a_fast * (w_avg - self.w_fast)

    def injection_count(self):
        return injection_count(self.w_fast, self.w_slow, self.N, self.params.v_factor)

    def resample_augmented(self, w_avg):
        """
        Augmented MCL resampling. Returns (resampled, n_injected).

        ``injection_count()`` particles are redrawn uniformly over the free map
        with a random heading, the rest are drawn by weight. Any injection forces
        a resample even when N_eff is still above n_min.
        """
        self._require_ready()
        self.update_weight_trackers(w_avg)
        if self.N < 2:
            return False, 0
        n_random = self.injection_count()
        weights = self.weights
        if n_random == 0 and effective_sample_size(weights) >= self.n_min:
            return False, 0

        n_keep = self.N - n_random
        indexes = stratified_resample(weights, self.rng, n=n_keep)
        for slot, idx in zip(self._buffer[:n_keep], indexes):
            slot.assign(self.particles[idx].pose, 1.0 / self.N)

        n_injected = 0
        for slot in self._buffer[n_keep:]:
            pose = self.grid.sample_free_cell(self.rng, retries=self.params.free_cell_retries)
            if pose is None:
                # no free cell found within the budget, fall back to a weighted draw
                idx = stratified_resample(weights, self.rng, n=1)[0]
                slot.assign(self.particles[idx].pose, 1.0 / self.N)
                continue
            heading = normalize_angle(self.rng.uniform(-math.pi, math.pi))
            slot.assign(Pose2D(pose.x, pose.y, heading), 1.0 / self.N)
            n_injected += 1
        if n_injected < n_random:
            logger.warning("Random particle injection found free cells for %d of %d particles",
                           n_injected, n_random)
        logger.debug("augmented resample: w_slow=%.3g w_fast=%.3g injected=%d",
                     self.w_slow, self.w_fast, n_injected)
        self._swap()
        return True, n_injected

    # ---------- full cycle ----------

    def update(self, ranges, bearings, odometry=None, control=None, dt=None):
        """Predict, weight and (maybe) resample. Returns UpdateStats."""
        self.predict(odometry=odometry, control=control, dt=dt)
        w_avg, degenerate, n_starved = self.weight(ranges, bearings)
        n_eff = self.effective_sample_size()

        resampled, n_injected = False, 0
        if self.params.augmented:
            if degenerate:
                self.update_weight_trackers(w_avg)
            else:
                resampled, n_injected = self.resample_augmented(w_avg)
        elif not degenerate:
            resampled = self.resample()

        return UpdateStats(n_eff=n_eff, resampled=resampled, degenerate=degenerate,
                           w_avg=w_avg, n_injected=n_injected, n_starved=n_starved)

    # ---------- summaries ----------

    @property
    def weights(self):
        return np.array([p.weight for p in self.particles])

    def get_best_particle(self):
        # return particle with highest weight
        weights = self.weights
        idx = int(np.argmax(weights))
        return self.particles[idx], weights

    def estimate(self):
        """Weighted mean pose, circular mean for the heading."""
        weights = self.weights
        weights = weights / weights.sum() if weights.sum() > 0 else np.full(self.N, 1.0 / self.N)
        xs = np.array([p.x for p in self.particles])
        ys = np.array([p.y for p in self.particles])
        thetas = np.array([p.theta for p in self.particles])
        heading = math.atan2(np.sum(weights * np.sin(thetas)), np.sum(weights * np.cos(thetas)))
        return Pose2D.normalized(np.sum(weights * xs), np.sum(weights * ys), heading)
