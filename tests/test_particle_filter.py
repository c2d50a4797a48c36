"""
Unit tests for the MCL particle filter
"""

import math
import unittest

import numpy as np

from gridmcl.core import (ConfigurationError, FilterState, FilterStateError, InitStrategy, MotionModelType,
                          OccupancyGrid, ParticleFilter, ParticleSeed, Pose2D, beam_likelihood)
from gridmcl.utils import FilterParams, MeasurementParams, MotionParams

ZERO_NOISE = (0.0, 0.0, 0.0, 0.0, 0.0, 0.0)
MEASUREMENT = MeasurementParams(max_range=10.0, hit_variance=0.01, short_rate=1.0, weights=(0.8, 0.1, 0.05, 0.05))


def bordered_grid(width=10, height=10):
    prob = np.zeros((width, height))
    prob[0, :] = prob[-1, :] = 1.0
    prob[:, 0] = prob[:, -1] = 1.0
    grid = OccupancyGrid(prob, resolution=1.0)
    grid.build_cache(math.pi / 2)
    return grid


def make_filter(grid=None, n=1000, model=MotionModelType.ODOMETRY, noise=ZERO_NOISE, rng=None, **params):
    grid = grid if grid is not None else bordered_grid()
    return ParticleFilter(grid, FilterParams(num_particles=n, **params), MotionParams(model, noise), MEASUREMENT,
                          rng=rng if rng is not None else np.random.default_rng(0))


def fixed_seed(x=2.0, y=5.0, theta=0.0):
    return ParticleSeed(InitStrategy.FIXED_POSE, start=Pose2D(x, y, theta))


class TestLifecycle(unittest.TestCase):
    """Test construction and initialization"""

    def test_requires_initialize(self):
        pf = make_filter(n=10)
        self.assertIs(pf.state, FilterState.UNINITIALIZED)
        with self.assertRaises(FilterStateError):
            pf.predict(odometry=Pose2D(1.0, 0.0, 0.0))
        with self.assertRaises(FilterStateError):
            pf.weight([1.0], [0.0])
        with self.assertRaises(FilterStateError):
            pf.resample()

    def test_initialize_uniform_weights(self):
        pf = make_filter(n=10)
        pf.initialize(fixed_seed())
        self.assertIs(pf.state, FilterState.READY)
        np.testing.assert_allclose(pf.weights, np.full(10, 0.1))
        self.assertTrue(all(p.pose == Pose2D(2.0, 5.0, 0.0) for p in pf.particles))

    def test_missing_cache(self):
        grid = OccupancyGrid(np.zeros((5, 5)))
        with self.assertRaises(ConfigurationError):
            ParticleFilter(grid, FilterParams(num_particles=5), MotionParams(MotionModelType.ODOMETRY, ZERO_NOISE),
                           MEASUREMENT)

    def test_builds_cache_when_given_resolution(self):
        grid = OccupancyGrid(np.zeros((5, 5)))
        pf = ParticleFilter(grid, FilterParams(num_particles=5), MotionParams(MotionModelType.ODOMETRY, ZERO_NOISE),
                            MEASUREMENT, angle_resolution=math.pi / 2)
        self.assertIsNotNone(grid.cache)
        self.assertIs(pf.cache, grid.cache)

    def test_velocity_model_needs_six_coefficients(self):
        with self.assertRaises(ConfigurationError) as ctx:
            make_filter(n=5, model=MotionModelType.VELOCITY, noise=(0.1, 0.1, 0.1, 0.1))
        self.assertEqual(ctx.exception.parameter, 'motion.noise')
        with self.assertRaises(ConfigurationError):
            make_filter(n=5, noise=(0.1, 0.1))
        # four are enough for odometry
        make_filter(n=5, noise=(0.1, 0.1, 0.1, 0.1))

    def test_invalid_particle_count(self):
        with self.assertRaises(ConfigurationError):
            make_filter(n=0)


class TestPredict(unittest.TestCase):
    """Test the motion update"""

    def test_odometry_moves_particles(self):
        pf = make_filter(n=5)
        pf.initialize(fixed_seed(), odometry=Pose2D(0.0, 0.0, 0.0))
        pf.predict(odometry=Pose2D(1.0, 0.0, 0.0))
        for p in pf.particles:
            self.assertAlmostEqual(p.x, 3.0)
            self.assertAlmostEqual(p.y, 5.0)
        self.assertEqual(pf.last_odometry, Pose2D(1.0, 0.0, 0.0))

    def test_odometry_required(self):
        pf = make_filter(n=5)
        pf.initialize(fixed_seed())
        with self.assertRaises(ValueError):
            pf.predict()

    def test_velocity_model(self):
        pf = make_filter(n=5, model=MotionModelType.VELOCITY)
        pf.initialize(fixed_seed())
        pf.predict(control=(1.0, 0.0), dt=2.0)
        for p in pf.particles:
            self.assertAlmostEqual(p.x, 4.0)
        with self.assertRaises(ValueError):
            pf.predict(control=(1.0, 0.0))


class TestWeight(unittest.TestCase):
    """Test the measurement update"""

    def test_single_beam_end_to_end(self):
        """Identical particles facing a wall 6 cells away all score the same"""
        pf = make_filter(n=1000)
        pf.initialize(fixed_seed(), odometry=Pose2D(0.0, 0.0, 0.0))
        stats = pf.update([6.0], [0.0], odometry=Pose2D(1.0, 0.0, 0.0))

        expected = beam_likelihood(6.0, 6.0, MEASUREMENT.max_range, MEASUREMENT.hit_variance,
                                   MEASUREMENT.short_rate, MEASUREMENT.weights)
        self.assertAlmostEqual(pf.measurement_log_likelihood(Pose2D(3.0, 5.0, 0.0), np.array([6.0]),
                                                             np.array([0.0])), math.log(expected))
        np.testing.assert_allclose(pf.weights, np.full(1000, 1e-3))
        self.assertAlmostEqual(stats.n_eff, 1000.0, places=6)
        self.assertAlmostEqual(stats.w_avg, expected, places=9)
        self.assertFalse(stats.resampled)
        self.assertFalse(stats.degenerate)
        self.assertEqual(stats.n_starved, 0)

    def test_free_grid_end_to_end(self):
        """On an open map every particle expects a max range reading"""
        grid = OccupancyGrid(np.zeros((10, 10)))
        grid.build_cache(math.pi / 2)
        pf = make_filter(grid=grid, n=1000)
        pf.initialize(fixed_seed(), odometry=Pose2D(0.0, 0.0, 0.0))
        stats = pf.update([MEASUREMENT.max_range], [0.0], odometry=Pose2D(1.0, 0.0, 0.0))
        np.testing.assert_allclose(pf.weights, np.full(1000, 1e-3))
        self.assertAlmostEqual(stats.n_eff, 1000.0, places=6)
        self.assertEqual(stats.n_starved, 0)

    def test_weights_normalized(self):
        pf = make_filter(n=300, noise=(0.2, 0.05, 0.2, 0.05), rng=np.random.default_rng(8))
        pf.initialize(ParticleSeed(InitStrategy.MAP_RANDOM_HEADING))
        pf.update([3.0, 2.5, 4.0], [0.0, 1.0, -2.0], odometry=Pose2D(0.3, 0.1, 0.2))
        weights = pf.weights
        self.assertTrue(np.all(weights >= 0.0))
        self.assertAlmostEqual(float(np.sum(weights)), 1.0, delta=1e-9)

    def test_bearing_in_sensor_frame(self):
        """A particle facing +y sees the top wall with bearing 0"""
        pf = make_filter(n=1)
        pose = Pose2D(3.0, 5.0, math.pi / 2)
        ll_wall = pf.measurement_log_likelihood(pose, np.array([4.0]), np.array([0.0]))
        ll_wrong = pf.measurement_log_likelihood(pose, np.array([6.0]), np.array([0.0]))
        self.assertGreater(ll_wall, ll_wrong)

    def test_no_hit_scored_as_max_range(self):
        grid = OccupancyGrid(np.zeros((10, 10)))
        grid.build_cache(math.pi / 2)
        pf = make_filter(grid=grid, n=1)
        ll = pf.measurement_log_likelihood(Pose2D(5.0, 5.0, 0.0), np.array([10.0]), np.array([0.0]))
        expected = beam_likelihood(10.0, 10.0, MEASUREMENT.max_range, MEASUREMENT.hit_variance,
                                   MEASUREMENT.short_rate, MEASUREMENT.weights)
        self.assertAlmostEqual(ll, math.log(expected))

    def test_off_map_and_occupied_particles_starve(self):
        pf = make_filter(n=4)
        pf.initialize(fixed_seed(3.0, 5.0))
        pf.particles[0].pose = Pose2D(50.0, 50.0, 0.0)
        pf.particles[1].pose = Pose2D(0.0, 5.0, 0.0)
        w_avg, degenerate, n_starved = pf.weight([6.0], [0.0])
        self.assertFalse(degenerate)
        self.assertEqual(n_starved, 2)
        np.testing.assert_allclose(pf.weights, [0.0, 0.0, 0.5, 0.5])
        self.assertGreater(w_avg, 0.0)

    def test_all_off_map_is_degenerate(self):
        pf = make_filter(n=20)
        pf.initialize(fixed_seed(50.0, 50.0), odometry=Pose2D(0.0, 0.0, 0.0))
        stats = pf.update([6.0], [0.0], odometry=Pose2D(0.0, 0.0, 0.0))
        self.assertTrue(stats.degenerate)
        self.assertFalse(stats.resampled)
        self.assertEqual(stats.n_starved, 20)
        self.assertEqual(stats.w_avg, 0.0)
        np.testing.assert_allclose(pf.weights, np.full(20, 0.05))
        # predicted poses are kept
        self.assertTrue(all(p.pose == Pose2D(50.0, 50.0, 0.0) for p in pf.particles))

    def test_prior_weight_not_carried_over(self):
        """Equal scan likelihoods give equal weights whatever the previous weights were"""
        pf = make_filter(n=2)
        pf.initialize(fixed_seed(3.0, 5.0))
        pf.particles[0].weight = 0.9
        pf.particles[1].weight = 0.1
        pf.weight([6.0], [0.0])
        np.testing.assert_allclose(pf.weights, [0.5, 0.5])

    def test_reweight_after_meeting_at_same_pose(self):
        pf = make_filter(n=2)
        pf.initialize(fixed_seed(3.0, 5.0))
        pf.particles[1].pose = Pose2D(5.0, 5.0, 0.0)
        pf.weight([6.0], [0.0])
        self.assertGreater(pf.weights[0], pf.weights[1])
        pf.particles[1].pose = Pose2D(3.0, 5.0, 0.0)
        pf.weight([6.0], [0.0])
        np.testing.assert_allclose(pf.weights, [0.5, 0.5])

    def test_augmented_degenerate_update(self):
        """A scan that starves every particle decays w_fast and triggers injection later"""
        pf = make_filter(n=50, augmented=True)
        pf.initialize(fixed_seed(3.0, 5.0), odometry=Pose2D(0.0, 0.0, 0.0))
        odometry = Pose2D(0.0, 0.0, 0.0)
        stats = pf.update([6.0], [0.0], odometry=odometry)
        self.assertFalse(stats.degenerate)
        self.assertEqual(stats.n_injected, 0)
        seeded = pf.w_fast
        self.assertGreater(seeded, 0.0)
        self.assertEqual(pf.w_slow, seeded)

        for p in pf.particles:
            p.pose = Pose2D(50.0, 50.0, 0.0)
        with self.assertLogs('gridmcl.core.particle_filter', 'WARNING'):
            stats = pf.update([6.0], [0.0], odometry=odometry)
        self.assertTrue(stats.degenerate)
        self.assertFalse(stats.resampled)
        self.assertEqual(stats.w_avg, 0.0)
        self.assertAlmostEqual(pf.w_fast, 0.9 * seeded)
        self.assertAlmostEqual(pf.w_slow, 0.999 * seeded)

        for p in pf.particles:
            p.pose = Pose2D(3.0, 5.0, 0.0)
        stats = pf.update([6.0], [0.0], odometry=odometry)
        self.assertFalse(stats.degenerate)
        self.assertTrue(stats.resampled)
        self.assertGreater(stats.n_injected, 0)

    def test_shape_mismatch(self):
        pf = make_filter(n=2)
        pf.initialize(fixed_seed())
        with self.assertRaises(ValueError):
            pf.weight([1.0, 2.0], [0.0])


class TestResample(unittest.TestCase):
    """Test stratified and augmented resampling"""

    def test_one_hot_collapse(self):
        pf = make_filter(n=10)
        pf.initialize(ParticleSeed(InitStrategy.MAP_RANDOM_HEADING))
        for p in pf.particles:
            p.weight = 0.0
        pf.particles[3].weight = 1.0
        winner = pf.particles[3].pose
        self.assertTrue(pf.resample())
        self.assertTrue(all(p.pose == winner for p in pf.particles))
        np.testing.assert_allclose(pf.weights, np.full(10, 0.1))

    def test_buffers_swap(self):
        pf = make_filter(n=10)
        pf.initialize(fixed_seed())
        before = pf.particles
        pf.particles[0].weight = 1.0
        for p in pf.particles[1:]:
            p.weight = 0.0
        pf.resample()
        self.assertIsNot(pf.particles, before)
        self.assertIs(pf._buffer, before)

    def test_skipped_when_diverse(self):
        pf = make_filter(n=10)
        pf.initialize(fixed_seed())
        self.assertFalse(pf.resample())

    def test_single_particle_never_resamples(self):
        pf = make_filter(n=1)
        pf.initialize(fixed_seed())
        self.assertFalse(pf.resample())
        self.assertEqual(pf.resample_augmented(0.5), (False, 0))

    def test_trackers_seeded_by_first_sample(self):
        pf = make_filter(n=10, augmented=True)
        pf.initialize(fixed_seed())
        pf.update_weight_trackers(0.0)
        self.assertEqual((pf.w_slow, pf.w_fast), (0.0, 0.0))
        pf.update_weight_trackers(0.3)
        self.assertEqual((pf.w_slow, pf.w_fast), (0.3, 0.3))
        pf.update_weight_trackers(0.0)
        self.assertAlmostEqual(pf.w_slow, 0.3 * (1 - 0.001))
        self.assertAlmostEqual(pf.w_fast, 0.3 * (1 - 0.1))

    def test_forced_injection(self):
        """A collapsed short-term average redraws the whole population"""
        grid = bordered_grid()
        pf = make_filter(grid=grid, n=50, augmented=True)
        pf.initialize(fixed_seed())
        pf.w_slow, pf.w_fast = 1.0, 0.0
        resampled, n_injected = pf.resample_augmented(0.0)
        self.assertTrue(resampled)
        self.assertEqual(n_injected, 50)
        for p in pf.particles:
            cell = grid.world_to_grid(p.x, p.y)
            self.assertIsNotNone(cell)
            self.assertFalse(grid.is_occupied(*cell))
        np.testing.assert_allclose(pf.weights, np.full(50, 0.02))

    def test_partial_injection(self):
        pf = make_filter(n=100, augmented=True, a_slow=0.0, a_fast=0.0)
        pf.initialize(fixed_seed())
        pf.w_slow, pf.w_fast = 1.0, 0.5
        self.assertEqual(pf.injection_count(), 50)
        resampled, n_injected = pf.resample_augmented(0.7)
        self.assertTrue(resampled)
        self.assertEqual(n_injected, 50)
        kept = sum(1 for p in pf.particles if p.pose == Pose2D(2.0, 5.0, 0.0))
        self.assertEqual(kept, 50)

    def test_no_injection_with_equal_trackers(self):
        pf = make_filter(n=20, augmented=True)
        pf.initialize(fixed_seed())
        pf.w_slow, pf.w_fast = 1.0, 1.0
        self.assertEqual(pf.resample_augmented(1.0), (False, 0))

    def test_injection_falls_back_on_full_map(self):
        """Without free cells the injected slots are drawn by weight"""
        pf = make_filter(n=10, augmented=True, free_cell_retries=0)
        pf.initialize(fixed_seed())
        pf.grid = OccupancyGrid(np.ones((3, 3)))
        pf.w_slow, pf.w_fast = 1.0, 0.0
        resampled, n_injected = pf.resample_augmented(0.0)
        self.assertTrue(resampled)
        self.assertEqual(n_injected, 0)
        self.assertTrue(all(p.pose == Pose2D(2.0, 5.0, 0.0) for p in pf.particles))


class TestEstimate(unittest.TestCase):
    """Test pose summaries"""

    def test_fixed_population(self):
        pf = make_filter(n=10)
        pf.initialize(fixed_seed(2.0, 5.0, 0.3))
        est = pf.estimate()
        self.assertAlmostEqual(est.x, 2.0)
        self.assertAlmostEqual(est.y, 5.0)
        self.assertAlmostEqual(est.theta, 0.3)

    def test_heading_wraps(self):
        """Headings on both sides of the +-pi seam average near pi, not 0"""
        pf = make_filter(n=10)
        pf.initialize(fixed_seed())
        for i, p in enumerate(pf.particles):
            p.pose = Pose2D(2.0, 5.0, math.pi - 0.1 if i % 2 else -math.pi + 0.1)
        self.assertGreater(abs(pf.estimate().theta), 3.0)

    def test_weighted_mean_and_best(self):
        pf = make_filter(n=2)
        pf.initialize(fixed_seed())
        pf.particles[0].assign(Pose2D(2.0, 2.0, 0.0), 0.75)
        pf.particles[1].assign(Pose2D(6.0, 2.0, 0.0), 0.25)
        self.assertAlmostEqual(pf.estimate().x, 3.0)
        best, weights = pf.get_best_particle()
        self.assertIs(best, pf.particles[0])
        np.testing.assert_allclose(weights, [0.75, 0.25])


class TestDeterminism(unittest.TestCase):
    """Same seed, same inputs, same particles"""

    def _run(self):
        grid = bordered_grid()
        pf = make_filter(grid=grid, n=200, noise=(0.05, 0.01, 0.05, 0.01), augmented=True,
                         rng=np.random.default_rng(123))
        pf.initialize(ParticleSeed(InitStrategy.DISK_RANDOM_HEADING, start=Pose2D(4.0, 5.0, 0.0), radius=1.0))
        bearings = np.array([0.0, math.pi / 2, math.pi, -math.pi / 2])
        for step in range(1, 4):
            odometry = Pose2D(0.2 * step, 0.0, 0.0)
            pf.update(np.array([5.0, 4.0, 4.0, 5.0]), bearings, odometry=odometry)
        return [p.pose for p in pf.particles], pf.weights

    def test_reproducible(self):
        poses_a, weights_a = self._run()
        poses_b, weights_b = self._run()
        self.assertEqual(poses_a, poses_b)
        np.testing.assert_array_equal(weights_a, weights_b)


if __name__ == '__main__':
    unittest.main()
