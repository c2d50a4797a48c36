"""
Beam range-finder measurement model (Probabilistic Robotics, ch. 6)

A range reading is explained by a mixture of four causes:
  hit    - gaussian around the expected range
  short  - truncated exponential, unmodeled obstacles in front of the map obstacle
  max    - point mass at the sensor's max range (missed return)
  random - uniform noise over (0, max_range)

The mixture weights must sum to 1. This is a precondition of the caller
(checked when configuration is loaded), not enforced here.
"""

import numpy as np
from scipy.stats import expon, norm


def p_hit(z, z_expected, max_range, hit_variance):
    z = np.asarray(z, dtype=float)
    if hit_variance <= 0:
        return np.zeros_like(z)
    p = norm.pdf(z, loc=z_expected, scale=np.sqrt(hit_variance))
    return np.where((z > 0) & (z <= max_range), p, 0.0)


def p_short(z, z_expected, short_rate):
    z = np.asarray(z, dtype=float)
    z_expected = np.broadcast_to(np.asarray(z_expected, dtype=float), z.shape)
    if short_rate <= 0:
        return np.zeros_like(z)
    valid = (z > 0) & (z <= z_expected) & (z_expected > 0)
    # renormalize the exponential truncated to [0, z_expected]
    with np.errstate(divide='ignore', invalid='ignore'):
        eta = 1.0 / (1.0 - np.exp(-short_rate * z_expected))
    p = expon.pdf(z, scale=1.0 / short_rate) * eta
    return np.where(valid, p, 0.0)


def p_max(z, max_range):
    z = np.asarray(z, dtype=float)
    return np.where((z <= 0) | (z >= max_range), 1.0, 0.0)


def p_rand(z, max_range):
    z = np.asarray(z, dtype=float)
    return np.where((z > 0) & (z < max_range), 1.0 / max_range, 0.0)


def beam_likelihood(z, z_expected, max_range, hit_variance, short_rate, weights):
    """
    Likelihood of observed range(s) ``z`` given expected range(s) ``z_expected``.
    Works element-wise on arrays; scalar inputs give a float.
    """
    w_hit, w_short, w_max, w_rand = weights
    p = (w_hit * p_hit(z, z_expected, max_range, hit_variance)
         + w_short * p_short(z, z_expected, short_rate)
         + w_max * p_max(z, max_range)
         + w_rand * p_rand(z, max_range))
    if np.ndim(p) == 0:
        return float(p)
    return p


def log_scan_likelihood(z, z_expected, params):
    """
    Sum of per-beam log-likelihoods of a scan, beams assumed independent.
    ``params`` is a MeasurementParams bundle. Returns -inf when any beam is impossible.
    """
    p = beam_likelihood(z, z_expected, params.max_range, params.hit_variance,
                        params.short_rate, params.weights)
    with np.errstate(divide='ignore'):
        return float(np.sum(np.log(p)))
