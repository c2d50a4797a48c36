"""
Weight normalization, effective sample size and stratified resampling
"""

import numpy as np


def normalize_weights(weights):
    """
    Normalize weights to sum to 1.

    Returns (normalized, total). A non-positive or non-finite total cannot be
    normalized: the weights come back uniform and the caller gets the raw total
    to report the degeneracy.
    """
    weights = np.asarray(weights, dtype=float)
    total = float(np.sum(weights))
    n = len(weights)
    if n == 0:
        return weights.copy(), total
    if not np.isfinite(total) or total <= 0:
        return np.full(n, 1.0 / n), total
    return weights / total, total


def normalize_log_weights(log_weights):
    """
    Normalize weights given in the log domain (max subtracted before exp).
    Returns (normalized, degenerate) where degenerate means every weight was 0.
    """
    log_weights = np.asarray(log_weights, dtype=float)
    n = len(log_weights)
    peak = np.max(log_weights) if n else -np.inf
    if not np.isfinite(peak):
        return np.full(n, 1.0 / n) if n else log_weights.copy(), True
    weights = np.exp(log_weights - peak)
    return weights / np.sum(weights), False


def effective_sample_size(weights):
    """N_eff = 1 / sum(w^2) of the normalized weights."""
    w, _ = normalize_weights(weights)
    if len(w) == 0:
        return 0.0
    return 1.0 / float(np.sum(w ** 2))


def stratified_random(n, rng):
    """One uniform sample inside each of the n strata [i/n, (i+1)/n)."""
    return (np.arange(n) + rng.random(n)) / n


def stratified_resample(weights, rng, n=None):
    """
    Low-variance stratified resampling.

    Draws ``n`` (default: len(weights)) stratified positions and walks the
    cumulative weight sequence to find the owner of each one.
    Returns the selected particle indexes.
    """
    weights, _ = normalize_weights(weights)
    if n is None:
        n = len(weights)
    indexes = np.zeros(n, dtype=int)
    if n == 0 or len(weights) == 0:
        return indexes[:0]

    positions = stratified_random(n, rng)
    cumulative_sum = np.cumsum(weights)
    # guard against round-off leaving the last position uncovered
    cumulative_sum[cumulative_sum >= cumulative_sum[-1]] = 1.0
    i, j = 0, 0
    while i < n:
        if positions[i] < cumulative_sum[j]:
            indexes[i] = j
            i += 1
        else:
            j += 1
    return indexes


def injection_ratio(w_fast, w_slow, v_factor=1.0):
    """
    Fraction of the population to redraw uniformly from the free map:
    max(0, 1 - v_factor * w_fast / w_slow). Undefined (0) until w_slow > 0.
    """
    if w_slow <= 0:
        return 0.0
    return min(1.0, max(0.0, 1.0 - v_factor * (w_fast / w_slow)))


def injection_count(w_fast, w_slow, n, v_factor=1.0):
    return min(n, int(injection_ratio(w_fast, w_slow, v_factor) * n))
