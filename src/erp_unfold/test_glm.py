"""
Tests for the GLM fit on time-expanded designs
"""

import numpy as np
import pytest

from erp_unfold.artifacts import exclude_artifacts
from erp_unfold.condense import condense
from erp_unfold.design import DesignMatrix
from erp_unfold.errors import FitError
from erp_unfold.glm import fit_glm
from erp_unfold.timeexpand import time_expand


def _design(rows, latencies, terms):
    return DesignMatrix(
        matrix=np.asarray(rows, dtype=float),
        terms=list(terms),
        latencies=np.asarray(latencies, dtype=int),
        event_types=['S 10'] * len(latencies),
        formulas=('y ~ 1',),
    )


def test_isolated_event_reconstructs_its_segment():
    sfreq, n_samples, latency = 500.0, 5000, 2000
    expanded = time_expand(_design([[1]], [latency], ['Intercept']),
                           n_samples, sfreq, -0.2, 0.8)
    lags = np.round(expanded.times * sfreq).astype(int)

    rng = np.random.default_rng(3)
    data = np.zeros((2, n_samples))
    segment = rng.normal(0.0, 5.0, (2, len(lags)))
    data[:, latency + lags] = segment

    fit = fit_glm(expanded, data)
    result = condense(fit, expanded, ['Cz', 'Pz'])

    np.testing.assert_allclose(result.beta[:, :, 0], segment, atol=1e-6)


def test_overlapping_responses_are_separated():
    sfreq, n_samples = 100.0, 12000
    rng = np.random.default_rng(7)

    onsets = np.arange(200, 11500, 250)
    soas = rng.integers(20, 60, len(onsets))
    latencies = np.concatenate([onsets, onsets + soas])
    rows = np.concatenate([np.tile([1.0, 0.0], (len(onsets), 1)),
                           np.tile([0.0, 1.0], (len(onsets), 1))])
    order = np.argsort(latencies, kind='stable')
    design = _design(rows[order], latencies[order], ['stim1', 'stim2'])

    expanded = time_expand(design, n_samples, sfreq, -0.1, 0.6)
    n_lags = expanded.n_lags
    t = expanded.times
    true_beta = np.concatenate([
        4.0 * np.exp(-0.5 * ((t - 0.2) / 0.05) ** 2),
        -3.0 * np.exp(-0.5 * ((t - 0.3) / 0.08) ** 2),
    ])[:, None]
    data = (expanded.matrix @ true_beta).T

    fit = fit_glm(expanded, data, tol=1e-12, maxiter=5000)

    np.testing.assert_allclose(fit.beta[:, 0], true_beta[:, 0], atol=1e-4)
    assert fit.beta.shape == (2 * n_lags, 1)


def test_columns_without_data_are_nan():
    design = _design([[1, 1, 0], [1, 1, 0]], [1000, 3000], ['Intercept', 'stim1', 'stim2'])
    expanded = time_expand(design, 5000, 1000.0, -0.2, 0.8)
    data = np.random.default_rng(0).normal(size=(3, 5000))

    fit = fit_glm(expanded, data)
    n_lags = expanded.n_lags

    assert np.all(np.isnan(fit.beta[2 * n_lags:]))
    assert np.all(np.isfinite(fit.beta[:2 * n_lags]))
    assert fit.n_unsupported == n_lags


def test_collinear_design_lsmr_gives_minimum_norm_solution():
    # Every event belongs to exactly one stimulus: intercept = stim1 + stim2
    design = _design([[1, 1, 0], [1, 0, 1], [1, 1, 0], [1, 0, 1]],
                     [100, 300, 500, 700], ['Intercept', 'stim1', 'stim2'])
    expanded = time_expand(design, 1000, 100.0, 0.0, 0.5)
    data = np.random.default_rng(2).normal(size=(2, 1000))

    fit = fit_glm(expanded, data, solver='lsmr')
    assert np.all(np.isfinite(fit.beta))


def test_collinear_design_lstsq_raises():
    design = _design([[1, 1, 0], [1, 0, 1], [1, 1, 0], [1, 0, 1]],
                     [100, 300, 500, 700], ['Intercept', 'stim1', 'stim2'])
    expanded = time_expand(design, 1000, 100.0, 0.0, 0.1)
    data = np.random.default_rng(2).normal(size=(2, 1000))

    with pytest.raises(FitError):
        fit_glm(expanded, data, solver='lstsq')


def test_lstsq_matches_lsmr_on_full_rank_design():
    design = _design([[1, 1], [1, 2], [1, 3], [1, 1]], [100, 160, 300, 420],
                     ['Intercept', 'stim1'])
    expanded = time_expand(design, 600, 100.0, 0.0, 0.3)
    data = np.random.default_rng(4).normal(size=(2, 600))

    dense = fit_glm(expanded, data, solver='lstsq')
    sparse = fit_glm(expanded, data, solver='lsmr', tol=1e-12)

    np.testing.assert_allclose(dense.beta, sparse.beta, atol=1e-6)


def test_everything_excluded_raises():
    design = _design([[1]], [500], ['Intercept'])
    expanded = exclude_artifacts(time_expand(design, 1000, 100.0, 0.0, 0.5), [(0, 1000)])

    with pytest.raises(FitError, match='artifact exclusion'):
        fit_glm(expanded, np.zeros((1, 1000)))


def test_no_modeled_events_raises():
    design = DesignMatrix(matrix=np.zeros((0, 2)), terms=['Intercept', 'stim1'],
                          latencies=np.zeros(0, dtype=int), event_types=[],
                          formulas=('y ~ 1 + stim1',))
    expanded = time_expand(design, 1000, 100.0, 0.0, 0.5)

    with pytest.raises(FitError, match='No modeled events'):
        fit_glm(expanded, np.zeros((1, 1000)))


def test_sample_count_mismatch_raises():
    expanded = time_expand(_design([[1]], [50], ['Intercept']), 200, 100.0, 0.0, 0.1)
    with pytest.raises(FitError):
        fit_glm(expanded, np.zeros((1, 150)))


def test_excluded_samples_do_not_influence_fit():
    sfreq, n_samples = 100.0, 2000
    design = _design([[1], [1]], [300, 1300], ['Intercept'])
    expanded = time_expand(design, n_samples, sfreq, 0.0, 0.5)

    data = np.zeros((1, n_samples))
    data[0, 300:351] = 2.0
    data[0, 1300:1351] = 500.0

    masked = exclude_artifacts(expanded, [(1200, 1400)])
    fit = fit_glm(masked, data)

    np.testing.assert_allclose(fit.beta[:, 0], 2.0, atol=1e-6)
