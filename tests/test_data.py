"""
Tests for the function library, covariate generator and data generator.
"""
import numpy as np
import pandas as pd
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from zipsim import (
    FUNCTIONS,
    ConfigurationError,
    bump,
    exponential,
    generate_covariates,
    generate_zip_data,
    sinusoidal,
    true_linear_predictors,
    validate_correlation,
)
from zipsim.utils import max_offdiagonal_correlation


class TestFunctions:
    """Tests for the true curve shapes."""

    @pytest.fixture
    def grid(self):
        return np.linspace(0, 1, 1001)

    def test_sinusoidal_range(self, grid):
        values = sinusoidal(grid, scale=0.5)
        assert values.min() >= -1e-12
        assert np.isclose(values.max(), 1.0)
        assert np.isclose(sinusoidal(0.5, scale=1.0), 2.0)

    def test_exponential_range(self, grid):
        values = exponential(grid, scale=1.0)
        assert np.isclose(values.min(), 0.25)
        assert np.isclose(values.max(), np.exp(2) / 4)

    def test_bump_peak(self, grid):
        values = bump(grid, scale=1.0)
        assert values.min() >= 0
        assert 1.5 < values.max() < 2.0
        # Peak sits on the left side of the interval
        assert grid[np.argmax(values)] < 0.4

    def test_scale_is_linear(self, grid):
        for f in (sinusoidal, exponential, bump):
            np.testing.assert_allclose(f(grid, scale=2.0), 2.0 * f(grid, scale=1.0))


class TestCovariates:
    """Tests for generate_covariates and correlation validation."""

    def test_shape_and_range(self):
        X = generate_covariates(200, random_state=0)
        assert list(X.columns) == ['x1', 'x2', 'x3', 'x4']
        assert X.shape == (200, 4)
        assert X.values.min() >= 0
        assert X.values.max() <= 1

    def test_independent_correlation_near_zero(self):
        X = generate_covariates(5000, random_state=1)
        assert max_offdiagonal_correlation(X) < 0.06

    def test_copula_correlation_near_target(self):
        X = generate_covariates(5000, independent=False, correlation=0.9, random_state=2)
        corr = X.corr().values
        offdiag = corr[~np.eye(4, dtype=bool)]
        assert X.values.min() >= 0
        assert X.values.max() <= 1
        assert np.all(offdiag > 0.85)

    def test_reproducible(self):
        a = generate_covariates(50, independent=False, correlation=0.5, random_state=7)
        b = generate_covariates(50, independent=False, correlation=0.5, random_state=7)
        pd.testing.assert_frame_equal(a, b)

    @pytest.mark.parametrize('correlation', [1.0, -0.5, 1.5, np.nan, 'high'])
    def test_invalid_correlation_raises(self, correlation):
        with pytest.raises(ConfigurationError):
            validate_correlation(correlation)
        with pytest.raises(ConfigurationError):
            generate_covariates(10, independent=False, correlation=correlation)

    def test_valid_negative_correlation(self):
        corr = validate_correlation(-0.3)
        assert corr.shape == (4, 4)

    def test_zero_samples_raises(self):
        with pytest.raises(ConfigurationError):
            generate_covariates(0)

    def test_missing_correlation_raises(self):
        with pytest.raises(ConfigurationError):
            generate_covariates(10, independent=False)


class TestZIPData:
    """Tests for the ZIP data generator."""

    @pytest.fixture
    def covariates(self):
        return generate_covariates(500, random_state=3)

    def test_same_seed_same_data(self, covariates):
        a = generate_zip_data(covariates, random_state=11)
        b = generate_zip_data(covariates, random_state=11)
        np.testing.assert_array_equal(a.y, b.y)
        np.testing.assert_array_equal(a.present, b.present)
        np.testing.assert_array_equal(a.eta_rate, b.eta_rate)

    def test_response_is_nonnegative_integer(self, covariates):
        data = generate_zip_data(covariates, random_state=12)
        assert np.issubdtype(data.y.dtype, np.integer)
        assert data.y.min() >= 0
        assert data.n_samples == 500

    def test_absent_rows_are_zero(self, covariates):
        data = generate_zip_data(covariates, random_state=13)
        assert np.all(data.y[data.present == 0] == 0)
        assert 0 < data.zero_fraction < 1

    def test_presence_probability_matches_predictor(self, covariates):
        data = generate_zip_data(covariates, random_state=14)
        expected = 1 - np.exp(-np.exp(data.eta_presence))
        np.testing.assert_allclose(data.presence_probability, expected)

    def test_x4_does_not_enter_truth(self, covariates):
        shuffled = covariates.assign(x4=covariates['x4'].values[::-1])
        eta_p, eta_r = true_linear_predictors(covariates)
        eta_p2, eta_r2 = true_linear_predictors(shuffled)
        np.testing.assert_array_equal(eta_p, eta_p2)
        np.testing.assert_array_equal(eta_r, eta_r2)

    def test_x3_only_enters_rate(self, covariates):
        shuffled = covariates.assign(x3=covariates['x3'].values[::-1])
        eta_p, eta_r = true_linear_predictors(covariates)
        eta_p2, eta_r2 = true_linear_predictors(shuffled)
        np.testing.assert_array_equal(eta_p, eta_p2)
        assert not np.allclose(eta_r, eta_r2)

    def test_noise_multiplier_scales_signal(self, covariates):
        _, eta_r = true_linear_predictors(covariates, rate_noise=1.0)
        _, eta_r_half = true_linear_predictors(covariates, rate_noise=0.5)
        np.testing.assert_allclose(eta_r_half, 0.5 * eta_r)

    def test_more_negative_zero_inflation_gives_more_zeros(self, covariates):
        few = generate_zip_data(covariates, zero_inflation=0.0, random_state=15)
        many = generate_zip_data(covariates, zero_inflation=-3.0, random_state=15)
        assert many.zero_fraction > few.zero_fraction

    def test_to_frame(self, covariates):
        frame = generate_zip_data(covariates, random_state=16).to_frame()
        assert {'y', 'x1', 'x4', 'present', 'eta_rate', 'eta_presence'} <= set(frame.columns)
        assert len(frame) == 500

    def test_truth_uses_registered_shapes(self, covariates):
        eta_p, eta_r = true_linear_predictors(covariates, zero_inflation=0.0, rate_scale=1.0)
        x = {c: covariates[c].to_numpy() for c in ('x1', 'x2', 'x3')}
        np.testing.assert_allclose(
            eta_p, FUNCTIONS['exponential'](x['x1']) + FUNCTIONS['sinusoidal'](x['x2']))
        np.testing.assert_allclose(
            eta_r, FUNCTIONS['sinusoidal'](x['x1']) + FUNCTIONS['sinusoidal'](x['x2'])
            + FUNCTIONS['bump'](x['x3']))

    def test_counts_grow_with_rate_under_one_seed(self, covariates):
        weak = generate_zip_data(covariates, rate_noise=0.5, random_state=17)
        strong = generate_zip_data(covariates, rate_noise=1.0, random_state=17)
        np.testing.assert_array_equal(weak.present, strong.present)
        assert np.all(weak.y <= strong.y)
        assert strong.y.sum() > weak.y.sum()
