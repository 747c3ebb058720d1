"""
Tests for the paired comparison engine.
"""
import numpy as np
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from zipsim import FitResult, compare_scenario, comparison_table
from zipsim.comparison import paired_ttest, standardize


def make_fit(replicate, procedure, rate_error, presence_error, converged=True, failed=False):
    return FitResult(
        replicate=replicate,
        procedure=procedure,
        rate_error=None if failed else rate_error,
        presence_error=None if failed else presence_error,
        converged=False if failed else converged,
        log10_duration=-2.0 if failed else -1.0,
        failed=failed,
        error_message='boom' if failed else None,
    )


def make_fits(rate_errors, presence_errors, procedure, failed=(), unconverged=()):
    return [
        make_fit(r, procedure, rate, presence,
                 converged=r not in unconverged, failed=r in failed)
        for r, (rate, presence) in enumerate(zip(rate_errors, presence_errors))
    ]


class TestCompareScenario:
    """Tests for compare_scenario."""

    @pytest.fixture
    def errors(self):
        rng = np.random.RandomState(5)
        additive_rate = rng.uniform(0.05, 0.15, size=20)
        additive_presence = rng.uniform(0.2, 0.4, size=20)
        return additive_rate, additive_presence, rng

    def test_failed_replicates_are_excluded(self, errors):
        rate, presence, rng = errors
        additive = make_fits(rate, presence, 'additive-model', failed={0, 2})
        ls = make_fits(rate + rng.normal(0, 0.01, 20), presence, 'location-scale-model',
                       failed={1, 2})
        record = compare_scenario(additive, ls)
        assert record.n_pairs == 17
        assert len(record.rate_differences) == 17
        # Durations are recorded for every fit, failed ones included
        assert len(record.additive_log10_durations) == 20
        assert len(record.location_scale_log10_durations) == 20
        assert np.sum(record.additive_log10_durations == -2.0) == 2

    def test_differences_are_standardized(self, errors):
        rate, presence, rng = errors
        additive = make_fits(rate, presence, 'additive-model')
        ls = make_fits(rate + rng.normal(0.02, 0.01, 20), presence + rng.normal(0, 0.05, 20),
                       'location-scale-model')
        record = compare_scenario(additive, ls)
        for series in (record.rate_differences, record.presence_differences):
            assert np.isclose(np.mean(series), 0, atol=1e-12)
            assert np.isclose(np.std(series, ddof=1), 1)

    def test_rates_are_raw_means(self, errors):
        rate, presence, _ = errors
        additive = make_fits(rate, presence, 'additive-model', unconverged={3, 4}, failed={5})
        ls = make_fits(rate * 1.1, presence, 'location-scale-model', unconverged={6})
        record = compare_scenario(additive, ls)
        assert record.additive_convergence_rate == pytest.approx(17 / 20)
        assert record.additive_failure_rate == pytest.approx(1 / 20)
        assert record.location_scale_convergence_rate == pytest.approx(19 / 20)
        assert record.location_scale_failure_rate == 0.0

    def test_larger_location_scale_error_is_significant(self, errors):
        rate, presence, rng = errors
        additive = make_fits(rate, presence, 'additive-model')
        ls = make_fits(rate + 0.05 + rng.normal(0, 0.01, 20),
                       presence + rng.normal(0, 0.05, 20), 'location-scale-model')
        record = compare_scenario(additive, ls, scenario='presence-low/rate-low', setting='s1')
        assert record.rate_significant
        assert record.rate_p_value < 0.05
        assert record.rate_t > 0
        assert record.mean_rate_difference > 0
        assert record.scenario == 'presence-low/rate-low'
        assert record.setting == 's1'

    def test_smaller_location_scale_error_is_not_significant(self, errors):
        rate, presence, rng = errors
        additive = make_fits(rate, presence, 'additive-model')
        ls = make_fits(rate - 0.03 + rng.normal(0, 0.005, 20), presence,
                       'location-scale-model')
        record = compare_scenario(additive, ls)
        assert not record.rate_significant
        assert record.rate_p_value > 0.5

    def test_all_failed_gives_empty_record(self, errors):
        rate, presence, _ = errors
        additive = make_fits(rate, presence, 'additive-model', failed=set(range(20)))
        ls = make_fits(rate, presence, 'location-scale-model')
        record = compare_scenario(additive, ls)
        assert record.n_pairs == 0
        assert len(record.rate_differences) == 0
        assert len(record.presence_differences) == 0
        assert np.isnan(record.rate_p_value)
        assert np.isnan(record.presence_p_value)
        assert not record.rate_significant
        assert record.additive_failure_rate == 1.0

    def test_single_pair_gives_empty_record(self, errors):
        rate, presence, _ = errors
        additive = make_fits(rate[:2], presence[:2], 'additive-model', failed={0})
        ls = make_fits(rate[:2], presence[:2], 'location-scale-model')
        record = compare_scenario(additive, ls)
        assert record.n_pairs == 1
        assert len(record.rate_differences) == 0
        assert np.isnan(record.rate_p_value)

    def test_constant_differences(self, errors):
        rate, presence, _ = errors
        additive = make_fits(rate, presence, 'additive-model')
        ls = make_fits(rate + 0.1, presence + 0.1, 'location-scale-model')
        record = compare_scenario(additive, ls)
        np.testing.assert_allclose(record.rate_differences, 0, atol=1e-12)
        assert np.isnan(record.rate_p_value)
        assert not record.rate_significant


class TestHelpers:

    def test_standardize_zero_variance(self):
        np.testing.assert_array_equal(standardize([2.0, 2.0, 2.0]), np.zeros(3))
        assert len(standardize([])) == 0

    def test_paired_ttest_too_few(self):
        t, p = paired_ttest([1.0], [0.5])
        assert np.isnan(t) and np.isnan(p)

    def test_comparison_table(self):
        fits_a = make_fits([0.1, 0.2, 0.15], [0.3, 0.2, 0.25], 'additive-model')
        fits_b = make_fits([0.2, 0.25, 0.3], [0.3, 0.3, 0.2], 'location-scale-model')
        records = [
            compare_scenario(fits_a, fits_b, scenario='a', setting='s'),
            compare_scenario(fits_a, fits_b, scenario='b', setting='s'),
        ]
        table = comparison_table(records)
        assert list(table['scenario']) == ['a', 'b']
        assert {'n_pairs', 'rate_p_value', 'presence_p_value', 'additive_failed',
                'location_scale_converged'} <= set(table.columns)
        assert table['n_pairs'].tolist() == [3, 3]
