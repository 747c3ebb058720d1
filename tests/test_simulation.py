"""
Tests for the simulation driver.
"""
import numpy as np
import pandas as pd
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from zipsim import (
    PRESENCE_NOISE_SCHEDULE,
    RATE_NOISE_SCHEDULE,
    ConfigurationError,
    Procedure,
    SimulationConfig,
    build_noise_scenarios,
    compare_results,
    comparison_table,
    run_simulation,
)
from zipsim.simulation import (
    generate_replicate_covariates,
    generate_replicate_dataset,
    procedure_params,
)


class TestNoiseScenarios:

    def test_paired_gives_three(self):
        scenarios = build_noise_scenarios(cross=False)
        assert len(scenarios) == 3
        assert [s.presence_level for s in scenarios] == ['low', 'medium', 'high']
        assert [s.rate_level for s in scenarios] == ['low', 'medium', 'high']
        assert scenarios[0].presence_noise == PRESENCE_NOISE_SCHEDULE[0]
        assert scenarios[2].rate_noise == RATE_NOISE_SCHEDULE[2]

    def test_crossed_gives_nine(self):
        scenarios = build_noise_scenarios(cross=True)
        assert len(scenarios) == 9
        assert len({s.label for s in scenarios}) == 9
        assert scenarios[1].label == 'presence-low/rate-medium'


class TestSimulationConfig:

    def test_defaults(self):
        config = SimulationConfig()
        assert config.n_replicates == 50
        assert config.n_samples == 100
        assert config.independent
        assert config.max_cycles == 30
        assert config.rate_basis == {'x1': 10, 'x2': 10, 'x3': 15, 'x4': 8}
        assert config.presence_basis == {'x1': 10, 'x2': 10, 'x4': 8}

    @pytest.mark.parametrize('overrides', [
        {'n_samples': 0},
        {'n_replicates': 0},
        {'correlation': 1.0},
        {'correlation': -0.4},
        {'presence_noise': (0.9, 0.8)},
        {'rate_noise': (0.9, 0.8, -0.1)},
        {'backend': 'dask'},
        {'max_cycles': 0},
    ])
    def test_invalid_values_raise(self, overrides):
        with pytest.raises(ConfigurationError):
            SimulationConfig(**overrides)

    def test_dict_roundtrip(self):
        config = SimulationConfig(n_replicates=4, correlation=0.9, rate_scale=1.0)
        restored = SimulationConfig.from_dict(config.to_dict())
        assert restored == config
        assert isinstance(restored.presence_noise, tuple)

    def test_procedure_params(self):
        config = SimulationConfig(max_cycles=12)
        assert procedure_params(config, Procedure.LOCATION_SCALE)['n_cycles'] == 12
        assert 'n_cycles' not in procedure_params(config, Procedure.ADDITIVE)


class TestReplicateData:

    @pytest.fixture
    def config(self):
        return SimulationConfig(n_replicates=3, n_samples=60, correlation=0.9)

    def test_covariates_are_reproducible(self, config):
        first = generate_replicate_covariates(config)
        second = generate_replicate_covariates(config)
        assert len(first) == 3
        for a, b in zip(first, second):
            pd.testing.assert_frame_equal(a, b)
        assert not np.allclose(first[0].values, first[1].values)

    def test_scenarios_share_covariates_and_draws(self, config):
        covariates = generate_replicate_covariates(config)
        low, _, high = build_noise_scenarios()
        a = generate_replicate_dataset(config, covariates[1], 1, low)
        b = generate_replicate_dataset(config, covariates[1], 1, high)
        pd.testing.assert_frame_equal(a.covariates, b.covariates)
        assert not np.allclose(a.eta_rate, b.eta_rate)
        # Same response seed: identical data at identical noise
        c = generate_replicate_dataset(config, covariates[1], 1, low)
        np.testing.assert_array_equal(a.y, c.y)

    def test_draws_are_row_aligned_across_noise_levels(self):
        config = SimulationConfig(n_replicates=1, n_samples=400)
        covariates = generate_replicate_covariates(config)[0]
        low, _, high = build_noise_scenarios()
        strong = generate_replicate_dataset(config, covariates, 0, low)
        weak = generate_replicate_dataset(config, covariates, 0, high)

        # Larger multipliers raise both p and lambda on every row, so with
        # shared uniforms the weaker scenario is dominated row by row.
        assert strong.present.sum() > weak.present.sum()
        assert np.all(weak.present <= strong.present)
        both = weak.present == 1
        assert np.all(weak.y[both] <= strong.y[both])
        assert np.all(weak.y[weak.present == 0] == 0)


class TestRunSimulation:
    """End-to-end runs of the driver."""

    @pytest.fixture(scope='class')
    def result(self):
        config = SimulationConfig(n_replicates=3, n_samples=120, n_jobs=1)
        return run_simulation(config, parallel=False)

    def test_structure(self, result):
        assert len(result.scenarios) == 3
        for scenario_result in result.scenarios:
            for procedure in Procedure:
                fits = scenario_result.fits[procedure.value]
                assert [fit.replicate for fit in fits] == [0, 1, 2]
                assert all(fit.procedure == procedure.value for fit in fits)
            assert len(scenario_result.additive) == 3
            assert len(scenario_result.location_scale) == 3

    def test_to_frame(self, result):
        frame = result.to_frame()
        assert len(frame) == 3 * 2 * 3
        assert {'presence_level', 'rate_level', 'replicate', 'procedure',
                'rate_error', 'failed'} <= set(frame.columns)

    def test_comparison_records(self, result):
        records = compare_results(result, setting='independent')
        assert len(records) == 3
        table = comparison_table(records)
        assert (table['setting'] == 'independent').all()
        assert table['additive_failed'].between(0, 1).all()

    def test_threading_backend_matches_sequential(self, result):
        config = SimulationConfig(n_replicates=3, n_samples=120, n_jobs=2, backend='threading')
        parallel = run_simulation(config, parallel=True)
        for seq, par in zip(result.scenarios, parallel.scenarios):
            for procedure in Procedure:
                for a, b in zip(seq.fits[procedure.value], par.fits[procedure.value]):
                    assert a.failed == b.failed
                    if not a.failed:
                        assert np.isclose(a.rate_error, b.rate_error, rtol=1e-6)

    def test_crossed_run(self):
        config = SimulationConfig(n_replicates=2, n_samples=100, cross_noise_levels=True,
                                  n_jobs=1, max_cycles=5)
        result = run_simulation(config)
        assert len(result.scenarios) == 9

    @pytest.mark.slow
    def test_full_study_setting(self):
        config = SimulationConfig(n_replicates=50, n_samples=100)
        result = run_simulation(config)
        records = compare_results(result, setting='independent/low-counts')
        assert len(records) == 3
        for record in records:
            assert record.n_pairs > 0
            assert 0 <= record.additive_failure_rate <= 1
            assert 0 <= record.location_scale_convergence_rate <= 1
