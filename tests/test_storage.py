"""
Tests for snapshot persistence.
"""
import json

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import zipsim.storage as storage
from zipsim import (
    FitResult,
    Procedure,
    ScenarioResult,
    SimulationConfig,
    SimulationResult,
    build_noise_scenarios,
    load_or_run_simulation,
    load_results,
    save_results,
)


def fake_result(config):
    """SimulationResult with synthetic fits (one failure per scenario)."""
    scenarios = []
    for s, scenario in enumerate(build_noise_scenarios(
            config.presence_noise, config.rate_noise, cross=config.cross_noise_levels)):
        fits = {}
        for procedure in Procedure:
            fits[procedure.value] = [
                FitResult(
                    replicate=r,
                    procedure=procedure.value,
                    rate_error=None if r == 1 else 0.1 * (r + 1) + s,
                    presence_error=None if r == 1 else 0.2 * (r + 1) + s,
                    converged=r != 1,
                    log10_duration=-1.5 + 0.1 * r,
                    failed=r == 1,
                    error_message='LinAlgError: singular' if r == 1 else None,
                )
                for r in range(config.n_replicates)
            ]
        scenarios.append(ScenarioResult(scenario=scenario, fits=fits))
    return SimulationResult(config=config, scenarios=scenarios, duration_seconds=1.25)


class TestSnapshot:

    @pytest.fixture
    def settings(self):
        return {
            'independent/low-counts': SimulationConfig(n_replicates=3),
            'correlated/low-counts': SimulationConfig(n_replicates=3, correlation=0.9,
                                                      cross_noise_levels=True),
        }

    @pytest.fixture
    def results(self, settings):
        return {name: fake_result(config) for name, config in settings.items()}

    def test_save_writes_files(self, results, tmp_path):
        path = save_results(results, tmp_path)
        assert path.exists()
        manifest = json.loads((tmp_path / storage.MANIFEST_FILENAME).read_text())
        assert set(manifest['configs']) == set(results)
        assert manifest['hash'] == storage.compute_config_hash(
            {name: r.config for name, r in results.items()})
        assert 'created_at' in manifest
        assert manifest['n_rows'] == 3 * 2 * 3 + 9 * 2 * 3

    def test_roundtrip(self, results, tmp_path):
        save_results(results, tmp_path)
        loaded = load_results(tmp_path)
        assert set(loaded) == set(results)
        for name, result in results.items():
            restored = loaded[name]
            assert restored.config == result.config
            assert restored.duration_seconds == pytest.approx(1.25)
            assert len(restored.scenarios) == len(result.scenarios)
            for original, copy in zip(result.scenarios, restored.scenarios):
                assert copy.scenario == original.scenario
                assert copy.fits == original.fits

    def test_missing_snapshot_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_results(tmp_path)

    def test_cache_hit_skips_run(self, settings, results, tmp_path, monkeypatch):
        save_results(results, tmp_path)

        def fail(*args, **kwargs):
            raise AssertionError("simulation should not run on a cache hit")

        monkeypatch.setattr(storage, 'run_simulation', fail)
        loaded = load_or_run_simulation(settings, tmp_path, verbose=False)
        assert set(loaded) == set(settings)

    def test_changed_config_reruns(self, settings, results, tmp_path, monkeypatch):
        save_results(results, tmp_path)
        calls = []

        def fake_run(config, parallel=True):
            calls.append(config)
            return fake_result(config)

        monkeypatch.setattr(storage, 'run_simulation', fake_run)
        changed = {'independent/high-counts': SimulationConfig(n_replicates=3, rate_scale=1.0)}
        loaded = load_or_run_simulation(changed, tmp_path, verbose=False)
        assert len(calls) == 1
        assert set(loaded) == {'independent/high-counts'}
        assert set(load_results(tmp_path)) == {'independent/high-counts'}

    def test_force_reruns(self, settings, results, tmp_path, monkeypatch):
        save_results(results, tmp_path)
        calls = []

        def fake_run(config, parallel=True):
            calls.append(config)
            return fake_result(config)

        monkeypatch.setattr(storage, 'run_simulation', fake_run)
        load_or_run_simulation(settings, tmp_path, force=True, verbose=False)
        assert len(calls) == 2
