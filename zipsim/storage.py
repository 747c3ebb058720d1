"""
Snapshot persistence for simulation results.

All fits of all settings go to one parquet file. A JSON manifest next
to it records the configs, their SHA256 hash and a creation timestamp.
A snapshot is reused only when the hash matches the requested configs.

Usage
-----
>>> from zipsim.storage import load_or_run_simulation
>>> results = load_or_run_simulation({'independent': SimulationConfig()}, 'output')
"""

import hashlib
import json
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import pandas as pd

from .fitting import FitResult, Procedure
from .simulation import (
    ScenarioResult,
    SimulationConfig,
    SimulationResult,
    build_noise_scenarios,
    run_simulation,
)

RESULTS_FILENAME = "simulation_results.parquet"
MANIFEST_FILENAME = "simulation_manifest.json"


# ============================================================================
# CACHING
# ============================================================================
def _config_dict(config):
    return config.to_dict() if isinstance(config, SimulationConfig) else dict(config)


def compute_config_hash(configs: dict) -> str:
    """SHA256 hash of the settings' configs for cache invalidation."""
    payload = {name: _config_dict(config) for name, config in configs.items()}
    return hashlib.sha256(json.dumps(payload, sort_keys=True, default=str).encode()).hexdigest()


def load_manifest(path: Path) -> Optional[dict]:
    """Load manifest if it exists."""
    path = Path(path)
    if not path.exists():
        return None
    with open(path) as f:
        return json.load(f)


def save_manifest(path: Path, configs: dict, hash: str, stats: dict):
    """Save manifest with configs and stats."""
    manifest = {
        'hash': hash,
        'configs': {name: _config_dict(config) for name, config in configs.items()},
        'created_at': datetime.now().isoformat(),
        **stats,
    }
    with open(path, 'w') as f:
        json.dump(manifest, f, indent=2, default=str)


# ============================================================================
# SAVE / LOAD
# ============================================================================
def save_results(results: Dict[str, SimulationResult], output_dir) -> Path:
    """
    Write all settings' fits to one parquet file plus a manifest.

    Parameters
    ----------
    results : dict of str -> SimulationResult
        Results keyed by setting name.
    output_dir : str or Path
        Directory for ``simulation_results.parquet`` and
        ``simulation_manifest.json``. Created if missing.

    Returns
    -------
    Path
        Path of the parquet file.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    frames = [result.to_frame().assign(setting=name) for name, result in results.items()]
    df = pd.concat(frames, ignore_index=True) if frames else pd.DataFrame()

    output_path = output_dir / RESULTS_FILENAME
    df.to_parquet(output_path, index=False)

    configs = {name: result.config for name, result in results.items()}
    save_manifest(
        output_dir / MANIFEST_FILENAME,
        configs,
        compute_config_hash(configs),
        {
            'n_rows': len(df),
            'duration_seconds': {name: r.duration_seconds for name, r in results.items()},
        },
    )
    return output_path


def _optional_float(value):
    return None if value is None or pd.isna(value) else float(value)


def _fit_from_row(row) -> FitResult:
    message = row['error_message']
    return FitResult(
        replicate=int(row['replicate']),
        procedure=row['procedure'],
        rate_error=_optional_float(row['rate_error']),
        presence_error=_optional_float(row['presence_error']),
        converged=bool(row['converged']),
        log10_duration=float(row['log10_duration']),
        failed=bool(row['failed']),
        error_message=None if message is None or pd.isna(message) else str(message),
    )


def load_results(output_dir) -> Dict[str, SimulationResult]:
    """
    Rebuild SimulationResults from a saved snapshot.

    Raises
    ------
    FileNotFoundError
        If the parquet file or manifest is missing.
    """
    output_dir = Path(output_dir)
    output_path = output_dir / RESULTS_FILENAME
    manifest = load_manifest(output_dir / MANIFEST_FILENAME)
    if manifest is None or not output_path.exists():
        raise FileNotFoundError(f"No simulation snapshot found in {output_dir}")

    df = pd.read_parquet(output_path)
    durations = manifest.get('duration_seconds', {})

    results = {}
    for name, config_dict in manifest['configs'].items():
        config = SimulationConfig.from_dict(config_dict)
        setting_df = df[df['setting'] == name]

        scenario_results = []
        for scenario in build_noise_scenarios(
                config.presence_noise, config.rate_noise, cross=config.cross_noise_levels):
            scenario_df = setting_df[
                (setting_df['presence_level'] == scenario.presence_level)
                & (setting_df['rate_level'] == scenario.rate_level)
            ]
            fits = {}
            for procedure in Procedure:
                rows = scenario_df[scenario_df['procedure'] == procedure.value]
                fits[procedure.value] = [
                    _fit_from_row(row) for _, row in rows.sort_values('replicate').iterrows()
                ]
            scenario_results.append(ScenarioResult(scenario=scenario, fits=fits))

        results[name] = SimulationResult(
            config=config,
            scenarios=scenario_results,
            duration_seconds=float(durations.get(name, np.nan)),
        )
    return results


def load_or_run_simulation(settings, output_dir, force=False, parallel=True, verbose=True):
    """
    Load a cached snapshot or run every setting and save a new one.

    Parameters
    ----------
    settings : dict of str -> SimulationConfig or dict
        Study settings keyed by name.
    output_dir : str or Path
        Snapshot directory.
    force : bool, default=False
        Ignore any existing snapshot.
    parallel : bool, default=True
        Passed to :func:`zipsim.simulation.run_simulation`.
    verbose : bool, default=True
        Print cache and progress messages.

    Returns
    -------
    dict of str -> SimulationResult
    """
    output_dir = Path(output_dir)
    configs = {
        name: config if isinstance(config, SimulationConfig) else SimulationConfig.from_dict(config)
        for name, config in settings.items()
    }
    config_hash = compute_config_hash(configs)

    # Check cache
    if not force and (output_dir / RESULTS_FILENAME).exists():
        manifest = load_manifest(output_dir / MANIFEST_FILENAME)
        if manifest and manifest.get('hash') == config_hash:
            if verbose:
                print(f"Loading cached results from {output_dir / RESULTS_FILENAME}")
            return load_results(output_dir)
        elif verbose:
            print("Config changed, rerunning simulation...")

    results = {}
    for name, config in configs.items():
        if verbose:
            print(f"\nSetting: {name}")
        results[name] = run_simulation(config, parallel=parallel)

    output_path = save_results(results, output_dir)
    if verbose:
        print(f"Saved to {output_path}")
    return results
