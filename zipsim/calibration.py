"""
Noise calibration: map a noise multiplier to an approximate R².

A reference dataset is generated at multiplier 1 and comparison datasets
at candidate multipliers, all on the same covariates and seed. The
approximate R² treats the reference predictor as signal and the
multiplier-induced shift as error:

    R² = SSR / (SSR + SSE)
    SSR = Σ(comparison - mean(reference))²
    SSE = Σ(reference - comparison)²

This is a signal-to-noise proxy, not a model R². It is a one-off
preprocessing step; the resulting constants are stored below and used as
configuration by the simulation driver.
"""

import numpy as np
import pandas as pd
from scipy.optimize import brentq

from .constants import (
    DEFAULT_PRESENCE_SCALE,
    DEFAULT_RATE_SCALE,
    DEFAULT_ZERO_INFLATION,
)
from .data import generate_zip_data
from .utils import generate_covariates

# Multipliers for the (low, medium, high) noise levels, calibrated to
# approximate R² of 0.8, 0.63 and 0.5 with calibrate_noise(n_samples=10000).
PRESENCE_NOISE_SCHEDULE = (0.84, 0.73, 0.5)
RATE_NOISE_SCHEDULE = (0.85, 0.75, 0.5)

TARGET_R2 = (0.8, 0.63, 0.5)

_PREDICTORS = ('rate', 'presence')


def approximate_r2(reference, comparison):
    """
    Approximate R² between a reference and a comparison predictor.

    Parameters
    ----------
    reference : array-like
        True linear predictor at multiplier 1.
    comparison : array-like
        True linear predictor at a candidate multiplier.

    Returns
    -------
    float
        SSR / (SSR + SSE). Exactly 1 when the inputs are equal.
    """
    reference = np.asarray(reference, dtype=float)
    comparison = np.asarray(comparison, dtype=float)
    if reference.shape != comparison.shape:
        raise ValueError(
            f"reference and comparison differ in shape: "
            f"{reference.shape} vs {comparison.shape}"
        )
    ssr = np.sum((comparison - np.mean(reference)) ** 2)
    sse = np.sum((reference - comparison) ** 2)
    total = ssr + sse
    if total == 0:
        return np.nan
    return float(ssr / total)


def _predictor(dataset, predictor):
    if predictor not in _PREDICTORS:
        raise ValueError(f"Unknown predictor '{predictor}'. Use {list(_PREDICTORS)}.")
    return dataset.eta_rate if predictor == 'rate' else dataset.eta_presence


def _dataset_at(covariates, multiplier, predictor, seed, **data_params):
    presence_noise = multiplier if predictor == 'presence' else 1.0
    rate_noise = multiplier if predictor == 'rate' else 1.0
    return generate_zip_data(
        covariates,
        presence_noise=presence_noise,
        rate_noise=rate_noise,
        random_state=seed,
        **data_params,
    )


def calibrate_noise(
    multipliers,
    predictor='rate',
    n_samples=10000,
    zero_inflation=DEFAULT_ZERO_INFLATION,
    presence_scale=DEFAULT_PRESENCE_SCALE,
    rate_scale=DEFAULT_RATE_SCALE,
    random_state=42,
):
    """
    Tabulate approximate R² over candidate noise multipliers.

    Parameters
    ----------
    multipliers : array-like of float
        Candidate multipliers.
    predictor : {'rate', 'presence'}, default='rate'
        Which linear predictor the multiplier is applied to.
    n_samples : int, default=10000
        Size of the calibration dataset.
    zero_inflation, presence_scale, rate_scale : float
        Data-generation constants (see :func:`zipsim.data.generate_zip_data`).
    random_state : int, default=42
        Seed shared by the covariates and every generated dataset.

    Returns
    -------
    pd.DataFrame
        Columns ``multiplier`` and ``r2``.

    Examples
    --------
    >>> table = calibrate_noise([0.5, 0.75, 1.0], predictor='rate')
    >>> table.loc[table['multiplier'] == 1.0, 'r2'].item()
    1.0
    """
    covariates = generate_covariates(n_samples, random_state=random_state)
    data_params = dict(
        zero_inflation=zero_inflation,
        presence_scale=presence_scale,
        rate_scale=rate_scale,
    )
    reference = _predictor(
        _dataset_at(covariates, 1.0, predictor, random_state, **data_params),
        predictor,
    )

    rows = []
    for multiplier in multipliers:
        comparison = _predictor(
            _dataset_at(covariates, multiplier, predictor, random_state, **data_params),
            predictor,
        )
        rows.append({
            'multiplier': float(multiplier),
            'r2': approximate_r2(reference, comparison),
        })
    return pd.DataFrame(rows, columns=['multiplier', 'r2'])


def find_multiplier(target_r2, predictor='rate', bracket=(0.5, 1.0), xtol=1e-4,
                    **calibration_params):
    """
    Find the multiplier whose approximate R² equals a target.

    Approximate R² increases with the multiplier on [0.5, 1], where it
    runs from 0.5 to 1, so targets in that range have a unique root.

    Parameters
    ----------
    target_r2 : float
        Target approximate R².
    predictor : {'rate', 'presence'}, default='rate'
        Which predictor to calibrate.
    bracket : tuple of float, default=(0.5, 1.0)
        Search interval for the multiplier.
    xtol : float, default=1e-4
        Root-finding tolerance.
    **calibration_params
        Passed to :func:`calibrate_noise` (n_samples, scales, seed).

    Returns
    -------
    float
        Calibrated multiplier.
    """
    def objective(multiplier):
        table = calibrate_noise([multiplier], predictor=predictor, **calibration_params)
        return table['r2'].iloc[0] - target_r2

    # R² is exactly 0.5 at multiplier 0.5, so the lower end is often a root
    for end in bracket:
        if abs(objective(end)) < 1e-10:
            return float(end)

    return float(brentq(objective, bracket[0], bracket[1], xtol=xtol))


def calibrate_schedule(targets=TARGET_R2, predictor='rate', **calibration_params):
    """Calibrated multipliers for each target R², in the order given."""
    return tuple(
        find_multiplier(target, predictor=predictor, **calibration_params)
        for target in targets
    )
