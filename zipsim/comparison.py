"""
Paired comparison of the two procedures within each scenario.

Replicates where either procedure failed are dropped. For the remaining
pairs the error differences (location-scale minus additive) are
standardized and tested with a one-sided paired t-test: a significant
result means the additive procedure recovers that predictor better.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
import pingouin as pg

from .constants import MIN_PAIRED_REPLICATES, SIGNIFICANCE_LEVEL
from .fitting import Procedure

_PREDICTORS = ('rate', 'presence')


@dataclass(frozen=True)
class ComparisonRecord:
    """Paired comparison summary for one scenario."""
    setting: Optional[str]
    scenario: Optional[str]
    n_pairs: int
    rate_differences: np.ndarray
    presence_differences: np.ndarray
    mean_rate_difference: float
    mean_presence_difference: float
    rate_t: float
    rate_p_value: float
    presence_t: float
    presence_p_value: float
    rate_significant: bool
    presence_significant: bool
    additive_convergence_rate: float
    location_scale_convergence_rate: float
    additive_failure_rate: float
    location_scale_failure_rate: float
    additive_log10_durations: np.ndarray
    location_scale_log10_durations: np.ndarray


def _constant(values):
    # Differences that agree up to rounding carry no spread
    return len(values) < 2 or np.allclose(values, values[0], rtol=1e-10, atol=0)


def standardize(values):
    """
    Standardize with the sample mean and sample standard deviation.

    Zero-variance input maps to all zeros and empty input stays empty.
    """
    values = np.asarray(values, dtype=float)
    if len(values) == 0:
        return values
    if _constant(values):
        return np.zeros_like(values)
    return (values - np.mean(values)) / np.std(values, ddof=1)


def paired_ttest(location_scale_errors, additive_errors):
    """
    One-sided paired t-test that location-scale errors exceed additive ones.

    Returns
    -------
    t : float
        T statistic (NaN when undefined).
    p_value : float
        p-value for H1: mean(location-scale - additive) > 0 (NaN when
        there are fewer than 2 pairs or the differences have no spread).
    """
    x = np.asarray(location_scale_errors, dtype=float)
    y = np.asarray(additive_errors, dtype=float)
    if len(x) < MIN_PAIRED_REPLICATES or _constant(x - y):
        return np.nan, np.nan

    stats = pg.ttest(x, y, paired=True, alternative='greater')

    # Handle different pingouin versions - column may be 'p-val' or 'p_val'
    p_col = 'p-val' if 'p-val' in stats.columns else 'p_val'
    return float(stats['T'].iloc[0]), float(stats[p_col].iloc[0])


def _by_replicate(fits):
    return {fit.replicate: fit for fit in fits}


def compare_scenario(additive_fits, location_scale_fits, scenario=None, setting=None,
                     alpha=SIGNIFICANCE_LEVEL):
    """
    Compare both procedures over the replicates of one scenario.

    Parameters
    ----------
    additive_fits, location_scale_fits : list of FitResult
        Fits of each procedure. Aligned by replicate index.
    scenario : str or None
        Scenario label stored on the record.
    setting : str or None
        Setting name stored on the record.
    alpha : float, default=0.05
        Significance level.

    Returns
    -------
    ComparisonRecord
        Convergence rates, failure rates and durations cover every
        replicate. Differences and tests use only replicates where
        neither procedure failed.
    """
    additive = _by_replicate(additive_fits)
    location_scale = _by_replicate(location_scale_fits)
    paired = sorted(
        r for r in additive.keys() & location_scale.keys()
        if not additive[r].failed and not location_scale[r].failed
    )

    raw = {}
    tests = {}
    for predictor in _PREDICTORS:
        attr = f'{predictor}_error'
        ls_errors = np.array([getattr(location_scale[r], attr) for r in paired], dtype=float)
        add_errors = np.array([getattr(additive[r], attr) for r in paired], dtype=float)
        raw[predictor] = ls_errors - add_errors
        tests[predictor] = paired_ttest(ls_errors, add_errors)

    if len(paired) < MIN_PAIRED_REPLICATES:
        raw = {predictor: np.array([], dtype=float) for predictor in _PREDICTORS}

    def rate(fits, attr):
        return float(np.mean([getattr(fit, attr) for fit in fits])) if fits else np.nan

    def mean_or_nan(values):
        return float(np.mean(values)) if len(values) else np.nan

    def significant(p_value):
        return bool(np.isfinite(p_value) and p_value < alpha)

    return ComparisonRecord(
        setting=setting,
        scenario=scenario,
        n_pairs=len(paired),
        rate_differences=standardize(raw['rate']),
        presence_differences=standardize(raw['presence']),
        mean_rate_difference=mean_or_nan(raw['rate']),
        mean_presence_difference=mean_or_nan(raw['presence']),
        rate_t=tests['rate'][0],
        rate_p_value=tests['rate'][1],
        presence_t=tests['presence'][0],
        presence_p_value=tests['presence'][1],
        rate_significant=significant(tests['rate'][1]),
        presence_significant=significant(tests['presence'][1]),
        additive_convergence_rate=rate(additive_fits, 'converged'),
        location_scale_convergence_rate=rate(location_scale_fits, 'converged'),
        additive_failure_rate=rate(additive_fits, 'failed'),
        location_scale_failure_rate=rate(location_scale_fits, 'failed'),
        additive_log10_durations=np.array(
            [fit.log10_duration for fit in additive_fits], dtype=float),
        location_scale_log10_durations=np.array(
            [fit.log10_duration for fit in location_scale_fits], dtype=float),
    )


def compare_results(result, setting=None, alpha=SIGNIFICANCE_LEVEL):
    """One ComparisonRecord per scenario of a SimulationResult."""
    return [
        compare_scenario(
            scenario_result.fits[Procedure.ADDITIVE.value],
            scenario_result.fits[Procedure.LOCATION_SCALE.value],
            scenario=scenario_result.scenario.label,
            setting=setting,
            alpha=alpha,
        )
        for scenario_result in result.scenarios
    ]


def comparison_table(records):
    """
    Scenario-level summary table.

    Parameters
    ----------
    records : list of ComparisonRecord

    Returns
    -------
    pd.DataFrame
        One row per record with pair counts, mean raw differences,
        p-values, significance flags and convergence/failure rates.
    """
    rows = [{
        'setting': rec.setting,
        'scenario': rec.scenario,
        'n_pairs': rec.n_pairs,
        'mean_rate_diff': rec.mean_rate_difference,
        'rate_p_value': rec.rate_p_value,
        'rate_significant': rec.rate_significant,
        'mean_presence_diff': rec.mean_presence_difference,
        'presence_p_value': rec.presence_p_value,
        'presence_significant': rec.presence_significant,
        'additive_converged': rec.additive_convergence_rate,
        'location_scale_converged': rec.location_scale_convergence_rate,
        'additive_failed': rec.additive_failure_rate,
        'location_scale_failed': rec.location_scale_failure_rate,
        'additive_log10_time': float(np.median(rec.additive_log10_durations))
        if len(rec.additive_log10_durations) else np.nan,
        'location_scale_log10_time': float(np.median(rec.location_scale_log10_durations))
        if len(rec.location_scale_log10_durations) else np.nan,
    } for rec in records]
    return pd.DataFrame(rows)
