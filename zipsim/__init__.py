"""
zipsim
======

Simulation study comparing two smooth zero-inflated Poisson (ZIP)
regression procedures on synthetic data with known truth.

Main Classes
------------
ZIPAdditiveModel : Both linear predictors fitted jointly, Fellner-Schall smoothing
ZIPLocationScaleModel : GAMLSS-style RS backfitting with local ML smoothing
SimulationConfig : Settings for one simulation run

Quick Start
-----------
>>> import zipsim
>>> from zipsim import SimulationConfig, run_simulation, compare_results
>>>
>>> # Three paired noise scenarios, 20 replicates each
>>> config = SimulationConfig(n_replicates=20, n_samples=100)
>>> result = run_simulation(config)
>>> table = zipsim.comparison_table(compare_results(result, setting='independent'))
>>> print(table[['scenario', 'rate_p_value', 'presence_p_value']])
"""

from .calibration import (
    PRESENCE_NOISE_SCHEDULE,
    RATE_NOISE_SCHEDULE,
    approximate_r2,
    calibrate_noise,
    calibrate_schedule,
    find_multiplier,
)
from .comparison import (
    ComparisonRecord,
    compare_results,
    compare_scenario,
    comparison_table,
)
from .data import ZIPDataset, generate_zip_data, true_linear_predictors
from .exceptions import ConfigurationError, FittingError, ZipSimError
from .fitting import PROCEDURES, FitResult, Procedure, fit_and_score, get_procedure
from .functions import FUNCTIONS, bump, exponential, sinusoidal
from .simulation import (
    NoiseScenario,
    ScenarioResult,
    SimulationConfig,
    SimulationResult,
    build_noise_scenarios,
    run_simulation,
)
from .smoothing import ZIPAdditiveModel, ZIPLocationScaleModel
from .storage import load_or_run_simulation, load_results, save_results
from .utils import covariate_correlation, generate_covariates, validate_correlation

__version__ = "0.1.0"

__all__ = [
    # Estimators
    'ZIPAdditiveModel',
    'ZIPLocationScaleModel',

    # Data
    'sinusoidal',
    'exponential',
    'bump',
    'FUNCTIONS',
    'generate_covariates',
    'validate_correlation',
    'covariate_correlation',
    'ZIPDataset',
    'generate_zip_data',
    'true_linear_predictors',

    # Calibration
    'PRESENCE_NOISE_SCHEDULE',
    'RATE_NOISE_SCHEDULE',
    'approximate_r2',
    'calibrate_noise',
    'find_multiplier',
    'calibrate_schedule',

    # Fitting
    'Procedure',
    'PROCEDURES',
    'get_procedure',
    'FitResult',
    'fit_and_score',

    # Simulation
    'SimulationConfig',
    'NoiseScenario',
    'ScenarioResult',
    'SimulationResult',
    'build_noise_scenarios',
    'run_simulation',

    # Comparison
    'ComparisonRecord',
    'compare_scenario',
    'compare_results',
    'comparison_table',

    # Storage
    'save_results',
    'load_results',
    'load_or_run_simulation',

    # Exceptions
    'ZipSimError',
    'ConfigurationError',
    'FittingError',
]
