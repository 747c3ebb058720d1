"""
Central configuration constants for zipsim.

Single source of truth for the default basis budgets, noise-level names,
random-seed conventions and numeric tolerances used across the package.
"""

__all__ = [
    # Covariates
    "COVARIATE_NAMES",
    "N_COVARIATES",
    # Basis budgets
    "DEFAULT_RATE_BASIS",
    "DEFAULT_PRESENCE_BASIS",
    "DEFAULT_SPLINE_DEGREE",
    "DEFAULT_PENALTY_ORDER",
    # Smoothing parameter search
    "LAMBDA_MIN",
    "LAMBDA_MAX",
    "DEFAULT_INITIAL_LAMBDA",
    # Data generation
    "DEFAULT_ZERO_INFLATION",
    "DEFAULT_PRESENCE_SCALE",
    "DEFAULT_RATE_SCALE",
    # Simulation
    "NOISE_LEVELS",
    "DEFAULT_BASE_SEED",
    "RESPONSE_SEED_OFFSET",
    "DEFAULT_MAX_CYCLES",
    "VALID_BACKENDS",
    # Comparison
    "SIGNIFICANCE_LEVEL",
    "MIN_PAIRED_REPLICATES",
    # Numerical stability
    "ETA_BOUND",
    "MIN_WORKING_WEIGHT",
    "CORRELATION_EIGEN_TOL",
]

# =============================================================================
# Covariates
# =============================================================================
COVARIATE_NAMES = ("x1", "x2", "x3", "x4")
N_COVARIATES = len(COVARIATE_NAMES)

# =============================================================================
# Basis budgets (number of B-spline basis functions per smooth)
# =============================================================================
# x3 is left out of the presence sub-model on purpose: it never enters
# the true presence predictor.
DEFAULT_RATE_BASIS = {"x1": 10, "x2": 10, "x3": 15, "x4": 8}
DEFAULT_PRESENCE_BASIS = {"x1": 10, "x2": 10, "x4": 8}
DEFAULT_SPLINE_DEGREE = 3
DEFAULT_PENALTY_ORDER = 2

# =============================================================================
# Smoothing parameter search
# =============================================================================
LAMBDA_MIN = 1e-6
LAMBDA_MAX = 1e10
DEFAULT_INITIAL_LAMBDA = 1.0

# =============================================================================
# Data generation
# =============================================================================
DEFAULT_ZERO_INFLATION = -1.0
DEFAULT_PRESENCE_SCALE = 1.0
DEFAULT_RATE_SCALE = 0.5

# =============================================================================
# Simulation
# =============================================================================
NOISE_LEVELS = ("low", "medium", "high")
DEFAULT_BASE_SEED = 42
RESPONSE_SEED_OFFSET = 100_003
DEFAULT_MAX_CYCLES = 30
VALID_BACKENDS = ("loky", "threading", "multiprocessing")

# =============================================================================
# Comparison
# =============================================================================
SIGNIFICANCE_LEVEL = 0.05
MIN_PAIRED_REPLICATES = 2

# =============================================================================
# Numerical stability
# =============================================================================
# Linear predictors are clipped to +/- ETA_BOUND before exponentiation.
ETA_BOUND = 30.0
MIN_WORKING_WEIGHT = 1e-10
CORRELATION_EIGEN_TOL = 1e-8
