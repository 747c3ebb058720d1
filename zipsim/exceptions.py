"""
Exceptions raised by zipsim.

Configuration errors are fatal and stop a run before any model is fitted.
Fitting errors are raised by the estimators and are always caught one
replicate at a time by :func:`zipsim.fitting.fit_and_score`.
"""

__all__ = [
    "ZipSimError",
    "ConfigurationError",
    "FittingError",
]


class ZipSimError(Exception):
    """Base exception for all zipsim errors."""
    pass


class ConfigurationError(ZipSimError, ValueError):
    """
    Invalid simulation or data-generation settings.

    Common causes:
    - Sample size or replicate count below 1
    - Pairwise correlation that makes the correlation matrix singular
      or indefinite
    - Noise schedule without exactly three levels
    """
    pass


class FittingError(ZipSimError, RuntimeError):
    """
    A smooth ZIP model could not be fitted.

    Common causes:
    - Non-finite coefficients after optimization
    - Response with no positive counts
    - Penalized Hessian that is not positive definite
    """
    pass
