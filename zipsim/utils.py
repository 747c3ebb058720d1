"""
Utility functions for zipsim.

Provides:
- Covariate generation, independent or through a Gaussian copula
- Correlation matrix validation
- Empirical correlation diagnostics
"""

import numpy as np
import pandas as pd
from scipy.stats import norm
from sklearn.utils import check_random_state

from .constants import COVARIATE_NAMES, N_COVARIATES, CORRELATION_EIGEN_TOL
from .exceptions import ConfigurationError


def equicorrelation_matrix(correlation, n_variables=N_COVARIATES):
    """
    Build a correlation matrix with ones on the diagonal and a single
    pairwise correlation everywhere else.

    Parameters
    ----------
    correlation : float
        Off-diagonal correlation.
    n_variables : int, default=4
        Matrix dimension.

    Returns
    -------
    ndarray of shape (n_variables, n_variables)

    Examples
    --------
    >>> equicorrelation_matrix(0.5, 3)
    array([[1. , 0.5, 0.5],
           [0.5, 1. , 0.5],
           [0.5, 0.5, 1. ]])
    """
    corr = np.full((n_variables, n_variables), float(correlation))
    np.fill_diagonal(corr, 1.0)
    return corr


def validate_correlation(correlation, n_variables=N_COVARIATES):
    """
    Check that a pairwise correlation yields a positive definite matrix.

    For an equicorrelation matrix of dimension d the eigenvalues are
    1 + (d-1)·rho and 1 - rho, so valid values satisfy
    -1/(d-1) < rho < 1.

    Parameters
    ----------
    correlation : float
        Pairwise correlation to validate.
    n_variables : int, default=4
        Number of covariates sharing the correlation.

    Returns
    -------
    corr : ndarray
        The validated correlation matrix.

    Raises
    ------
    ConfigurationError
        If the correlation is not a finite number or the resulting
        matrix is not positive definite.
    """
    try:
        correlation = float(correlation)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"correlation must be a number, got {correlation!r}"
        )
    if not np.isfinite(correlation):
        raise ConfigurationError(f"correlation must be finite, got {correlation}")

    corr = equicorrelation_matrix(correlation, n_variables)
    min_eigenvalue = np.min(np.linalg.eigvalsh(corr))
    if min_eigenvalue <= CORRELATION_EIGEN_TOL:
        lower = -1.0 / (n_variables - 1)
        raise ConfigurationError(
            f"correlation={correlation} gives a correlation matrix that is not "
            f"positive definite (smallest eigenvalue {min_eigenvalue:.3g}). "
            f"Use a value in ({lower:.4f}, 1) for {n_variables} covariates."
        )
    return corr


def generate_covariates(n_samples, independent=True, correlation=None,
                        random_state=None):
    """
    Generate the four covariates x1..x4 on [0, 1].

    Independent covariates are drawn from Uniform(0, 1). Correlated
    covariates come from a Gaussian copula: a multivariate normal draw
    with the given pairwise correlation, pushed through the standard
    normal CDF so each margin is uniform.

    Parameters
    ----------
    n_samples : int
        Number of observations. Must be at least 1.
    independent : bool, default=True
        Draw each covariate independently.
    correlation : float or None, default=None
        Pairwise correlation on the normal scale. Required when
        ``independent=False``.
    random_state : int, RandomState instance or None, default=None
        Seed or generator for reproducibility.

    Returns
    -------
    covariates : pd.DataFrame
        Columns ``x1``, ``x2``, ``x3``, ``x4``.

    Raises
    ------
    ConfigurationError
        If ``n_samples < 1``, if a correlation is required but missing,
        or if the correlation matrix is invalid.

    Examples
    --------
    >>> X = generate_covariates(500, independent=False, correlation=0.9,
    ...                         random_state=42)
    >>> X.shape
    (500, 4)
    """
    if n_samples is None or int(n_samples) != n_samples or n_samples < 1:
        raise ConfigurationError(
            f"n_samples must be a positive integer, got {n_samples!r}"
        )
    n_samples = int(n_samples)
    rng = check_random_state(random_state)

    if independent:
        values = rng.uniform(0.0, 1.0, size=(n_samples, N_COVARIATES))
    else:
        if correlation is None:
            raise ConfigurationError(
                "correlation must be given when independent=False"
            )
        corr = validate_correlation(correlation)
        latent = rng.multivariate_normal(
            mean=np.zeros(N_COVARIATES), cov=corr, size=n_samples
        )
        values = norm.cdf(latent)

    return pd.DataFrame(values, columns=list(COVARIATE_NAMES))


def covariate_correlation(covariates):
    """
    Empirical Pearson correlation matrix of a covariate set.

    Parameters
    ----------
    covariates : pd.DataFrame
        Covariate set from :func:`generate_covariates`.

    Returns
    -------
    pd.DataFrame
        Correlation matrix labelled by covariate name.
    """
    return covariates.corr()


def max_offdiagonal_correlation(covariates):
    """Largest absolute off-diagonal entry of the empirical correlation matrix."""
    corr = covariate_correlation(covariates).to_numpy()
    mask = ~np.eye(corr.shape[0], dtype=bool)
    return float(np.max(np.abs(corr[mask])))
