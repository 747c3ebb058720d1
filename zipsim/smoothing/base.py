"""
Shared machinery for the smooth ZIP estimators.

Both estimators model the rate (log link) and presence (cloglog link)
linear predictors with an intercept plus one penalized B-spline smooth
per covariate. This base class handles input validation, design
construction, starting values and prediction, so the subclasses only
implement their own fitting algorithm.
"""

import numpy as np
import pandas as pd
from scipy.linalg import LinAlgError, cho_factor
from sklearn.base import BaseEstimator
from sklearn.utils.validation import check_is_fitted

from ..constants import DEFAULT_PRESENCE_BASIS, DEFAULT_RATE_BASIS
from ..exceptions import FittingError
from .basis import SmoothDesign
from .family import cloglog, get_link


class BaseZIPSmoother(BaseEstimator):
    """Base class for additive smooth ZIP regressions.

    Subclasses implement ``fit`` and must set ``coef_rate_``,
    ``coef_presence_`` and ``converged_``.
    """

    def _resolved_basis(self):
        rate_basis = dict(DEFAULT_RATE_BASIS if self.rate_basis is None else self.rate_basis)
        presence_basis = dict(
            DEFAULT_PRESENCE_BASIS if self.presence_basis is None else self.presence_basis
        )
        return rate_basis, presence_basis

    def _validate_input(self, X, y):
        """Check covariates and counts; return (X, y) as (DataFrame, int array)."""
        if not isinstance(X, pd.DataFrame):
            raise TypeError(f"X must be a pandas DataFrame, got {type(X).__name__}")
        rate_basis, presence_basis = self._resolved_basis()
        needed = set(rate_basis) | set(presence_basis)
        missing = sorted(needed - set(X.columns))
        if missing:
            raise ValueError(f"X is missing covariate columns: {missing}")

        y = np.asarray(y)
        if y.ndim != 1 or len(y) != len(X):
            raise ValueError(
                f"y must be 1-d with {len(X)} entries, got shape {y.shape}"
            )
        if len(y) == 0:
            raise FittingError("cannot fit a model to an empty dataset")
        if np.any(y < 0) or np.any(np.asarray(y, dtype=float) != np.round(y)):
            raise ValueError("y must contain non-negative integer counts")
        if not np.any(y > 0):
            raise FittingError("response has no positive counts")

        self.n_samples_ = len(y)
        return X, y.astype(float)

    def _build_designs(self, X):
        rate_basis, presence_basis = self._resolved_basis()
        self.rate_design_ = SmoothDesign(rate_basis, self.degree, self.penalty_order).fit(X)
        self.presence_design_ = SmoothDesign(presence_basis, self.degree, self.penalty_order).fit(X)
        return self.rate_design_.transform(X), self.presence_design_.transform(X)

    @staticmethod
    def _initial_coef(y, n_rate, n_presence):
        """Intercept-only starting values from the observed counts."""
        beta_rate = np.zeros(n_rate)
        beta_presence = np.zeros(n_presence)
        beta_rate[0] = np.log(np.mean(y[y > 0]))
        beta_presence[0] = cloglog(np.clip(np.mean(y > 0), 0.05, 0.95))
        return beta_rate, beta_presence

    @staticmethod
    def _cho_factor(A):
        try:
            return cho_factor(A)
        except LinAlgError as exc:
            raise FittingError(
                f"penalized Hessian is not positive definite: {exc}"
            ) from exc

    def _check_finite(self):
        if not (np.all(np.isfinite(self.coef_rate_))
                and np.all(np.isfinite(self.coef_presence_))):
            raise FittingError("fitted coefficients are not finite")

    def linear_predictors(self, X):
        """
        Fitted linear predictors on the link scale.

        Parameters
        ----------
        X : pd.DataFrame
            Covariates with the columns used in fit.

        Returns
        -------
        eta_rate : ndarray
            Rate predictor (log link).
        eta_presence : ndarray
            Presence predictor (cloglog link).
        """
        check_is_fitted(self, 'coef_rate_')
        eta_rate = self.rate_design_.transform(X) @ self.coef_rate_
        eta_presence = self.presence_design_.transform(X) @ self.coef_presence_
        return eta_rate, eta_presence

    def predict(self, X):
        """Expected count p * lambda for each row of X."""
        eta_rate, eta_presence = self.linear_predictors(X)
        return get_link('cloglog').inverse(eta_presence) * get_link('log').inverse(eta_rate)

    @property
    def smoothing_params_(self):
        """Smoothing parameters keyed by '<predictor>:<covariate>'."""
        check_is_fitted(self, 'lambda_rate_')
        params = {
            f"rate:{name}": lam
            for name, lam in zip(self.rate_design_.term_names_, self.lambda_rate_)
        }
        params.update({
            f"presence:{name}": lam
            for name, lam in zip(self.presence_design_.term_names_, self.lambda_presence_)
        })
        return params
