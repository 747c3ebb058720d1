"""
Penalized B-spline (P-spline) bases for additive smooth terms.

Each smooth is a cubic B-spline basis of fixed dimension k built with
``sklearn.preprocessing.SplineTransformer`` and paired with a difference
penalty on adjacent coefficients. The sum-to-zero identifiability
constraint is absorbed by centering the basis columns on the training
data and dropping the last one, leaving k - 1 coefficients per smooth.
"""

import numpy as np
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.preprocessing import SplineTransformer
from sklearn.utils.validation import check_is_fitted

from ..constants import DEFAULT_PENALTY_ORDER, DEFAULT_SPLINE_DEGREE


def difference_penalty(n_basis, order=DEFAULT_PENALTY_ORDER, drop_last=True):
    """Build the P-spline difference penalty S = D'D.

    Parameters
    ----------
    n_basis : int
        Number of basis functions before the centering constraint.
    order : int, default=2
        Order of the coefficient differences.
    drop_last : bool, default=True
        Drop the last coefficient, matching the constrained basis.

    Returns
    -------
    ndarray
        Penalty matrix of shape (n_basis - 1, n_basis - 1) when
        ``drop_last`` else (n_basis, n_basis).

    Examples
    --------
    >>> difference_penalty(4, order=1, drop_last=False)
    array([[ 1., -1.,  0.,  0.],
           [-1.,  2., -1.,  0.],
           [ 0., -1.,  2., -1.],
           [ 0.,  0., -1.,  1.]])
    """
    D = np.diff(np.eye(n_basis), n=order, axis=0)
    if drop_last:
        D = D[:, :-1]
    return D.T @ D


class SmoothTerm(BaseEstimator, TransformerMixin):
    """Centered cubic B-spline basis for one covariate.

    Parameters
    ----------
    column : str
        Covariate name to read from the input DataFrame.
    n_basis : int, default=10
        Basis dimension k before the centering constraint.
    degree : int, default=3
        Spline degree.
    penalty_order : int, default=2
        Order of the difference penalty.

    Attributes
    ----------
    spline_ : SplineTransformer
        Fitted spline transformer (uniform knots over the training range).
    column_means_ : ndarray of shape (n_basis,)
        Training means of the raw basis columns.
    penalty_ : ndarray of shape (n_coef_, n_coef_)
        Difference penalty on the constrained coefficients.
    n_coef_ : int
        Number of coefficients after the constraint (n_basis - 1).
    penalty_rank_ : int
        Rank of ``penalty_`` (n_basis - penalty_order).
    """

    def __init__(self, column, n_basis=10, degree=DEFAULT_SPLINE_DEGREE,
                 penalty_order=DEFAULT_PENALTY_ORDER):
        self.column = column
        self.n_basis = n_basis
        self.degree = degree
        self.penalty_order = penalty_order

    def _values(self, X):
        if hasattr(X, 'columns'):
            return np.asarray(X[self.column], dtype=float).reshape(-1, 1)
        raise TypeError(
            f"SmoothTerm expects a DataFrame with column '{self.column}', "
            f"got {type(X).__name__}"
        )

    def fit(self, X, y=None):
        n_knots = self.n_basis - self.degree + 1
        if n_knots < 2:
            raise ValueError(
                f"n_basis={self.n_basis} is too small for degree={self.degree}; "
                f"need at least {self.degree + 1}"
            )
        if self.penalty_order >= self.n_basis - 1:
            raise ValueError(
                f"penalty_order={self.penalty_order} must be below n_basis - 1"
            )

        x = self._values(X)
        self.spline_ = SplineTransformer(
            n_knots=n_knots,
            degree=self.degree,
            knots='uniform',
            extrapolation='linear',
            include_bias=True,
        )
        raw = self.spline_.fit_transform(x)
        self.column_means_ = raw.mean(axis=0)
        self.penalty_ = difference_penalty(self.n_basis, self.penalty_order)
        self.n_coef_ = self.n_basis - 1
        self.penalty_rank_ = self.n_basis - self.penalty_order
        return self

    def transform(self, X):
        check_is_fitted(self, 'spline_')
        raw = self.spline_.transform(self._values(X))
        return (raw - self.column_means_)[:, :-1]


class SmoothDesign(BaseEstimator, TransformerMixin):
    """Intercept plus one centered smooth per covariate.

    Parameters
    ----------
    basis : dict
        Mapping of covariate name to basis dimension k,
        e.g. ``{'x1': 10, 'x2': 10, 'x4': 8}``.
    degree : int, default=3
        Spline degree shared by all smooths.
    penalty_order : int, default=2
        Difference penalty order shared by all smooths.

    Attributes
    ----------
    terms_ : list of SmoothTerm
        Fitted smooth terms in ``basis`` order.
    slices_ : list of slice
        Column slice of each term in the design matrix (column 0 is the
        intercept).
    n_coef_ : int
        Total number of columns including the intercept.
    """

    def __init__(self, basis, degree=DEFAULT_SPLINE_DEGREE,
                 penalty_order=DEFAULT_PENALTY_ORDER):
        self.basis = basis
        self.degree = degree
        self.penalty_order = penalty_order

    def fit(self, X, y=None):
        if not self.basis:
            raise ValueError("basis must name at least one covariate")
        self.terms_ = []
        self.slices_ = []
        start = 1
        for column, n_basis in self.basis.items():
            term = SmoothTerm(column, n_basis, self.degree, self.penalty_order).fit(X)
            self.terms_.append(term)
            self.slices_.append(slice(start, start + term.n_coef_))
            start += term.n_coef_
        self.n_coef_ = start
        return self

    def transform(self, X):
        check_is_fitted(self, 'terms_')
        blocks = [np.ones((len(X), 1))]
        blocks.extend(term.transform(X) for term in self.terms_)
        return np.hstack(blocks)

    @property
    def term_names_(self):
        check_is_fitted(self, 'terms_')
        return [term.column for term in self.terms_]

    def penalty_blocks(self):
        """Penalty blocks as (name, slice, S_j, rank_j) tuples."""
        check_is_fitted(self, 'terms_')
        return [
            (term.column, sl, term.penalty_, term.penalty_rank_)
            for term, sl in zip(self.terms_, self.slices_)
        ]
