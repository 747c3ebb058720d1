"""
Penalty assembly and smoothing-parameter updates.

This module builds the block-diagonal penalty S_lambda = Σ lambda_j S_j
for a set of smooth terms and implements the two smoothing-parameter
update rules used by the estimators:

- Fellner-Schall updates on the full penalized Hessian (additive model)
- Schall / local maximum likelihood updates on a working penalized
  least-squares fit (location-scale model)
"""

import numpy as np

from ..constants import LAMBDA_MAX, LAMBDA_MIN


def build_penalty_matrix(blocks, lambdas, n_coef, offset=0, out=None):
    """Embed λ-weighted penalty blocks into a square matrix.

    Parameters
    ----------
    blocks : list of tuple
        (name, slice, S_j, rank_j) tuples from ``SmoothDesign.penalty_blocks``.
    lambdas : array-like
        One smoothing parameter per block.
    n_coef : int
        Dimension of the returned matrix (ignored when ``out`` is given).
    offset : int, default=0
        Shift applied to each block slice, used when stacking several
        designs into one parameter vector.
    out : ndarray or None, default=None
        Matrix to add into.

    Returns
    -------
    S : ndarray
        Total penalty matrix. Intercept rows and columns stay zero.
    """
    S = np.zeros((n_coef, n_coef)) if out is None else out
    for (_, sl, S_j, _), lam in zip(blocks, lambdas):
        start, stop = sl.start + offset, sl.stop + offset
        S[start:stop, start:stop] += lam * S_j
    return S


def clip_lambdas(lambdas):
    """Keep smoothing parameters inside [LAMBDA_MIN, LAMBDA_MAX]."""
    return np.clip(np.asarray(lambdas, dtype=float), LAMBDA_MIN, LAMBDA_MAX)


def term_edf(V, F, slices):
    """Effective degrees of freedom per term: trace of the (V F) block.

    Parameters
    ----------
    V : ndarray
        Inverse penalized Hessian (or inverse of X'WX + S).
    F : ndarray
        Unpenalized Hessian (or X'WX).
    slices : list of slice
        Column slices of each term.

    Returns
    -------
    ndarray
        EDF of each term.
    """
    VF = V @ F
    return np.array([np.trace(VF[sl, sl]) for sl in slices])


def fellner_schall_update(lambdas, beta, blocks, V, offset=0):
    """One Fellner-Schall step for non-overlapping single-penalty smooths.

    lambda_j <- (rank(S_j) - lambda_j tr(V_jj S_j)) / (beta_j' S_j beta_j)

    Since every smooth owns its own coefficient block, the generalized
    inverse term tr(S_lambda^- S_j) reduces to rank(S_j) / lambda_j.

    Parameters
    ----------
    lambdas : ndarray
        Current smoothing parameters.
    beta : ndarray
        Coefficients at the current penalized optimum.
    blocks : list of tuple
        (name, slice, S_j, rank_j) penalty blocks.
    V : ndarray
        Inverse of the penalized negative Hessian.
    offset : int, default=0
        Shift applied to block slices into ``beta`` and ``V``.

    Returns
    -------
    ndarray
        Updated smoothing parameters, clipped to the allowed range.
    """
    updated = np.empty(len(blocks))
    for j, ((_, sl, S_j, rank_j), lam) in enumerate(zip(blocks, lambdas)):
        idx = slice(sl.start + offset, sl.stop + offset)
        b = beta[idx]
        quad = float(b @ S_j @ b)
        numerator = rank_j - lam * np.trace(V[idx, idx] @ S_j)
        numerator = max(numerator, LAMBDA_MIN)
        updated[j] = numerator / quad if quad > 0 else LAMBDA_MAX
    return clip_lambdas(updated)


def schall_update(lambdas, beta, blocks, edf, residual_variance):
    """Local maximum likelihood (Schall) update of smoothing parameters.

    Each smooth is treated as a random effect with variance tau_j², giving
    lambda_j = sigma² / tau_j² with

        tau_j² = beta_j' S_j beta_j / (edf_j - null_dim_j)

    where null_dim_j is the dimension of the unpenalized space of smooth j.

    Parameters
    ----------
    lambdas : ndarray
        Current smoothing parameters (returned unchanged where no update
        is possible).
    beta : ndarray
        Working-model coefficients.
    blocks : list of tuple
        (name, slice, S_j, rank_j) penalty blocks.
    edf : ndarray
        Effective degrees of freedom per smooth.
    residual_variance : float
        Working residual variance sigma².

    Returns
    -------
    ndarray
        Updated smoothing parameters, clipped to the allowed range.
    """
    updated = np.array(lambdas, dtype=float)
    for j, (_, sl, S_j, rank_j) in enumerate(blocks):
        b = beta[sl]
        null_dim = S_j.shape[0] - rank_j
        penalized_edf = max(edf[j] - null_dim, 1e-3)
        tau2 = float(b @ S_j @ b) / penalized_edf
        updated[j] = residual_variance / tau2 if tau2 > 0 else LAMBDA_MAX
    return clip_lambdas(updated)
