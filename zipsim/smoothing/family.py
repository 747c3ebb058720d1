"""
Zero-inflated Poisson family with a complementary log-log presence link
and a log rate link.

An observation is "present" with probability p = 1 - exp(-exp(eta_p)).
Present observations are Poisson(lambda) with lambda = exp(eta_r);
absent observations are structural zeros. This module provides the
per-observation log-likelihood, its analytic first and second
derivatives with respect to both linear predictors, and the expected
information used as Fisher scoring weights.
"""

from collections import namedtuple

import numpy as np
from scipy.special import gammaln

from ..constants import ETA_BOUND


Link = namedtuple('Link', ['name', 'link', 'inverse'])


def cloglog(p):
    """Complementary log-log link: log(-log(1 - p))."""
    p = np.asarray(p, dtype=float)
    return np.log(-np.log1p(-p))


def cloglog_inverse(eta):
    """Inverse complementary log-log: 1 - exp(-exp(eta))."""
    eta = np.clip(np.asarray(eta, dtype=float), -ETA_BOUND, ETA_BOUND)
    return -np.expm1(-np.exp(eta))


def log_inverse(eta):
    """Inverse log link, clipped to keep exp() finite."""
    eta = np.clip(np.asarray(eta, dtype=float), -ETA_BOUND, ETA_BOUND)
    return np.exp(eta)


# Registry of link functions
LINK_FUNCTIONS = {
    'log': Link('log', np.log, log_inverse),
    'cloglog': Link('cloglog', cloglog, cloglog_inverse),
}


def get_link(link):
    """Get a link by name.

    Parameters
    ----------
    link : str or Link
        Either a registered name ('log', 'cloglog') or a Link tuple.

    Returns
    -------
    Link

    Raises
    ------
    ValueError
        If link is a string but not a recognized name.
    """
    if isinstance(link, Link):
        return link

    if link not in LINK_FUNCTIONS:
        valid_names = list(LINK_FUNCTIONS.keys())
        raise ValueError(f"Unknown link '{link}'. Use {valid_names}.")

    return LINK_FUNCTIONS[link]


def _prepare(y, eta_rate, eta_presence):
    y = np.asarray(y, dtype=float)
    eta_rate = np.clip(np.asarray(eta_rate, dtype=float), -ETA_BOUND, ETA_BOUND)
    eta_presence = np.clip(np.asarray(eta_presence, dtype=float), -ETA_BOUND, ETA_BOUND)
    lam = np.exp(eta_rate)
    u = np.exp(eta_presence)
    log_p = np.log(-np.expm1(-u))
    return y, eta_rate, lam, u, log_p


def zip_loglik(y, eta_rate, eta_presence):
    """Per-observation ZIP log-likelihood.

    Parameters
    ----------
    y : ndarray
        Non-negative integer counts.
    eta_rate : ndarray
        Rate linear predictor (log link).
    eta_presence : ndarray
        Presence linear predictor (cloglog link).

    Returns
    -------
    ndarray
        log f(y_i) for every observation.
    """
    y, eta_rate, lam, u, log_p = _prepare(y, eta_rate, eta_presence)
    zero = y == 0
    ll = np.empty_like(lam)
    # P(y=0) = (1 - p) + p exp(-lambda), with log(1 - p) = -u
    ll[zero] = np.logaddexp(-u[zero], log_p[zero] - lam[zero])
    pos = ~zero
    ll[pos] = (log_p[pos] + y[pos] * eta_rate[pos] - lam[pos]
               - gammaln(y[pos] + 1.0))
    return ll


def zip_deviance(y, eta_rate, eta_presence):
    """Global deviance, -2 times the summed log-likelihood."""
    return -2.0 * np.sum(zip_loglik(y, eta_rate, eta_presence))


def zip_derivatives(y, eta_rate, eta_presence):
    """First and second derivatives of the ZIP log-likelihood.

    Returns
    -------
    d_rate, d_presence : ndarray
        dl/d eta_rate and dl/d eta_presence per observation.
    d2_rate, d2_presence, d2_cross : ndarray
        Second derivatives d2l/d eta_rate^2, d2l/d eta_presence^2 and
        d2l/(d eta_rate d eta_presence) per observation.

    Notes
    -----
    For y = 0 the likelihood is D = q + (1 - q) r with q = exp(-u),
    u = exp(eta_p) and r = exp(-lambda); derivatives follow from
    d log D = D'/D and d2 log D = D''/D - (D'/D)^2, written in terms of
    the posterior weights A = q/D and B = (1 - q) r / D.
    """
    y, eta_rate, lam, u, log_p = _prepare(y, eta_rate, eta_presence)
    n = len(lam)
    d_rate = np.empty(n)
    d_presence = np.empty(n)
    d2_rate = np.empty(n)
    d2_presence = np.empty(n)
    d2_cross = np.zeros(n)

    zero = y == 0
    pos = ~zero

    # Zero counts
    uz, lz, lpz = u[zero], lam[zero], log_p[zero]
    log_d = np.logaddexp(-uz, lpz - lz)
    a = np.exp(-uz - log_d)
    b = np.exp(lpz - lz - log_d)
    r = np.exp(-lz)
    one_minus_r = -np.expm1(-lz)

    g_p = -uz * a * one_minus_r
    g_r = -lz * b
    d_presence[zero] = g_p
    d_rate[zero] = g_r
    d2_presence[zero] = -one_minus_r * uz * (1.0 - uz) * a - g_p ** 2
    d2_rate[zero] = -lz * (1.0 - lz) * b - g_r ** 2
    d2_cross[zero] = -uz * lz * a * r - g_p * g_r

    # Positive counts
    up = u[pos]
    with np.errstate(over='ignore'):
        t = up / np.expm1(up)
    p = -np.expm1(-up)
    d_presence[pos] = t
    d2_presence[pos] = t * (1.0 - up / p)
    d_rate[pos] = y[pos] - lam[pos]
    d2_rate[pos] = -lam[pos]

    return d_rate, d_presence, d2_rate, d2_presence, d2_cross


def zip_expected_information(eta_rate, eta_presence):
    """Expected information for each linear predictor, per observation.

    Fisher scoring weights E[(dl/d eta)^2] for the rate and presence
    predictors, each holding the other fixed. Both are strictly positive,
    unlike the observed second derivatives at zero counts.

    Returns
    -------
    info_rate, info_presence : ndarray
    """
    _, _, lam, u, log_p = _prepare(0.0, eta_rate, eta_presence)
    p = np.exp(log_p)
    q = np.exp(-u)
    r = np.exp(-lam)
    one_minus_r = -np.expm1(-lam)
    log_d = np.logaddexp(-u, log_p - lam)
    a = np.exp(-u - log_d)

    # E[s^2] = P(0) s0^2 + sum_{y>0} P(y) s(y)^2
    info_rate = p * lam * (1.0 - lam * r * a)
    with np.errstate(divide='ignore', invalid='ignore'):
        q2_over_p = np.where(p > 0, q * q / p, 0.0)
    info_presence = u ** 2 * one_minus_r * (one_minus_r * q * a + q2_over_p)
    return info_rate, info_presence


def zip_expected_cross_information(eta_rate, eta_presence):
    """Expected cross information E[(dl/d eta_rate)(dl/d eta_presence)].

    Positive counts contribute u q lambda r and the zero count contributes
    P(0) * s_rate(0) * s_presence(0), giving

        u lambda r (q + p (1 - r) A)

    with A the posterior weight of a structural zero. Together with
    :func:`zip_expected_information` this gives a positive semi-definite
    2x2 information matrix per observation.

    Returns
    -------
    info_cross : ndarray
    """
    _, _, lam, u, log_p = _prepare(0.0, eta_rate, eta_presence)
    p = np.exp(log_p)
    q = np.exp(-u)
    r = np.exp(-lam)
    one_minus_r = -np.expm1(-lam)
    a = np.exp(-u - np.logaddexp(-u, log_p - lam))
    return u * lam * r * (q + p * one_minus_r * a)
