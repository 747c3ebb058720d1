"""
Nonlinear curve shapes used to build the true linear predictors.

Each function takes covariate values on [0, 1] and a scaling factor and
returns ``scale * shape(x)``. Shapes are normalised so that their range
stays within roughly [0, 2] before scaling, which keeps ``exp`` of any
linear combination finite.
"""

import numpy as np


def sinusoidal(x, scale=1.0):
    """Half-period sine wave.

    f(x) = scale * 2 sin(pi x)

    Parameters
    ----------
    x : array-like
        Covariate values in [0, 1].
    scale : float, default=1.0
        Multiplicative scaling factor.

    Returns
    -------
    ndarray
        Curve values in [0, 2 * scale].
    """
    x = np.asarray(x, dtype=float)
    return scale * 2.0 * np.sin(np.pi * x)


def exponential(x, scale=1.0):
    """Exponential growth curve.

    f(x) = scale * exp(2x) / 4

    Parameters
    ----------
    x : array-like
        Covariate values in [0, 1].
    scale : float, default=1.0
        Multiplicative scaling factor.

    Returns
    -------
    ndarray
        Curve values in [0.25 * scale, exp(2)/4 * scale].
    """
    x = np.asarray(x, dtype=float)
    return scale * np.exp(2.0 * x) / 4.0


def bump(x, scale=1.0):
    """Polynomial bump with a sharp peak near x=0.23 and a shoulder near x=0.65.

    f(x) = scale * (0.2 x^11 (10(1-x))^6 + 10 (10x)^3 (1-x)^10) / 5

    Parameters
    ----------
    x : array-like
        Covariate values in [0, 1].
    scale : float, default=1.0
        Multiplicative scaling factor.

    Returns
    -------
    ndarray
        Curve values in [0, ~1.8 * scale].
    """
    x = np.asarray(x, dtype=float)
    shape = (0.2 * x ** 11 * (10.0 * (1.0 - x)) ** 6
             + 10.0 * (10.0 * x) ** 3 * (1.0 - x) ** 10)
    return scale * shape / 5.0


# Registry of curve shapes by name
FUNCTIONS = {
    'sinusoidal': sinusoidal,
    'exponential': exponential,
    'bump': bump,
}
