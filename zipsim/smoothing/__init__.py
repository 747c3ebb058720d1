"""
Smooth zero-inflated Poisson regression backends.

- ZIPAdditiveModel: both predictors fitted jointly (Fellner-Schall smoothing)
- ZIPLocationScaleModel: GAMLSS-style RS backfitting (local ML smoothing)
"""

from .additive import ZIPAdditiveModel
from .basis import SmoothDesign, SmoothTerm, difference_penalty
from .family import (
    LINK_FUNCTIONS,
    get_link,
    zip_derivatives,
    zip_deviance,
    zip_expected_cross_information,
    zip_expected_information,
    zip_loglik,
)
from .location_scale import ZIPLocationScaleModel

__all__ = [
    'ZIPAdditiveModel',
    'ZIPLocationScaleModel',
    'SmoothDesign',
    'SmoothTerm',
    'difference_penalty',
    'LINK_FUNCTIONS',
    'get_link',
    'zip_loglik',
    'zip_deviance',
    'zip_derivatives',
    'zip_expected_information',
    'zip_expected_cross_information',
]
