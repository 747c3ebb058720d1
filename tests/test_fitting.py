"""
Tests for the model fitter (fit_and_score) and the procedure registry.
"""
import numpy as np
import pytest
from sklearn.base import BaseEstimator

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from zipsim import (
    FitResult,
    FittingError,
    Procedure,
    ZIPAdditiveModel,
    ZIPLocationScaleModel,
    fit_and_score,
    generate_covariates,
    generate_zip_data,
    get_procedure,
)
from zipsim.data import ZIPDataset


class ExplodingEstimator(BaseEstimator):
    """Estimator whose fit always fails."""

    def __init__(self, message='matrix is singular'):
        self.message = message

    def fit(self, X, y):
        raise np.linalg.LinAlgError(self.message)


class TestProcedureRegistry:

    def test_names(self):
        assert Procedure.ADDITIVE.value == 'additive-model'
        assert Procedure.LOCATION_SCALE.value == 'location-scale-model'

    def test_get_procedure_by_name(self):
        assert get_procedure('additive-model') is ZIPAdditiveModel
        assert get_procedure(Procedure.LOCATION_SCALE) is ZIPLocationScaleModel

    def test_get_procedure_passes_estimators_through(self):
        assert get_procedure(ExplodingEstimator) is ExplodingEstimator

    def test_unknown_name_raises(self):
        with pytest.raises(ValueError, match='Unknown procedure'):
            get_procedure('gam')


class TestFitAndScore:
    """Tests for scoring fits against the true predictors."""

    @pytest.fixture(scope='class')
    def dataset(self):
        X = generate_covariates(300, random_state=31)
        return generate_zip_data(X, rate_scale=1.0, random_state=32)

    @pytest.mark.parametrize('procedure', list(Procedure))
    def test_success_fields(self, dataset, procedure):
        result = fit_and_score(dataset, procedure, replicate=7)
        assert isinstance(result, FitResult)
        assert result.replicate == 7
        assert result.procedure == procedure.value
        assert not result.failed
        assert result.error_message is None
        assert result.rate_error >= 0
        assert result.presence_error >= 0
        assert isinstance(result.converged, bool)
        assert np.isfinite(result.log10_duration)

    def test_params_reach_estimator(self, dataset):
        result = fit_and_score(dataset, 'location-scale-model', n_cycles=1)
        assert not result.failed
        assert result.converged is False

    def test_estimator_instance_is_cloned(self, dataset):
        model = ZIPAdditiveModel(outer_max_iter=3)
        fit_and_score(dataset, model)
        assert not hasattr(model, 'coef_rate_')

    def test_failure_is_recorded(self, dataset):
        result = fit_and_score(dataset, ExplodingEstimator, replicate=3)
        assert result.failed
        assert result.rate_error is None
        assert result.presence_error is None
        assert result.converged is False
        assert 'matrix is singular' in result.error_message
        assert result.procedure == 'ExplodingEstimator'
        assert np.isfinite(result.log10_duration)

    def test_all_zero_response_fails_without_raising(self, dataset):
        empty = ZIPDataset(
            y=np.zeros(dataset.n_samples, dtype=int),
            covariates=dataset.covariates,
            present=np.zeros(dataset.n_samples, dtype=int),
            presence_probability=dataset.presence_probability,
            eta_presence=dataset.eta_presence,
            eta_rate=dataset.eta_rate,
        )
        result = fit_and_score(empty, Procedure.ADDITIVE)
        assert result.failed
        assert FittingError.__name__ in result.error_message

    def test_to_dict(self, dataset):
        result = fit_and_score(dataset, ExplodingEstimator)
        row = result.to_dict()
        assert row['failed'] is True
        assert set(row) == {
            'replicate', 'procedure', 'rate_error', 'presence_error',
            'converged', 'log10_duration', 'failed', 'error_message',
        }
