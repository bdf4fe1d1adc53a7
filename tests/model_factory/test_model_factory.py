import logging
import pytest
import numpy as np
from sklearn.ensemble import ExtraTreesRegressor, RandomForestClassifier, RandomForestRegressor
from sklearn.linear_model import ElasticNet, LinearRegression, LogisticRegression

from modules.model_factory import (
    ModelFactory, ModelSpec, LinearPredictor, LogisticPredictor, RandomForestPredictor,
)
from utils.exceptions import UnsupportedModeError

def test_available_kinds():
    assert set(ModelFactory.get_available_kinds()) == {'linear', 'logistic', 'random_forest'}
    assert ModelFactory.get_supported_modes('random_forest') == ['classification', 'regression']
    assert ModelFactory.get_supported_modes('linear') == ['regression']
    assert ModelFactory.get_supported_modes('svm') == []

@pytest.mark.parametrize("kind, mode, engine, expected", [
    ('linear', 'regression', None, LinearRegression),
    ('linear', 'regression', 'elastic_net', ElasticNet),
    ('logistic', 'classification', None, LogisticRegression),
    ('random_forest', 'classification', None, RandomForestClassifier),
    ('random_forest', 'regression', None, RandomForestRegressor),
    ('random_forest', 'regression', 'extra_trees', ExtraTreesRegressor),
])
def test_engine_selection(kind, mode, engine, expected):
    predictor = ModelFactory.create(ModelSpec(kind, mode, engine))
    assert predictor.estimator_class is expected
    assert isinstance(predictor.build_estimator(), expected)

@pytest.mark.parametrize("kind, mode, engine", [
    ('linear', 'classification', None),
    ('logistic', 'regression', None),
    ('random_forest', 'ranking', None),
    ('random_forest', 'classification', 'ranger'),
    ('gbm', 'regression', None),
])
def test_unsupported_combinations(kind, mode, engine):
    with pytest.raises(UnsupportedModeError) as exc_info:
        ModelFactory.create(ModelSpec(kind, mode, engine))
    assert exc_info.value.kind == kind

def test_hyperparameter_aliases_and_seed():
    spec = ModelSpec('random_forest', 'classification', hyperparameters={'trees': 100, 'mtry': 2, 'min_n': 4})
    predictor = ModelFactory.create(spec, seed=9)
    assert predictor.params == {'n_estimators': 100, 'max_features': 2, 'min_samples_split': 4, 'random_state': 9}

def test_explicit_random_state_wins():
    spec = ModelSpec('random_forest', 'regression', hyperparameters={'random_state': 1})
    assert ModelFactory.create(spec, seed=9).params['random_state'] == 1

def test_linear_ols_drops_random_state_silently(caplog):
    with caplog.at_level(logging.WARNING):
        predictor = ModelFactory.create(ModelSpec('linear', 'regression'), seed=3)
    assert 'random_state' not in predictor.params
    assert caplog.records == []

def test_unknown_parameters_dropped_with_warning(caplog):
    spec = ModelSpec('linear', 'regression', 'elastic_net', {'penalty': 0.5, 'mixture': 0.2, 'depth': 3})
    with caplog.at_level(logging.WARNING):
        predictor = ModelFactory.create(spec)
    assert predictor.params == {'alpha': 0.5, 'l1_ratio': 0.2}
    assert any("depth" in r.getMessage() for r in caplog.records)

def test_logistic_penalty_is_inverse_c():
    predictor = ModelFactory.create(ModelSpec('logistic', 'classification', hyperparameters={'penalty': 4, 'epochs': 50}))
    assert predictor.params['C'] == 0.25
    assert predictor.params['max_iter'] == 50
    with pytest.raises(UnsupportedModeError):
        ModelFactory.create(ModelSpec('logistic', 'classification', hyperparameters={'penalty': 0}))

def test_fit_returns_fresh_estimator():
    X = np.arange(20, dtype=float).reshape(-1, 1)
    y = 3 * X.ravel() + 1
    predictor = LinearPredictor('regression')
    first = predictor.fit(X, y)
    second = predictor.fit(X, y * 2)

    assert first is not second
    np.testing.assert_allclose(first.coef_, [3.0])
    np.testing.assert_allclose(second.coef_, [6.0])

def test_model_spec_from_config():
    spec = ModelSpec.from_config({'kind': 'random_forest', 'mode': 'regression', 'hyperparameters': {'trees': 5}})
    assert spec.label == 'random_forest_regression'
    assert spec.engine is None
    assert ModelSpec.from_config({'name': 'rf', 'kind': 'x', 'mode': 'y'}).label == 'rf'

def test_describe():
    info = RandomForestPredictor('classification', hyperparameters={'trees': 10}).describe()
    assert info['engine'] == 'sklearn'
    assert info['estimator'] == 'RandomForestClassifier'
    assert LogisticPredictor('classification').describe()['kind'] == 'logistic'
