import warnings
import json
import pytest
import numpy as np
import pandas as pd
from modules.model_factory import Formula, ModelSpec
from modules.preprocessing_engine import PreprocessingEngine
from modules.split_engine import SplitEngine
from modules.training_engine import Model, TrainingEngine, build_design_matrix, learn_categorical_levels, load_model
from utils.exceptions import (
    ConfigurationError, ModelTrainingError, SchemaMismatchError, UnsupportedModeError,
)

RF_CLASSIFIER = ModelSpec('random_forest', 'classification', hyperparameters={'trees': 100}, name='iris_rf')
OLS = ModelSpec('linear', 'regression', 'ols', name='ols')

@pytest.fixture
def trainer(base_config, mock_logger):
    return TrainingEngine(base_config, mock_logger)

def test_iris_random_forest(trainer, iris_df, tmp_path):
    model = trainer.execute(iris_df, RF_CLASSIFIER, Formula.parse("species ~ ."), "run")

    assert isinstance(model, Model)
    assert model.features == ('sepal_length', 'sepal_width', 'petal_length', 'petal_width')
    assert model.classes == ('setosa', 'versicolor', 'virginica')
    assert model.n_train == 150
    assert model.estimator.n_estimators == 100

    labels = model.predict(iris_df.iloc[:60])
    assert len(labels) == 60
    assert labels.name == 'prediction'
    assert set(labels) <= set(model.classes)

    proba = model.predict(iris_df.iloc[:60], output='probability')
    assert list(proba.columns) == list(model.classes)
    np.testing.assert_allclose(proba.sum(axis=1), 1.0)

    out = tmp_path / "results" / "05_TrainedModels"
    assert (out / "iris_rf.joblib").exists()
    metadata = json.loads((out / "iris_rf_metadata.json").read_text())
    assert metadata['backend']['params']['n_estimators'] == 100
    assert metadata['formula'] == "species ~ ."

def test_saved_model_reloads(trainer, iris_df, tmp_path):
    model = trainer.execute(iris_df, RF_CLASSIFIER, Formula.parse("species ~ ."))
    loaded = load_model(tmp_path / "results" / "05_TrainedModels" / "iris_rf.joblib")
    pd.testing.assert_series_equal(loaded.predict(iris_df), model.predict(iris_df))

def test_training_is_seeded(trainer, iris_df):
    formula = Formula.parse("species ~ .")
    a = trainer.execute(iris_df, RF_CLASSIFIER, formula)
    b = trainer.execute(iris_df, RF_CLASSIFIER, formula)
    pd.testing.assert_frame_equal(a.predict(iris_df, 'probability'), b.predict(iris_df, 'probability'))

def test_linear_regression_recovers_coefficients(trainer):
    rng = np.random.default_rng(0)
    df = pd.DataFrame({'a': rng.normal(size=50), 'b': rng.normal(size=50)})
    df['y'] = 2 * df['a'] - 3 * df['b'] + 5
    model = trainer.execute(df, OLS, Formula.parse("y ~ a + b"))

    np.testing.assert_allclose(model.estimator.coef_, [2.0, -3.0], atol=1e-8)
    assert model.classes == ()
    with pytest.raises(UnsupportedModeError):
        model.predict(df, output='probability')

def test_categorical_features_use_training_levels(trainer, attendance_df):
    spec = ModelSpec('linear', 'regression', name='att')
    model = trainer.execute(attendance_df, spec, Formula.parse("weekly_attendance ~ ."))

    assert 'playoffs_Playoffs' in model.design_columns
    assert 'team_name_Bears' not in model.design_columns  # first level dropped
    unseen = attendance_df.head(3).assign(team_name=pd.Categorical(['Browns'] * 3))
    assert len(model.predict(unseen)) == 3

def test_formula_missing_feature(trainer, iris_df):
    with pytest.raises(SchemaMismatchError):
        trainer.execute(iris_df, RF_CLASSIFIER, Formula.parse("species ~ stem_length"))

def test_prediction_requires_training_features(trainer, iris_df):
    model = trainer.execute(iris_df, RF_CLASSIFIER, Formula.parse("species ~ ."))
    with pytest.raises(SchemaMismatchError) as exc_info:
        model.predict(iris_df.drop(columns=['petal_width']))
    assert exc_info.value.missing == ['petal_width']

def test_unknown_output_kind(trainer, iris_df):
    model = trainer.execute(iris_df, RF_CLASSIFIER, Formula.parse("species ~ ."))
    with pytest.raises(ConfigurationError):
        model.predict(iris_df, output='raw')

def test_unsupported_mode_rejected_before_fitting(trainer, iris_df):
    with pytest.raises(UnsupportedModeError):
        trainer.execute(iris_df, ModelSpec('linear', 'classification'), Formula.parse("species ~ ."))

def test_regression_target_must_be_numeric(trainer, iris_df):
    with pytest.raises(ModelTrainingError, match="numeric"):
        trainer.execute(iris_df, ModelSpec('random_forest', 'regression'), Formula.parse("species ~ ."))

def test_missing_target_values(trainer, iris_df):
    df = iris_df.copy()
    df.loc[0, 'species'] = np.nan
    with pytest.raises(ModelTrainingError, match="missing"):
        trainer.execute(df, RF_CLASSIFIER, Formula.parse("species ~ ."))

def test_model_is_frozen(trainer, iris_df):
    model = trainer.execute(iris_df, RF_CLASSIFIER, Formula.parse("species ~ ."))
    with pytest.raises(AttributeError):
        model.features = ()

def test_compute_only_engine_writes_nothing(base_config, mock_logger, iris_df, tmp_path):
    base_config['outputs']['skip_dir_creation'] = True
    TrainingEngine(base_config, mock_logger).execute(iris_df, RF_CLASSIFIER, Formula.parse("species ~ ."))
    assert not (tmp_path / "results" / "05_TrainedModels").exists()

def test_design_matrix_helpers():
    df = pd.DataFrame({'x': [1, 2, 3], 'c': ['b', 'a', 'b']})
    levels = learn_categorical_levels(df, ['x', 'c'])
    assert levels == {'c': ('a', 'b')}

    X = build_design_matrix(df, ['x', 'c'], levels)
    assert list(X.columns) == ['x', 'c_b']
    assert X['c_b'].tolist() == [1.0, 0.0, 1.0]
    assert X['x'].dtype == float

def test_explicit_formula_after_correlation_filter(base_config, mock_logger, iris_df):
    base_config['outputs']['skip_dir_creation'] = True
    train, test = SplitEngine(base_config, mock_logger).execute(
        iris_df, train_fraction=0.6, stratify_by='species', seed=42
    )
    formula = Formula.parse("species ~ sepal_length + sepal_width + petal_length + petal_width")
    pipeline = PreprocessingEngine(base_config, mock_logger).fit(train, formula.resolve(train.columns), 'species')
    assert len(pipeline.dropped_columns) == 1

    model = TrainingEngine(base_config, mock_logger).execute(
        pipeline.transform(train), RF_CLASSIFIER, formula.without(pipeline.dropped_columns)
    )
    assert len(model.features) == 3
    assert pipeline.dropped_columns[0] not in model.features

    preds = model.predict(pipeline.transform(test))
    assert len(preds) == 60
    assert set(preds) <= {'setosa', 'versicolor', 'virginica'}

def test_design_matrix_unseen_levels_are_zero_rows():
    levels = {'c': ('a', 'b', 'c')}
    df = pd.DataFrame({'c': pd.Categorical(['b', 'z', 'c', None])})
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        X = build_design_matrix(df, ['c'], levels)

    assert list(X.columns) == ['c_b', 'c_c']
    assert X.loc[0].tolist() == [1.0, 0.0]
    assert X.loc[1].tolist() == [0.0, 0.0]
    assert X.loc[3].tolist() == [0.0, 0.0]
