import pytest
import pandas as pd
from modules.model_factory import Formula, ModelSpec
from modules.prediction_engine import PredictionEngine
from modules.training_engine import TrainingEngine

@pytest.fixture
def iris_model(base_config, mock_logger, iris_df):
    spec = ModelSpec('random_forest', 'classification', hyperparameters={'trees': 20}, name='rf')
    base_config['outputs']['skip_dir_creation'] = True
    return TrainingEngine(base_config, mock_logger).execute(iris_df, spec, Formula.parse("species ~ ."))

def test_classification_prediction_table(base_config, mock_logger, iris_model, iris_df, tmp_path):
    engine = PredictionEngine(base_config | {'outputs': {'base_results_dir': str(tmp_path / "results")}}, mock_logger)
    test = iris_df.iloc[::3]
    preds = engine.execute(iris_model, test, 'test', "run")

    assert list(preds.columns) == ['truth', 'prediction', 'prob_setosa', 'prob_versicolor', 'prob_virginica']
    assert preds.index.equals(test.index)
    assert preds.attrs['split'] == 'test'
    assert preds.attrs['model'] == 'rf'

    saved = pd.read_parquet(tmp_path / "results" / "06_Predictions" / "predictions_rf_test.parquet")
    assert len(saved) == len(test)
    assert saved['truth'].tolist() == test['species'].astype(str).tolist()

def test_prediction_without_target(base_config, mock_logger, iris_model, iris_df):
    base_config['outputs']['skip_dir_creation'] = True
    engine = PredictionEngine(base_config, mock_logger)
    preds = engine.execute(iris_model, iris_df.drop(columns=['species']).head(5), 'new')
    assert 'truth' not in preds.columns
    assert len(preds) == 5

def test_regression_prediction_table(base_config, mock_logger, attendance_df):
    base_config['outputs']['skip_dir_creation'] = True
    spec = ModelSpec('linear', 'regression', name='ols')
    model = TrainingEngine(base_config, mock_logger).execute(
        attendance_df, spec, Formula.parse("weekly_attendance ~ .")
    )
    preds = PredictionEngine(base_config, mock_logger).execute(model, attendance_df, 'train')
    assert list(preds.columns) == ['truth', 'prediction']
