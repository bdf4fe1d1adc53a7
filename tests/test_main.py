import json
import logging
import pytest
import pandas as pd
from pathlib import Path

import main

PROJECT_ROOT = Path(__file__).resolve().parents[1]

@pytest.fixture(autouse=True)
def project_cwd(monkeypatch):
    # The schema path is resolved relative to the project root
    monkeypatch.chdir(PROJECT_ROOT)

@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)

@pytest.fixture
def iris_config(tmp_path, iris_df):
    data_path = tmp_path / "iris.csv"
    iris_df.to_csv(data_path, index=False)
    config = {
        "data": {"file_path": str(data_path), "target": "species"},
        "formula": "species ~ .",
        "splitting": {"train_fraction": 0.6, "stratify_by": "species", "seed": 42},
        "preprocessing": {"correlation_scope": "features", "correlation_threshold": 0.9},
        "models": [
            {"name": "iris_rf", "kind": "random_forest", "mode": "classification", "hyperparameters": {"trees": 100}},
            {"name": "iris_logit", "kind": "logistic", "mode": "classification", "hyperparameters": {"epochs": 500}},
        ],
        "cross_validation": {"enabled": True, "folds": 5, "stratify_by": "species"},
        "diagnostics": {"enabled": True, "dpi": 60},
        "outputs": {"base_results_dir": str(tmp_path / "results")},
        "logging": {"log_dir": str(tmp_path / "logs"), "log_to_console": False},
    }
    path = tmp_path / "config.json"
    path.write_text(json.dumps(config))
    return path

def test_iris_workflow_end_to_end(iris_config, tmp_path):
    assert main.main(["--config", str(iris_config)]) == 0

    results = tmp_path / "results"
    assert (results / "01_RunConfiguration" / "config_used.json").exists()

    train = pd.read_parquet(results / "03_DataSplits" / "train.parquet")
    test = pd.read_parquet(results / "03_DataSplits" / "test.parquet")
    assert (len(train), len(test)) == (90, 60)

    pipeline = pd.read_parquet(results / "04_Preprocessing" / "fitted_pipeline.parquet")
    assert (pipeline['step'] == 'correlation_filter').sum() == 1

    preds = pd.read_parquet(results / "06_Predictions" / "predictions_iris_rf_test.parquet")
    assert len(preds) == 60
    assert set(preds['prediction']) <= {'setosa', 'versicolor', 'virginica'}

    summary = pd.read_parquet(results / "07_PerformanceMetrics" / "metrics_summary.parquet")
    test_rows = summary[summary['split'] == 'test']
    assert set(test_rows['model']) == {'iris_rf', 'iris_logit'}
    assert (test_rows['accuracy'] > 0.8).all()

    cv = pd.read_parquet(results / "08_CrossValidation" / "cv_summary_all_models.parquet")
    assert set(cv['model']) == {'iris_rf', 'iris_logit'}
    assert (results / "09_DiagnosticPlots" / "roc_curve_iris_rf_test.png").exists()
    assert "WORKFLOW COMPLETED SUCCESSFULLY" in (tmp_path / "logs" / "workflow.log").read_text(encoding='utf-8')

def test_dry_run_stops_after_validation(iris_config, tmp_path):
    assert main.main(["--config", str(iris_config), "--dry-run"]) == 0
    assert (tmp_path / "results" / "01_RunConfiguration").exists()
    assert not (tmp_path / "results" / "02_DataQualityChecks").exists()

def test_run_id_suffixes_results_dir(iris_config, tmp_path):
    assert main.main(["--config", str(iris_config), "--run-id", "r1", "--dry-run"]) == 0
    assert (tmp_path / "results_r1" / "01_RunConfiguration").exists()

def test_invalid_config_exit_code(tmp_path, capsys):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"data": {"file_path": "x.csv", "target": "y"}, "models": []}))
    assert main.main(["--config", str(path)]) == 1
    assert "[ERROR]" in capsys.readouterr().out

def test_parse_arguments_defaults():
    args = main.parse_arguments([])
    assert args.config == "config/config.json"
    assert args.run_id is None
    assert not args.verbose and not args.dry_run

def test_explicit_formula_trains_on_retained_columns(iris_config, tmp_path):
    config = json.loads(iris_config.read_text())
    config["formula"] = "species ~ sepal_length + sepal_width + petal_length + petal_width"
    iris_config.write_text(json.dumps(config))

    assert main.main(["--config", str(iris_config)]) == 0

    results = tmp_path / "results"
    dropped = pd.read_parquet(results / "04_Preprocessing" / "fitted_pipeline.parquet")
    dropped = dropped.loc[dropped['step'] == 'correlation_filter', 'column'].tolist()
    assert len(dropped) == 1
    preds = pd.read_parquet(results / "06_Predictions" / "predictions_iris_rf_test.parquet")
    assert len(preds) == 60
