import numpy as np
import pandas as pd
import pytest
from unittest.mock import Mock
from sklearn.datasets import load_iris


@pytest.fixture
def mock_logger():
    """Provides a mock logger instance."""
    return Mock()


@pytest.fixture
def base_config(tmp_path):
    """Minimal configuration writing into a temporary results directory."""
    return {
        'outputs': {'base_results_dir': str(tmp_path / "results")},
        'splitting': {'seed': 42, 'numeric_strata_bins': 4},
        'preprocessing': {
            'enabled': True,
            'correlation_filter': True,
            'correlation_threshold': 0.9,
            'correlation_scope': 'features',
            'center': True,
            'scale': True,
            'exclude_columns': [],
        },
        'cross_validation': {'folds': 5, 'repeats': 1, 'refit_preprocessing': True},
        'evaluation': {'per_class': False},
        'execution': {'n_jobs': 1},
        '_internal_seeds': {'split': 42, 'cv': 1042, 'model': 2042},
    }


@pytest.fixture
def iris_df():
    """The 150-row iris table with a categorical ``species`` column."""
    iris = load_iris(as_frame=True)
    df = iris.data.copy()
    df.columns = ['sepal_length', 'sepal_width', 'petal_length', 'petal_width']
    df['species'] = pd.Categorical.from_codes(iris.target, categories=list(iris.target_names))
    return df


@pytest.fixture
def attendance_df():
    """Synthetic weekly attendance with a playoffs flag and a team category."""
    rng = np.random.default_rng(7)
    n = 400
    teams = np.array(['Bears', 'Packers', 'Lions', 'Vikings'])
    playoffs = np.where(rng.random(n) < 0.35, 'Playoffs', 'No Playoffs')
    margin = rng.normal(0, 6, n) + np.where(playoffs == 'Playoffs', 5, 0)
    sos = rng.normal(0, 2, n)
    week = rng.integers(1, 18, n)
    attendance = 65000 + 900 * margin - 400 * sos + 50 * week + rng.normal(0, 3000, n)
    return pd.DataFrame({
        'team_name': pd.Categorical(rng.choice(teams, n)),
        'year': rng.integers(2000, 2020, n),
        'week': week,
        'margin_of_victory': margin,
        'strength_of_schedule': sos,
        'playoffs': pd.Categorical(playoffs),
        'weekly_attendance': attendance,
    })
