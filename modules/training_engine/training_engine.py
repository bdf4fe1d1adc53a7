import json
import logging
import time
from typing import Any, Optional

import joblib
import numpy as np
import pandas as pd

from modules.base.base_engine import BaseEngine
from modules.model_factory import Formula, ModelFactory, ModelSpec
from modules.training_engine.model import Model, build_design_matrix, learn_categorical_levels
from utils.error_handling import handle_engine_errors
from utils.exceptions import ModelTrainingError
from utils import constants

class NumpyEncoder(json.JSONEncoder):
    """
    Helper to serialize NumPy types in metadata JSONs.
    Prevents 'Object of type int64 is not JSON serializable' errors.
    """
    def default(self, obj):
        if isinstance(obj, np.integer):
            return int(obj)
        elif isinstance(obj, np.floating):
            return float(obj)
        elif isinstance(obj, np.ndarray):
            return obj.tolist()
        return json.JSONEncoder.default(self, obj)

class TrainingEngine(BaseEngine):
    """
    Fits one model spec against a formula on a (preprocessed) training set.

    Every call builds a fresh estimator; the returned Model is never mutated.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        super().__init__(config, logger)

    def _get_engine_directory_name(self) -> str:
        return constants.TRAINED_MODELS_DIR

    @handle_engine_errors("Training")
    def execute(self, train_df: pd.DataFrame, model_spec: ModelSpec, formula: Formula,
                run_id: str = None, seed: Optional[int] = None) -> Model:
        """
        Train the model on the full training dataset.

        Args:
            train_df: Training data containing features and target.
            model_spec: Kind, mode, engine and hyperparameters.
            formula: Target and feature specification.
            run_id: Run identifier.
            seed: Estimator seed; defaults to the propagated model seed.

        Returns:
            Fitted Model.
        """
        self.logger.info(f"Starting training for {model_spec.label} ({formula})...")

        # 1. Validate everything before any numerical work
        features = formula.resolve(train_df.columns)
        if not features:
            raise ModelTrainingError("No features available for training after resolving the formula.")

        if seed is None:
            seed = self.config.get('_internal_seeds', {}).get('model')
        predictor = ModelFactory.create(model_spec, seed=seed)

        y = train_df[formula.target]
        if y.isna().any():
            raise ModelTrainingError(f"Target '{formula.target}' contains {int(y.isna().sum())} missing values.")
        if model_spec.mode == constants.MODE_REGRESSION and not pd.api.types.is_numeric_dtype(y):
            raise ModelTrainingError(f"Regression target '{formula.target}' must be numeric, got {y.dtype}.")

        # 2. Design matrix
        levels = learn_categorical_levels(train_df, features)
        X = build_design_matrix(train_df, features, levels)
        y_values = y.to_numpy()

        self.logger.info(
            f"Training {predictor.estimator_class.__name__} on {len(X)} samples "
            f"with {len(features)} features ({X.shape[1]} encoded columns)."
        )

        # 3. Fit with Timing
        try:
            start_time = time.time()
            estimator = predictor.fit(X, y_values)
            duration = time.time() - start_time
        except (ValueError, TypeError) as e:
            raise ModelTrainingError(f"Failed to train model {model_spec.label}: {str(e)}") from e

        self.logger.info(f"Training completed in {duration:.2f} seconds.")

        classes = tuple(estimator.classes_) if hasattr(estimator, 'classes_') else ()
        model = Model(
            spec=model_spec,
            formula=formula,
            features=tuple(features),
            design_columns=tuple(X.columns),
            categorical_levels=tuple(levels.items()),
            classes=classes,
            n_train=len(X),
            estimator=estimator,
        )

        # 4. Save Model & Metadata
        if self.writes_artifacts and self.config.get('outputs', {}).get('save_models', True):
            self._save_model(model, predictor.describe(), duration)

        return model

    def _save_model(self, model: Model, backend: dict, duration: float) -> None:
        try:
            model_path = self.output_dir / f"{model.spec.label}.joblib"
            joblib.dump(model, model_path)
            self.logger.info(f"Model saved to {model_path}")

            metadata = {
                **model.describe(),
                'backend': backend,
                'training_time_sec': duration,
                'timestamp': time.strftime("%Y-%m-%d %H:%M:%S")
            }
            with open(self.output_dir / f"{model.spec.label}_metadata.json", 'w') as f:
                json.dump(metadata, f, indent=2, cls=NumpyEncoder)
        except (OSError, TypeError) as e:
            self.logger.warning(f"Failed to save model artifacts. Error: {e}")


def load_model(path) -> Any:
    """Load a Model saved by TrainingEngine."""
    return joblib.load(path)
