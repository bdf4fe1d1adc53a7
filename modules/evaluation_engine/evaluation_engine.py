import logging
from typing import Dict, Optional

import pandas as pd

from modules.base.base_engine import BaseEngine
from modules.evaluation_engine.cv_analysis import overfitting_gaps
from modules.evaluation_engine.metrics import compute_metrics, gain_curve, roc_auc, roc_curve
from utils.error_handling import handle_engine_errors
from utils.exceptions import DataValidationError
from utils.file_io import save_dataframe
from utils import constants

class EvaluationEngine(BaseEngine):
    """
    Computes performance metrics for prediction tables produced by PredictionEngine.
    Classification tables additionally get ROC / gain curves and ROC AUC.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        super().__init__(config, logger)
        eval_cfg = config.get("evaluation", {})
        self.per_class = eval_cfg.get("per_class", False)
        self.event_level = eval_cfg.get("event_level")

    def _get_engine_directory_name(self) -> str:
        return constants.EVALUATION_DIR

    @handle_engine_errors("Evaluation")
    def execute(self, predictions: pd.DataFrame, kind: str, split_name: str,
                model_name: str = "model", run_id: str = None) -> Dict[str, float]:
        """
        Compute metrics and save evaluation reports.

        Parameters:
            predictions: DataFrame with ``truth``, ``prediction`` and optional ``prob_<class>`` columns.
            kind: 'classification' or 'regression'.
            split_name: 'train' or 'test'.
            model_name: Label used in artifact names.
            run_id: Run identifier.

        Returns:
            dict: Dictionary of computed metrics.
        """
        self.logger.info(f"Starting Evaluation of {model_name} on {split_name} set...")

        if constants.TRUTH_COLUMN not in predictions.columns:
            raise DataValidationError(f"Predictions for {split_name} carry no '{constants.TRUTH_COLUMN}' column.")

        metrics = self.compute_metrics(predictions, kind)

        curves = {}
        proba = self.probability_columns(predictions)
        if kind == constants.MODE_CLASSIFICATION and not proba.empty:
            truth = predictions[constants.TRUTH_COLUMN].astype(str)
            metrics['roc_auc'] = roc_auc(truth, proba, self._event_level(proba))
            curves = self.compute_curves(truth, proba)

        if self.writes_artifacts:
            metrics_path = self.output_dir / f"metrics_{model_name}_{split_name}.parquet"
            save_dataframe(pd.DataFrame([metrics]), metrics_path, excel_copy=self.excel_copy, index=False)
            for curve_name, curve_df in curves.items():
                save_dataframe(curve_df, self.output_dir / f"{curve_name}_{model_name}_{split_name}.parquet",
                               excel_copy=self.excel_copy, index=False)

        summary = ", ".join(f"{k}={v:.4f}" for k, v in metrics.items() if not k.startswith(('precision_', 'recall_')))
        self.logger.info(f"Evaluation complete. {model_name} {split_name}: {summary}")
        return metrics

    def compute_metrics(self, df: pd.DataFrame, kind: str) -> Dict[str, float]:
        """Metrics from the truth/prediction columns of a prediction table."""
        truth = df[constants.TRUTH_COLUMN]
        preds = df[constants.PREDICTION_COLUMN]
        if kind == constants.MODE_CLASSIFICATION:
            # Compare labels as text so category and object dtypes agree
            truth, preds = truth.astype(str), preds.astype(str)
        return compute_metrics(truth, preds, kind, per_class=self.per_class)

    def compute_curves(self, truth: pd.Series, proba: pd.DataFrame) -> Dict[str, pd.DataFrame]:
        """
        ROC and gain curves. Binary problems get one curve for the event level;
        multiclass problems get one one-vs-rest curve per class, tagged by ``class``.
        """
        if proba.shape[1] == 2:
            levels = [self._event_level(proba)]
        else:
            levels = list(proba.columns)

        roc_parts, gain_parts = [], []
        for level in levels:
            if not (truth == level).any() or (truth == level).all():
                self.logger.warning(f"Skipping curves for class '{level}': needs both events and non-events.")
                continue
            roc_parts.append(roc_curve(truth, proba, level).assign(**{'class': level}))
            gain_parts.append(gain_curve(truth, proba, level).assign(**{'class': level}))

        curves = {}
        if roc_parts:
            curves['roc_curve'] = pd.concat(roc_parts, ignore_index=True)
            curves['gain_curve'] = pd.concat(gain_parts, ignore_index=True)
        return curves

    def compare_splits(self, train_metrics: Dict[str, float], test_metrics: Dict[str, float],
                       model_name: str = "model") -> pd.DataFrame:
        """Train-vs-test gaps for shared metrics, saved alongside the metric tables."""
        gap_df = overfitting_gaps(train_metrics, test_metrics)
        if self.writes_artifacts and not gap_df.empty:
            save_dataframe(gap_df, self.output_dir / f"train_test_gaps_{model_name}.parquet",
                           excel_copy=self.excel_copy, index=False)
        return gap_df

    @staticmethod
    def probability_columns(predictions: pd.DataFrame) -> pd.DataFrame:
        """``prob_<class>`` columns renamed to their class labels (as text)."""
        prefix = constants.PROBABILITY_PREFIX
        cols = [c for c in predictions.columns if str(c).startswith(prefix)]
        proba = predictions[cols].copy()
        proba.columns = [str(c)[len(prefix):] for c in cols]
        return proba

    def _event_level(self, proba: pd.DataFrame) -> Optional[str]:
        if self.event_level is not None and str(self.event_level) in proba.columns:
            return str(self.event_level)
        return proba.columns[0]
