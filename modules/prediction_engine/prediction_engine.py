import logging

import pandas as pd

from modules.base.base_engine import BaseEngine
from modules.training_engine import Model
from utils.error_handling import handle_engine_errors
from utils.file_io import save_dataframe
from utils import constants

class PredictionEngine(BaseEngine):
    """
    Generates predictions with a fitted Model and joins them with ground truth.
    Feature consistency between training and inference is enforced by the Model.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        super().__init__(config, logger)

    def _get_engine_directory_name(self) -> str:
        return constants.PREDICTIONS_DIR

    @handle_engine_errors("Prediction")
    def execute(self, model: Model, data_df: pd.DataFrame, split_name: str, run_id: str = None) -> pd.DataFrame:
        """
        Generate predictions for one split.

        Parameters:
            model: Fitted Model.
            data_df: DataFrame containing features (and the target, when known).
            split_name: 'train', 'test', etc.
            run_id: Run identifier.

        Returns:
            DataFrame indexed like ``data_df`` with ``truth`` (if available),
            ``prediction`` and, for classifiers, one ``prob_<class>`` column per class.
        """
        self.logger.info(f"Generating {model.spec.label} predictions for {split_name} set ({len(data_df)} samples)...")

        results_df = model.predict(data_df, output=constants.OUTPUT_CLASS).to_frame()

        if model.target in data_df.columns:
            results_df.insert(0, constants.TRUTH_COLUMN, data_df[model.target])

        if model.is_classifier:
            proba = model.predict(data_df, output=constants.OUTPUT_PROBABILITY)
            proba.columns = [f"{constants.PROBABILITY_PREFIX}{c}" for c in proba.columns]
            results_df = pd.concat([results_df, proba], axis=1)

        results_df.attrs['split'] = split_name
        results_df.attrs['model'] = model.spec.label

        if self.writes_artifacts and self.config.get('outputs', {}).get('save_predictions', True):
            save_path = self.output_dir / f"predictions_{model.spec.label}_{split_name}.parquet"
            out = results_df.copy()
            if model.is_classifier:
                # Labels may be mixed object/category; store them as text
                out[constants.PREDICTION_COLUMN] = out[constants.PREDICTION_COLUMN].astype(str)
                if constants.TRUTH_COLUMN in out.columns:
                    out[constants.TRUTH_COLUMN] = out[constants.TRUTH_COLUMN].astype(str)
            save_dataframe(out, save_path, excel_copy=self.excel_copy, index=True)
            self.logger.info(f"Predictions saved to {save_path}")

        return results_df
