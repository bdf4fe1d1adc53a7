import logging
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd

from modules.data_manager.schema import DatasetSchema
from utils.exceptions import DataValidationError
from utils.error_handling import handle_engine_errors
from utils.file_io import read_dataframe, save_dataframe
from utils import constants

class DataManager:
    """
    Manages loading, joining and validation of the raw input data.
    Freezes the dataset schema once the table is assembled.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        self.config = config
        self.logger = logger
        self.data: Optional[pd.DataFrame] = None
        self.schema: Optional[DatasetSchema] = None
        self.base_dir = Path(self.config.get('outputs', {}).get('base_results_dir', 'results'))

    @handle_engine_errors("Data Management")
    def execute(self, run_id: str) -> pd.DataFrame:
        """
        Execute complete data loading and validation workflow.

        Args:
            run_id: Unique identifier for the run.

        Returns:
            pd.DataFrame: The validated dataset.
        """
        self.logger.info("Starting Data Manager execution...")

        output_dir = self.base_dir / constants.DATA_QUALITY_DIR
        output_dir.mkdir(parents=True, exist_ok=True)

        self.load_data()
        self.apply_joins()
        self.clean()
        self.validate_columns()
        stats_df = self.validate_nan_inf()

        self.schema = DatasetSchema.from_frame(self.data)
        self.logger.info(f"Dataset schema frozen: {self.schema.as_dict()}")

        excel_copy = self.config.get("outputs", {}).get("save_excel_copy", False)
        save_dataframe(stats_df, output_dir / "column_stats.parquet", excel_copy=excel_copy, index=False)
        schema_df = pd.DataFrame({'column': self.schema.columns, 'kind': self.schema.kinds})
        save_dataframe(schema_df, output_dir / "schema.parquet", excel_copy=excel_copy, index=False)

        return self.data

    def load_data(self) -> pd.DataFrame:
        """Load the primary table from ``data.file_path``."""
        self.data = self._read(self.config['data']['file_path'])
        self.logger.info(f"Data loaded successfully. Shape: {self.data.shape}")
        return self.data

    def apply_joins(self) -> pd.DataFrame:
        """
        Join additional tables onto the primary one, e.g. standings onto
        attendance on (year, team_name, team).
        """
        for join in self.config['data'].get('joins', []):
            other = self._read(join['file_path'])
            keys = list(join['on'])
            how = join.get('how', 'left')

            missing = [k for k in keys if k not in self.data.columns or k not in other.columns]
            if missing:
                raise DataValidationError(f"Join keys {missing} not present in both tables ({join['file_path']}).")
            if other.duplicated(subset=keys).any():
                raise DataValidationError(
                    f"Join table {join['file_path']} has duplicate keys on {keys}; join would duplicate rows."
                )

            before = len(self.data)
            self.data = self.data.merge(other, on=keys, how=how, suffixes=('', '_joined'))
            self.logger.info(f"Joined {join['file_path']} on {keys} ({how}): {before} -> {len(self.data)} rows")
        return self.data

    def clean(self) -> pd.DataFrame:
        """Drop configured columns, rows without a target, and type text columns as categories."""
        data_cfg = self.config['data']
        drop_cols = [c for c in data_cfg.get('drop_columns', []) if c in self.data.columns]
        if drop_cols:
            self.data = self.data.drop(columns=drop_cols)
            self.logger.info(f"Dropped configured columns: {drop_cols}")

        target = data_cfg['target']
        if data_cfg.get('drop_missing_target', True) and target in self.data.columns:
            mask = self.data[target].isna()
            if mask.any():
                self.logger.warning(f"Dropping {int(mask.sum())} rows with missing target '{target}'.")
                self.data = self.data.loc[~mask]

        text_cols = [
            c for c in self.data.columns
            if pd.api.types.is_object_dtype(self.data[c]) or pd.api.types.is_string_dtype(self.data[c])
        ]
        text_cols += [c for c in data_cfg.get('categorical_columns', [])
                      if c in self.data.columns and c not in text_cols]
        for col in text_cols:
            self.data[col] = self.data[col].astype('category')

        self.data = self.data.reset_index(drop=True)
        return self.data

    def validate_columns(self) -> None:
        """Ensure the target column exists and the table is not empty."""
        if self.data is None or self.data.empty:
            raise DataValidationError("Dataframe is empty or None.")

        target = self.config['data']['target']
        if target not in self.data.columns:
            raise DataValidationError(f"Missing target column in dataset: {target}")

    def validate_nan_inf(self) -> pd.DataFrame:
        """Check for NaN and Inf values and return statistics."""
        stats = []
        for col in self.data.columns:
            nan_count = int(self.data[col].isna().sum())
            row = {'column': col, 'nan_count': nan_count, 'inf_count': 0,
                   'min': np.nan, 'max': np.nan, 'mean': np.nan}

            if pd.api.types.is_numeric_dtype(self.data[col]) and not pd.api.types.is_bool_dtype(self.data[col]):
                inf_count = int(np.isinf(self.data[col]).sum())
                row.update({
                    'inf_count': inf_count,
                    'min': self.data[col].min(),
                    'max': self.data[col].max(),
                    'mean': self.data[col].mean()
                })
                if inf_count > 0:
                    self.logger.warning(f"Column '{col}' contains {inf_count} infinite values.")

            if nan_count > 0:
                self.logger.warning(f"Column '{col}' contains {nan_count} NaNs.")
            stats.append(row)

        return pd.DataFrame(stats)

    def _read(self, file_path: str) -> pd.DataFrame:
        path = Path(file_path)
        if not path.exists():
            raise DataValidationError(f"Data file not found: {path.absolute()}")

        self.logger.info(f"Loading data from {path}")
        try:
            df = read_dataframe(path)
        except ValueError as e:
            raise DataValidationError(str(e)) from e

        if df.empty:
            raise DataValidationError(f"Loaded dataframe is empty: {path}")
        return df
