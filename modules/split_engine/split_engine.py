"""
SplitEngine for the tabular modeling workflow.

This module partitions a loaded dataset into training and testing sets. When a
stratification column is given, the training fraction is applied within each
of its groups so that every category keeps (within one row) the same share in
both subsets. Numeric stratification columns are binned into quantiles first.
"""
import logging
from typing import Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import train_test_split

from modules.base.base_engine import BaseEngine
from utils.error_handling import handle_engine_errors
from utils.exceptions import DataValidationError, EmptyGroupError, InvalidFractionError, SchemaMismatchError
from utils.file_io import save_dataframe
from utils import constants

MISSING_STRATUM = "__missing__"


def make_strata(series: pd.Series, numeric_bins: int = constants.DEFAULT_NUMERIC_STRATA_BINS) -> pd.Series:
    """
    Turn a column into stratification labels.

    Numeric columns with more distinct values than ``numeric_bins`` are cut
    into quantile bins; everything else is used as-is. Missing values form
    their own group.
    """
    is_numeric = pd.api.types.is_numeric_dtype(series) and not pd.api.types.is_bool_dtype(series)
    if is_numeric and series.nunique(dropna=True) > numeric_bins:
        binned = pd.qcut(series, q=numeric_bins, labels=False, duplicates='drop')
        labels = binned.astype('object')
    else:
        labels = series.astype('object')
    return labels.where(series.notna(), MISSING_STRATUM).astype(str)


def check_group_sizes(strata: pd.Series, column: str, min_rows: int = 2) -> None:
    """Raise EmptyGroupError if any stratification group has fewer than ``min_rows`` rows."""
    counts = strata.value_counts()
    small = counts[counts < min_rows]
    if not small.empty:
        raise EmptyGroupError(column, small.to_dict(), min_rows=min_rows)


def training_size(n_rows: int, train_fraction: float) -> int:
    """
    floor(f * N), clamped so both subsets keep at least one row. The product is
    rounded to 9 decimals first so that e.g. 0.29 * 100 floors to 29, not 28.
    """
    n_train = int(np.floor(round(train_fraction * n_rows, 9)))
    return min(max(n_train, 1), n_rows - 1)


def split_dataset(df: pd.DataFrame,
                  train_fraction: float = constants.DEFAULT_TRAIN_FRACTION,
                  stratify_by: Optional[str] = None,
                  seed: Optional[int] = None,
                  numeric_bins: int = constants.DEFAULT_NUMERIC_STRATA_BINS) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split ``df`` into (train, test), preserving the original index labels.

    Raises:
        InvalidFractionError: train_fraction outside (0, 1).
        EmptyGroupError: a stratification group has fewer than 2 rows.
        SchemaMismatchError: stratify_by is not a column of df.
    """
    if not (0.0 < train_fraction < 1.0):
        raise InvalidFractionError(train_fraction)
    if len(df) < 2:
        raise DataValidationError(f"Need at least 2 rows to split, got {len(df)}.")

    strata = None
    if stratify_by is not None:
        if stratify_by not in df.columns:
            raise SchemaMismatchError([stratify_by], context="Stratification dataset")
        strata = make_strata(df[stratify_by], numeric_bins)
        check_group_sizes(strata, stratify_by)

    n_train = training_size(len(df), train_fraction)
    try:
        train, test = train_test_split(
            df,
            train_size=n_train,
            random_state=seed,
            shuffle=True,
            stratify=strata
        )
    except ValueError as e:
        # More groups than rows in one of the subsets
        raise DataValidationError(
            f"Cannot stratify {len(df)} rows by '{stratify_by}' with train_fraction={train_fraction}: {e}"
        ) from e

    return train, test


class SplitEngine(BaseEngine):
    """
    Splits data into Train/Test sets, optionally stratified by one column.

    Defaults for the training fraction, stratification column and seed come
    from the ``splitting`` config section; the propagated split seed is used
    when no explicit seed is given.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        super().__init__(config, logger)
        self.split_config = self.config.get('splitting', {})

    def _get_engine_directory_name(self) -> str:
        return constants.SPLITS_DIR

    @handle_engine_errors("Data Splitting")
    def execute(self, df: pd.DataFrame, run_id: str = None,
                train_fraction: Optional[float] = None,
                stratify_by: Optional[str] = None,
                seed: Optional[int] = None) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """
        Execute the splitting workflow.

        Returns:
            train, test DataFrames
        """
        self.logger.info("Starting Split Engine execution...")

        if train_fraction is None:
            train_fraction = self.split_config.get('train_fraction', constants.DEFAULT_TRAIN_FRACTION)
        if stratify_by is None:
            stratify_by = self.split_config.get('stratify_by')
        if seed is None:
            seed = self.config.get('_internal_seeds', {}).get('split', self.split_config.get('seed'))
        numeric_bins = self.split_config.get('numeric_strata_bins', constants.DEFAULT_NUMERIC_STRATA_BINS)

        self.logger.info(
            f"Splitting {len(df)} rows: train_fraction={train_fraction}, "
            f"stratify_by={stratify_by}, seed={seed}"
        )
        train, test = split_dataset(df, train_fraction, stratify_by, seed, numeric_bins)

        if self.writes_artifacts:
            if stratify_by is not None:
                report = self._generate_balance_report(df, train, stratify_by, numeric_bins)
                save_dataframe(report, self.output_dir / "split_balance_report.parquet",
                               excel_copy=self.excel_copy, index=False)
            self._save_splits(train, test)

        self.logger.info(f"Splits created: Train={len(train)}, Test={len(test)}")
        return train, test

    def _save_splits(self, train: pd.DataFrame, test: pd.DataFrame) -> None:
        save_dataframe(train, self.output_dir / "train.parquet", excel_copy=self.excel_copy, index=True)
        save_dataframe(test, self.output_dir / "test.parquet", excel_copy=self.excel_copy, index=True)

    def _generate_balance_report(self, df: pd.DataFrame, train: pd.DataFrame,
                                 col: str, numeric_bins: int) -> pd.DataFrame:
        """Distribution of the stratification key across both subsets."""
        # Bin on the full table so both subsets share the same group labels
        strata = make_strata(df[col], numeric_bins)
        in_train = df.index.isin(train.index)
        train_counts = strata[in_train].value_counts()
        test_counts = strata[~in_train].value_counts()

        report = []
        for group in sorted(set(train_counts.index) | set(test_counts.index)):
            c_train = int(train_counts.get(group, 0))
            c_test = int(test_counts.get(group, 0))
            total = c_train + c_test
            report.append({
                'group': group,
                'total': total,
                'train': c_train,
                'test': c_test,
                'train%': round(c_train / total, 3),
                'test%': round(c_test / total, 3),
            })
        return pd.DataFrame(report)
