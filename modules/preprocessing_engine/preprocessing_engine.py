"""
PreprocessingEngine for the tabular modeling workflow.

Fits a three-step pipeline on training data only:

1. correlation filter over an explicitly configured column scope,
2. centering by the training mean,
3. scaling by the training (population) standard deviation.

The learned parameters are frozen in a FittedPipeline, which replays the
exact same transform on any dataset with a compatible schema.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.preprocessing import StandardScaler

from modules.base.base_engine import BaseEngine
from utils.error_handling import handle_engine_errors
from utils.exceptions import ConfigurationError, DegenerateColumnError, SchemaMismatchError
from utils.file_io import save_dataframe
from utils import constants


@dataclass(frozen=True)
class FittedPipeline:
    """
    Immutable result of fitting the preprocessing steps on a training set.

    ``means`` and ``scales`` are stored as (column, value) pairs in column
    order; the dict views returned by the properties are fresh copies.
    """
    feature_columns: Tuple[str, ...]
    outcome: Optional[str]
    correlation_scope: str
    correlation_threshold: float
    dropped_columns: Tuple[str, ...] = ()
    center_pairs: Tuple[Tuple[str, float], ...] = ()
    scale_pairs: Tuple[Tuple[str, float], ...] = ()
    excluded_columns: Tuple[str, ...] = ()

    @property
    def means(self) -> Dict[str, float]:
        return dict(self.center_pairs)

    @property
    def scales(self) -> Dict[str, float]:
        return dict(self.scale_pairs)

    @property
    def retained_features(self) -> List[str]:
        return [c for c in self.feature_columns if c not in self.dropped_columns]

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Apply the recorded drop list, then subtract the recorded means and divide
        by the recorded standard deviations. Nothing is re-estimated from ``df``.

        Raises:
            SchemaMismatchError: a column that must be centered or scaled is absent.
        """
        needed = sorted({c for c, _ in self.center_pairs} | {c for c, _ in self.scale_pairs},
                        key=list(self.feature_columns).index)
        missing = [c for c in needed if c not in df.columns]
        if missing:
            raise SchemaMismatchError(missing, context="Preprocessing input")

        out = df.drop(columns=[c for c in self.dropped_columns if c in df.columns])

        if self.center_pairs:
            cols = [c for c, _ in self.center_pairs]
            means = pd.Series(dict(self.center_pairs))
            out[cols] = out[cols].astype(float) - means[cols]
        if self.scale_pairs:
            cols = [c for c, _ in self.scale_pairs]
            scales = pd.Series(dict(self.scale_pairs))
            out[cols] = out[cols].astype(float) / scales[cols]
        return out

    def summary(self) -> pd.DataFrame:
        """One row per learned parameter, in step order."""
        rows = [{'step': 'correlation_filter', 'column': c, 'value': np.nan, 'action': 'dropped'}
                for c in self.dropped_columns]
        rows += [{'step': 'center', 'column': c, 'value': v, 'action': 'subtract_mean'}
                 for c, v in self.center_pairs]
        rows += [{'step': 'scale', 'column': c, 'value': v, 'action': 'divide_by_std'}
                 for c, v in self.scale_pairs]
        rows += [{'step': 'exclude', 'column': c, 'value': np.nan, 'action': 'passthrough'}
                 for c in self.excluded_columns]
        return pd.DataFrame(rows, columns=['step', 'column', 'value', 'action'])


def numeric_columns(df: pd.DataFrame, columns: Sequence[str]) -> List[str]:
    return [
        c for c in columns
        if pd.api.types.is_numeric_dtype(df[c]) and not pd.api.types.is_bool_dtype(df[c])
    ]


def find_correlated_columns(df: pd.DataFrame, columns: Sequence[str], threshold: float) -> List[str]:
    """
    Columns to remove so that no remaining pair has |correlation| > threshold.

    Repeatedly takes the most correlated remaining pair; of the two, the one
    with the larger mean absolute correlation to the other remaining columns
    is dropped (ties drop the column later in ``columns`` order).
    """
    columns = list(columns)
    if len(columns) < 2:
        return []

    corr = df[columns].corr().abs().fillna(0.0).to_numpy(copy=True)
    np.fill_diagonal(corr, 0.0)

    remaining = list(range(len(columns)))
    dropped: List[str] = []
    while len(remaining) > 1:
        sub = corr[np.ix_(remaining, remaining)]
        upper = np.triu(sub, k=1)
        i, j = np.unravel_index(np.argmax(upper), upper.shape)
        if upper[i, j] <= threshold:
            break

        n_others = len(remaining) - 1
        mean_i = sub[i].sum() / n_others
        mean_j = sub[j].sum() / n_others
        # j is later in column order, so it loses ties
        victim = remaining[i] if mean_i > mean_j else remaining[j]
        dropped.append(columns[victim])
        remaining.remove(victim)

    return dropped


class PreprocessingEngine(BaseEngine):
    """
    Fits the correlation-filter / center / scale pipeline on training data.

    The correlation filter's column scope is read from
    ``preprocessing.correlation_scope`` and must be stated explicitly:
    ``"features"`` considers only the numeric feature columns, ``"all_numeric"``
    every numeric column except the outcome.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        super().__init__(config, logger)
        self.prep_config = self.config.get('preprocessing', {})

    def _get_engine_directory_name(self) -> str:
        return constants.PREPROCESSING_DIR

    @handle_engine_errors("Preprocessing")
    def execute(self, train_df: pd.DataFrame, feature_columns: Sequence[str],
                outcome: Optional[str] = None, run_id: str = None) -> FittedPipeline:
        """
        Fit the pipeline on ``train_df``.

        Parameters:
            train_df: Training data only.
            feature_columns: Columns the model will consume.
            outcome: Target column; never filtered, centered or scaled.
            run_id: Run identifier.
        """
        pipeline = self.fit(train_df, feature_columns, outcome)

        if self.writes_artifacts:
            save_dataframe(pipeline.summary(), self.output_dir / "fitted_pipeline.parquet",
                           excel_copy=self.excel_copy, index=False)
        return pipeline

    def fit(self, train_df: pd.DataFrame, feature_columns: Sequence[str],
            outcome: Optional[str] = None) -> FittedPipeline:
        feature_columns = [c for c in feature_columns if c != outcome]
        missing = [c for c in feature_columns if c not in train_df.columns]
        if missing:
            raise SchemaMismatchError(missing, context="Preprocessing training data")

        scope = self.prep_config.get('correlation_scope')
        if scope not in (constants.CORRELATION_SCOPE_FEATURES, constants.CORRELATION_SCOPE_ALL_NUMERIC):
            raise ConfigurationError(
                f"preprocessing.correlation_scope must be '{constants.CORRELATION_SCOPE_FEATURES}' "
                f"or '{constants.CORRELATION_SCOPE_ALL_NUMERIC}', got {scope!r}"
            )
        threshold = self.prep_config.get('correlation_threshold', constants.DEFAULT_CORRELATION_THRESHOLD)
        excluded = [c for c in self.prep_config.get('exclude_columns', []) if c in train_df.columns]

        # 1. Correlation filter
        dropped: List[str] = []
        if self.prep_config.get('correlation_filter', True):
            if scope == constants.CORRELATION_SCOPE_FEATURES:
                candidates = numeric_columns(train_df, feature_columns)
            else:
                candidates = numeric_columns(train_df, [c for c in train_df.columns if c != outcome])
            candidates = [c for c in candidates if c not in excluded]
            dropped = find_correlated_columns(train_df, candidates, threshold)
            if dropped:
                self.logger.info(f"Correlation filter (>{threshold}, scope={scope}) dropped: {dropped}")
            else:
                self.logger.info(f"Correlation filter (>{threshold}, scope={scope}) dropped no columns.")

        # 2-3. Centering and scaling statistics
        to_normalize = [
            c for c in numeric_columns(train_df, feature_columns)
            if c not in dropped and c not in excluded
        ]
        center = self.prep_config.get('center', True)
        scale = self.prep_config.get('scale', True)
        center_pairs: Tuple[Tuple[str, float], ...] = ()
        scale_pairs: Tuple[Tuple[str, float], ...] = ()

        if to_normalize and (center or scale):
            scaler = StandardScaler(with_mean=center, with_std=scale)
            scaler.fit(train_df[to_normalize].astype(float))

            if scale:
                degenerate = [c for c, v in zip(to_normalize, scaler.var_) if not np.isfinite(v) or v == 0]
                if degenerate:
                    raise DegenerateColumnError(degenerate)
                scale_pairs = tuple((c, float(np.sqrt(v))) for c, v in zip(to_normalize, scaler.var_))
            if center:
                center_pairs = tuple((c, float(m)) for c, m in zip(to_normalize, scaler.mean_))

        pipeline = FittedPipeline(
            feature_columns=tuple(feature_columns),
            outcome=outcome,
            correlation_scope=scope,
            correlation_threshold=threshold,
            dropped_columns=tuple(dropped),
            center_pairs=center_pairs,
            scale_pairs=scale_pairs,
            excluded_columns=tuple(excluded),
        )
        self.logger.info(
            f"Pipeline fitted on {len(train_df)} rows: {len(dropped)} dropped, "
            f"{len(center_pairs)} centered, {len(scale_pairs)} scaled."
        )
        return pipeline
