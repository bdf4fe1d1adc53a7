import copy
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.model_selection import KFold, RepeatedKFold, RepeatedStratifiedKFold, StratifiedKFold

from modules.base.base_engine import BaseEngine
from modules.evaluation_engine import collect_fold_scores, compute_metrics, cv_fold_consistency, roc_auc
from modules.model_factory import Formula, ModelSpec
from modules.preprocessing_engine import PreprocessingEngine
from modules.split_engine import check_group_sizes, make_strata
from modules.training_engine import TrainingEngine
from utils.error_handling import handle_engine_errors
from utils.exceptions import ConfigurationError, SchemaMismatchError
from utils.file_io import save_dataframe
from utils import constants


@dataclass(frozen=True)
class Fold:
    """One (train, validation) partition, expressed as row index labels."""
    fold_id: int
    repeat: int
    train_index: Tuple
    validation_index: Tuple


@dataclass(frozen=True)
class FoldSet:
    """K folds per repeat over one training set."""
    k: int
    repeats: int
    stratify_by: Optional[str]
    folds: Tuple[Fold, ...]

    def __len__(self) -> int:
        return len(self.folds)

    def __iter__(self):
        return iter(self.folds)


@dataclass(frozen=True)
class CrossValidationResult:
    model_name: str
    fold_set: FoldSet
    fold_metrics: Tuple[Dict[str, float], ...]
    aggregate: pd.DataFrame

    def fold_table(self) -> pd.DataFrame:
        """One row per fold with its id, repeat, sizes and metrics."""
        return pd.DataFrame(list(self.fold_metrics))

    def summary(self) -> Dict[str, Dict[str, float]]:
        """metric -> {'mean': ..., 'std': ...}"""
        return {
            row['metric']: {'mean': float(row['mean']), 'std': float(row['std'])}
            for _, row in self.aggregate.iterrows()
        }


def make_folds(df: pd.DataFrame, k: int, stratify_by: Optional[str] = None,
               seed: Optional[int] = None, repeats: int = 1,
               numeric_bins: int = constants.DEFAULT_NUMERIC_STRATA_BINS,
               logger: Optional[logging.Logger] = None) -> FoldSet:
    """
    Partition ``df`` into ``k`` folds (``repeats`` times with reshuffling).

    Every row lands in exactly one validation subset per repeat. With
    ``stratify_by`` the class (or quantile-bin) proportions are kept per fold.
    """
    n = len(df)
    if not isinstance(k, (int, np.integer)) or k < 2:
        raise ConfigurationError(f"Cross-validation needs at least 2 folds, got {k}.")
    if k > n:
        raise ConfigurationError(f"Cannot make {k} folds from {n} rows.")
    if repeats < 1:
        raise ConfigurationError(f"repeats must be >= 1, got {repeats}.")

    strata = None
    if stratify_by is not None:
        if stratify_by not in df.columns:
            raise SchemaMismatchError([stratify_by], context="Cross-validation data")
        strata = make_strata(df[stratify_by], numeric_bins)
        check_group_sizes(strata, stratify_by)
        small = strata.value_counts()
        small = small[small < k]
        if not small.empty and logger is not None:
            logger.warning(
                f"Stratification groups of '{stratify_by}' smaller than {k} folds: {small.to_dict()}. "
                "Some folds will not contain every group."
            )

    if strata is not None:
        splitter = (StratifiedKFold(n_splits=k, shuffle=True, random_state=seed) if repeats == 1
                    else RepeatedStratifiedKFold(n_splits=k, n_repeats=repeats, random_state=seed))
        positions = splitter.split(np.zeros(n), strata.to_numpy())
    else:
        splitter = (KFold(n_splits=k, shuffle=True, random_state=seed) if repeats == 1
                    else RepeatedKFold(n_splits=k, n_repeats=repeats, random_state=seed))
        positions = splitter.split(np.zeros(n))

    labels = df.index
    folds = []
    for i, (train_pos, val_pos) in enumerate(positions):
        folds.append(Fold(
            fold_id=i % k + 1,
            repeat=i // k + 1,
            train_index=tuple(labels[train_pos]),
            validation_index=tuple(labels[val_pos]),
        ))
    return FoldSet(k=k, repeats=repeats, stratify_by=stratify_by, folds=tuple(folds))


class CrossValidationEngine(BaseEngine):
    """
    K-fold cross-validation of one model spec on the training set.

    Each fold refits the preprocessing pipeline (when enabled) and the model
    from scratch on the fold's training rows only, then scores the held-out rows.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        super().__init__(config, logger)
        self.cv_config = self.config.get('cross_validation', {})

    def _get_engine_directory_name(self) -> str:
        return constants.CROSS_VALIDATION_DIR

    @handle_engine_errors("Cross-Validation")
    def execute(self, model_spec: ModelSpec, formula: Formula, dataset: pd.DataFrame,
                k: Optional[int] = None, stratify_by: Optional[str] = None,
                seed: Optional[int] = None, repeats: Optional[int] = None,
                run_id: str = None) -> CrossValidationResult:
        """
        Cross-validate ``model_spec`` on ``dataset``.

        Parameters:
            model_spec: Model to evaluate.
            formula: Target and features.
            dataset: Training data (raw when preprocessing is refit per fold).
            k: Number of folds; defaults to ``cross_validation.folds``.
            stratify_by: Column to stratify folds by.
            seed: Fold shuffling seed; defaults to the propagated cv seed.
            repeats: Number of repetitions with reshuffling.
            run_id: Run identifier.

        Returns:
            CrossValidationResult with per-fold metrics and mean/std aggregates.
        """
        k = self.cv_config.get('folds', constants.DEFAULT_CV_FOLDS) if k is None else k
        stratify_by = self.cv_config.get('stratify_by') if stratify_by is None else stratify_by
        repeats = self.cv_config.get('repeats', 1) if repeats is None else repeats
        if seed is None:
            seed = self.config.get('_internal_seeds', {}).get('cv')
        bins = self.config.get('splitting', {}).get('numeric_strata_bins', constants.DEFAULT_NUMERIC_STRATA_BINS)

        fold_set = make_folds(dataset, k, stratify_by=stratify_by, seed=seed, repeats=repeats,
                              numeric_bins=bins, logger=self.logger)
        self.logger.info(
            f"Cross-validating {model_spec.label}: {k} folds x {repeats} repeat(s) on {len(dataset)} rows"
            + (f", stratified by '{stratify_by}'." if stratify_by else ".")
        )

        # Fold engines compute only; artifacts belong to this engine
        fold_config = copy.deepcopy(self.config)
        fold_config.setdefault('outputs', {})['skip_dir_creation'] = True
        refit = (self.cv_config.get('refit_preprocessing', True)
                 and self.config.get('preprocessing', {}).get('enabled', True))

        n_jobs = self.config.get('execution', {}).get('n_jobs', 1)
        fold_metrics = Parallel(n_jobs=n_jobs)(
            delayed(self._run_single_fold)(fold, dataset, model_spec, formula, fold_config, refit)
            for fold in fold_set
        )

        metric_dicts = [
            {m: v for m, v in res.items() if m not in ('fold', 'repeat', 'n_train', 'n_validation')}
            for res in fold_metrics
        ]
        aggregate = cv_fold_consistency(collect_fold_scores(metric_dicts))
        result = CrossValidationResult(
            model_name=model_spec.label,
            fold_set=fold_set,
            fold_metrics=tuple(fold_metrics),
            aggregate=aggregate,
        )

        if self.writes_artifacts:
            save_dataframe(result.fold_table(), self.output_dir / f"fold_metrics_{model_spec.label}.parquet",
                           excel_copy=self.excel_copy, index=False)
            save_dataframe(aggregate, self.output_dir / f"cv_summary_{model_spec.label}.parquet",
                           excel_copy=self.excel_copy, index=False)

        for _, row in aggregate.iterrows():
            self.logger.info(f"  CV {row['metric']}: mean={row['mean']:.4f} std={row['std']:.4f}")
        return result

    def _run_single_fold(self, fold: Fold, dataset: pd.DataFrame, model_spec: ModelSpec,
                         formula: Formula, fold_config: dict, refit: bool) -> Dict[str, float]:
        """Fit and score one fold; every fitted object is local to the call."""
        fold_logger = logging.getLogger("cross_validation.fold")
        train_df = dataset.loc[list(fold.train_index)]
        val_df = dataset.loc[list(fold.validation_index)]

        if refit:
            features = formula.resolve(train_df.columns)
            pipeline = PreprocessingEngine(fold_config, fold_logger).fit(train_df, features, formula.target)
            train_df = pipeline.transform(train_df)
            val_df = pipeline.transform(val_df)
            formula = formula.without(pipeline.dropped_columns)

        model = TrainingEngine(fold_config, fold_logger).execute(train_df, model_spec, formula)
        truth = val_df[formula.target]
        preds = model.predict(val_df)

        if model.is_classifier:
            metrics = compute_metrics(truth.astype(str), preds.astype(str), model.mode,
                                      per_class=self.config.get('evaluation', {}).get('per_class', False))
            proba = model.predict(val_df, output=constants.OUTPUT_PROBABILITY)
            proba.columns = [str(c) for c in proba.columns]
            metrics['roc_auc'] = roc_auc(truth.astype(str), proba, self._event_level(proba))
        else:
            metrics = compute_metrics(truth, preds, model.mode)

        return {
            'fold': fold.fold_id,
            'repeat': fold.repeat,
            'n_train': len(train_df),
            'n_validation': len(val_df),
            **metrics,
        }

    def _event_level(self, proba: pd.DataFrame) -> str:
        event_level = self.config.get('evaluation', {}).get('event_level')
        if event_level is not None and str(event_level) in proba.columns:
            return str(event_level)
        return proba.columns[0]


def fold_summary(results: List[CrossValidationResult]) -> pd.DataFrame:
    """Stack the aggregate tables of several models, tagged by model name."""
    if not results:
        return pd.DataFrame(columns=['model', 'metric', 'folds', 'mean', 'std', 'std_err', 'min', 'max', 'range'])
    return pd.concat([r.aggregate.assign(model=r.model_name) for r in results], ignore_index=True)[
        ['model'] + list(results[0].aggregate.columns)
    ]
