"""
Metric and curve computations shared by the evaluation and cross-validation engines.
"""
from typing import Any, Dict, Optional, Union

import numpy as np
import pandas as pd
from sklearn.metrics import (
    accuracy_score,
    cohen_kappa_score,
    mean_absolute_error,
    mean_squared_error,
    precision_score,
    recall_score,
    roc_auc_score,
)

from utils import constants
from utils.exceptions import ConfigurationError, DataValidationError

Probabilities = Union[pd.Series, pd.DataFrame, np.ndarray]


def _as_pair(truth, predictions):
    truth = np.asarray(truth)
    predictions = np.asarray(predictions)
    if len(truth) != len(predictions):
        raise DataValidationError(
            f"truth and predictions differ in length ({len(truth)} vs {len(predictions)})."
        )
    if len(truth) == 0:
        raise DataValidationError("Cannot compute metrics on zero rows.")
    return truth, predictions


def compute_metrics(truth, predictions, kind: str, per_class: bool = False) -> Dict[str, float]:
    """
    Score (truth, prediction) pairs.

    Classification: accuracy and Cohen's kappa, plus ``precision_<class>`` /
    ``recall_<class>`` when ``per_class`` is set.
    Regression: rmse, mae and rsq (squared Pearson correlation).
    """
    truth, predictions = _as_pair(truth, predictions)

    if kind == constants.MODE_CLASSIFICATION:
        metrics = {
            'accuracy': float(accuracy_score(truth, predictions)),
            'kappa': _kappa(truth, predictions),
        }
        if per_class:
            labels = sorted(set(truth.tolist()) | set(predictions.tolist()), key=str)
            precision = precision_score(truth, predictions, labels=labels, average=None, zero_division=0)
            recall = recall_score(truth, predictions, labels=labels, average=None, zero_division=0)
            for label, p, r in zip(labels, precision, recall):
                metrics[f'precision_{label}'] = float(p)
                metrics[f'recall_{label}'] = float(r)
        return metrics

    if kind == constants.MODE_REGRESSION:
        truth = truth.astype(float)
        predictions = predictions.astype(float)
        return {
            'rmse': float(np.sqrt(mean_squared_error(truth, predictions))),
            'mae': float(mean_absolute_error(truth, predictions)),
            'rsq': _rsq(truth, predictions),
        }

    raise ConfigurationError(f"Unknown metric kind '{kind}'. Expected one of {list(constants.MODES)}.")


def _kappa(truth: np.ndarray, predictions: np.ndarray) -> float:
    # Undefined when both sides hold a single identical label
    if len(set(truth.tolist()) | set(predictions.tolist())) < 2:
        return float('nan')
    return float(cohen_kappa_score(truth, predictions))


def _rsq(truth: np.ndarray, predictions: np.ndarray) -> float:
    if len(truth) < 2 or np.std(truth) == 0 or np.std(predictions) == 0:
        return float('nan')
    return float(np.corrcoef(truth, predictions)[0, 1] ** 2)


def event_probabilities(probabilities: Probabilities, event_level: Optional[Any] = None) -> np.ndarray:
    """
    Pick the event-class probability column.

    A Series/array is taken as-is; for a DataFrame the ``event_level`` column
    is used, defaulting to the first class column.
    """
    if isinstance(probabilities, pd.DataFrame):
        if event_level is None:
            event_level = probabilities.columns[0]
        if event_level not in probabilities.columns:
            raise DataValidationError(
                f"Event level {event_level!r} not among probability columns {list(probabilities.columns)}."
            )
        return probabilities[event_level].to_numpy(dtype=float)
    return np.asarray(probabilities, dtype=float)


def _ranked_events(truth, probabilities: Probabilities, event_level):
    if event_level is None and isinstance(probabilities, pd.DataFrame):
        event_level = probabilities.columns[0]
    if event_level is None:
        raise DataValidationError("event_level is required when probabilities are a single column.")

    scores = event_probabilities(probabilities, event_level)
    truth, scores = _as_pair(truth, scores)
    is_event = truth == event_level

    # Descending probability; ties keep input order
    order = np.argsort(-scores, kind='stable')
    return scores[order], is_event[order]


def roc_curve(truth, probabilities: Probabilities, event_level: Optional[Any] = None) -> pd.DataFrame:
    """
    ROC points for one event class, one point per ranked row plus the origin.

    Columns: threshold, false_positive_rate, true_positive_rate.
    """
    scores, is_event = _ranked_events(truth, probabilities, event_level)
    n_pos = int(is_event.sum())
    n_neg = int(len(is_event) - n_pos)
    if n_pos == 0 or n_neg == 0:
        raise DataValidationError("ROC curve needs both event and non-event rows.")

    tp = np.concatenate([[0], np.cumsum(is_event)])
    fp = np.concatenate([[0], np.cumsum(~is_event)])
    return pd.DataFrame({
        'threshold': np.concatenate([[np.inf], scores]),
        'false_positive_rate': fp / n_neg,
        'true_positive_rate': tp / n_pos,
    })


def gain_curve(truth, probabilities: Probabilities, event_level: Optional[Any] = None) -> pd.DataFrame:
    """
    Cumulative gain points for one event class: share of events captured
    after testing the top-n ranked rows.

    Columns: threshold, n, n_events, percent_tested, percent_found.
    """
    scores, is_event = _ranked_events(truth, probabilities, event_level)
    n_pos = int(is_event.sum())
    if n_pos == 0:
        raise DataValidationError("Gain curve needs at least one event row.")

    n = np.arange(len(scores) + 1)
    n_events = np.concatenate([[0], np.cumsum(is_event)])
    return pd.DataFrame({
        'threshold': np.concatenate([[np.inf], scores]),
        'n': n,
        'n_events': n_events,
        'percent_tested': 100.0 * n / len(scores),
        'percent_found': 100.0 * n_events / n_pos,
    })


def roc_auc(truth, probabilities: pd.DataFrame, event_level: Optional[Any] = None) -> float:
    """
    Area under the ROC curve.

    Two classes: AUC of ``event_level`` (default first column). More classes:
    Hand-Till multiclass AUC (macro average over class pairs).
    """
    truth = np.asarray(truth)
    classes = list(probabilities.columns)
    if len(classes) <= 2:
        if event_level is None:
            event_level = classes[0]
        scores = event_probabilities(probabilities, event_level)
        is_event = truth == event_level
        if is_event.all() or not is_event.any():
            return float('nan')
        return float(roc_auc_score(is_event, scores))

    present = set(truth.tolist())
    if not present.issubset(classes) or len(present) < len(classes):
        # One-vs-one needs every class represented
        return float('nan')
    proba = probabilities.to_numpy(dtype=float)
    proba = proba / proba.sum(axis=1, keepdims=True)
    return float(roc_auc_score(truth, proba, multi_class='ovo', labels=classes))
