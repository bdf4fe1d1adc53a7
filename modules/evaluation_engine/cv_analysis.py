import numpy as np
import pandas as pd
from typing import Dict, Iterable, List


def collect_fold_scores(fold_metrics: Iterable[Dict[str, float]]) -> Dict[str, np.ndarray]:
    """
    Turn a list of per-fold metric dicts into {"metric": np.array([...])}.
    Metrics missing from a fold are recorded as NaN.
    """
    fold_metrics: List[Dict[str, float]] = list(fold_metrics)
    names = []
    for metrics in fold_metrics:
        names.extend(m for m in metrics if m not in names)
    return {
        name: np.array([metrics.get(name, np.nan) for metrics in fold_metrics], dtype=float)
        for name in names
    }


def cv_fold_consistency(cv_scores: Dict[str, np.ndarray]) -> pd.DataFrame:
    """
    Summarize CV fold consistency for metrics.
    Expects cv_scores like {"rmse": np.array([...]), "mae": np.array([...])}.
    ``std`` is the sample standard deviation across folds, ``std_err`` = std / sqrt(folds).
    """
    rows = []
    for metric, scores in cv_scores.items():
        scores = np.asarray(scores, dtype=float)
        scores = scores[~np.isnan(scores)]
        if scores.size == 0:
            continue
        std = float(np.std(scores, ddof=1)) if scores.size > 1 else 0.0
        rows.append({
            "metric": metric,
            "folds": len(scores),
            "mean": float(np.mean(scores)),
            "std": std,
            "std_err": std / np.sqrt(len(scores)),
            "min": float(np.min(scores)),
            "max": float(np.max(scores)),
            "range": float(np.max(scores) - np.min(scores)),
        })
    return pd.DataFrame(rows, columns=["metric", "folds", "mean", "std", "std_err", "min", "max", "range"])


def overfitting_gaps(train_scores: Dict[str, float], test_scores: Dict[str, float]) -> pd.DataFrame:
    """
    Calculate gaps between training and testing scores for shared metrics.
    """
    rows = []
    for metric in train_scores:
        if metric not in test_scores:
            continue
        train_val = train_scores[metric]
        test_val = test_scores[metric]
        rows.append({
            "metric": metric,
            "train": train_val,
            "test": test_val,
            "gap": test_val - train_val,
        })
    return pd.DataFrame(rows, columns=["metric", "train", "test", "gap"])
