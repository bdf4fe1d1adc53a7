"""
Evaluation Engine Module
========================

Responsibility:
- Classification and regression metrics from (truth, prediction) pairs.
- ROC / gain curves and ROC AUC from class probabilities.
- Fold aggregation and train/test gap summaries.
"""

from .evaluation_engine import EvaluationEngine
from .metrics import compute_metrics, roc_curve, gain_curve, roc_auc
from .cv_analysis import collect_fold_scores, cv_fold_consistency, overfitting_gaps

__all__ = [
    'EvaluationEngine',
    'compute_metrics',
    'roc_curve',
    'gain_curve',
    'roc_auc',
    'collect_fold_scores',
    'cv_fold_consistency',
    'overfitting_gaps',
]
