"""
Cross-Validation Engine Module
==============================

Responsibility:
- K-fold (optionally stratified, optionally repeated) fold construction.
- Per-fold refit of preprocessing and model on the fold's training rows only.
- Mean / standard deviation aggregation of fold metrics.
"""

from .cross_validation_engine import (
    CrossValidationEngine,
    CrossValidationResult,
    Fold,
    FoldSet,
    fold_summary,
    make_folds,
)

__all__ = ['CrossValidationEngine', 'CrossValidationResult', 'Fold', 'FoldSet', 'fold_summary', 'make_folds']
