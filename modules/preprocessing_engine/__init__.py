"""
Preprocessing Engine Module
===========================

Responsibility:
- Correlation filtering over an explicitly configured column scope.
- Centering and scaling with statistics learned from training data only.
- Frozen FittedPipeline objects that replay the transform without leakage.
"""

from .preprocessing_engine import PreprocessingEngine, FittedPipeline, find_correlated_columns

__all__ = ['PreprocessingEngine', 'FittedPipeline', 'find_correlated_columns']
