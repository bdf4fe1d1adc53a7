"""
Model Factory Module
====================

Responsibility:
- Explicit target/feature formulas resolved against a dataset schema.
- Backend-neutral Predictor families (linear, logistic, random forest) with
  interchangeable scikit-learn engines and hyperparameter translation.
- Validation of kind/mode/engine combinations.
"""

from .formula import Formula
from .model_factory import (
    ModelFactory,
    ModelSpec,
    Predictor,
    LinearPredictor,
    LogisticPredictor,
    RandomForestPredictor,
)

__all__ = [
    'Formula',
    'ModelFactory',
    'ModelSpec',
    'Predictor',
    'LinearPredictor',
    'LogisticPredictor',
    'RandomForestPredictor',
]
