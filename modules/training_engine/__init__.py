"""
Training Engine Module
======================

Responsibility:
- Resolves formulas into feature lists and builds design matrices.
- Instantiates Predictors via ModelFactory and fits them.
- Returns immutable Model objects and persists them (.joblib) with metadata (.json).
"""

from .model import Model, build_design_matrix, learn_categorical_levels
from .training_engine import TrainingEngine, load_model

__all__ = ['Model', 'TrainingEngine', 'build_design_matrix', 'learn_categorical_levels', 'load_model']
