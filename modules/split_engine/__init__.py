"""
Split Engine Module
===================

Responsibility:
- Train/test partitioning with an optional stratification column.
- Stratum construction (quantile bins for numeric columns) shared with cross-validation.
- Split balance reporting.
"""

from .split_engine import SplitEngine, split_dataset, make_strata, check_group_sizes

__all__ = ['SplitEngine', 'split_dataset', 'make_strata', 'check_group_sizes']
