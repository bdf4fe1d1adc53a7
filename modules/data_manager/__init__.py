"""
Data Manager Module
===================

Responsibility:
- Loading of raw tabular files (CSV, Parquet, Excel) and configured joins.
- Validation of required columns, missing and infinite values.
- Freezing the dataset schema so later stages can detect drift.
"""

from .data_manager import DataManager
from .schema import DatasetSchema

__all__ = ['DataManager', 'DatasetSchema']
