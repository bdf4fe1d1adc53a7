from dataclasses import dataclass
from typing import Dict, Tuple

import pandas as pd

from utils.exceptions import SchemaMismatchError


@dataclass(frozen=True)
class DatasetSchema:
    """Column names and dtype kinds of a loaded dataset, fixed after loading."""
    columns: Tuple[str, ...]
    kinds: Tuple[str, ...]

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "DatasetSchema":
        return cls(
            columns=tuple(df.columns),
            kinds=tuple(_column_kind(df[c]) for c in df.columns),
        )

    def as_dict(self) -> Dict[str, str]:
        return dict(zip(self.columns, self.kinds))

    @property
    def numeric_columns(self) -> Tuple[str, ...]:
        return tuple(c for c, k in zip(self.columns, self.kinds) if k == 'numeric')

    @property
    def categorical_columns(self) -> Tuple[str, ...]:
        return tuple(c for c, k in zip(self.columns, self.kinds) if k == 'categorical')

    def validate(self, df: pd.DataFrame) -> None:
        """
        Check that ``df`` carries every column of the schema with the same kind.

        Raises:
            SchemaMismatchError: listing missing columns, or columns whose kind changed.
        """
        missing = [c for c in self.columns if c not in df.columns]
        if missing:
            raise SchemaMismatchError(missing)

        changed = [
            f"{c} ({k} -> {_column_kind(df[c])})"
            for c, k in zip(self.columns, self.kinds)
            if _column_kind(df[c]) != k
        ]
        if changed:
            raise SchemaMismatchError(changed, context="Dataset column types")


def _column_kind(series: pd.Series) -> str:
    if pd.api.types.is_bool_dtype(series):
        return 'categorical'
    if pd.api.types.is_numeric_dtype(series):
        return 'numeric'
    return 'categorical'
