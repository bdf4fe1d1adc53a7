from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from modules.model_factory import Formula, ModelSpec
from utils import constants
from utils.exceptions import ConfigurationError, PredictionError, SchemaMismatchError, UnsupportedModeError


def learn_categorical_levels(df: pd.DataFrame, features: Sequence[str]) -> Dict[str, Tuple[Any, ...]]:
    """Levels observed in training data for every non-numeric feature."""
    levels = {}
    for col in features:
        s = df[col]
        if pd.api.types.is_numeric_dtype(s):
            continue
        observed = set(s.dropna())
        if isinstance(s.dtype, pd.CategoricalDtype):
            levels[col] = tuple(c for c in s.cat.categories if c in observed)
        else:
            levels[col] = tuple(sorted(observed, key=str))
    return levels


def build_design_matrix(df: pd.DataFrame, features: Sequence[str],
                        categorical_levels: Dict[str, Tuple[Any, ...]]) -> pd.DataFrame:
    """
    Numeric matrix for the estimator.

    Categorical features are one-hot encoded against the fixed training levels
    (first level dropped); unseen levels encode as all zeros.
    """
    parts = []
    for col in features:
        s = df[col]
        if col in categorical_levels:
            levels = list(categorical_levels[col])
            # Unseen levels become missing, i.e. an all-zero dummy row
            values = np.where(s.isin(levels).to_numpy(), s.astype(object).to_numpy(), None)
            cat = pd.Categorical(values, categories=levels)
            dummies = pd.get_dummies(cat, prefix=col, prefix_sep='_', drop_first=True, dtype=float)
            dummies.index = df.index
            parts.append(dummies)
        else:
            parts.append(s.astype(float))
    if not parts:
        return pd.DataFrame(index=df.index)
    return pd.concat(parts, axis=1)


@dataclass(frozen=True)
class Model:
    """
    A fitted predictor bound to its spec, formula and training schema.

    Created only by TrainingEngine; there is no way to re-fit it in place.
    """
    spec: ModelSpec
    formula: Formula
    features: Tuple[str, ...]
    design_columns: Tuple[str, ...]
    categorical_levels: Tuple[Tuple[str, Tuple[Any, ...]], ...]
    classes: Tuple[Any, ...]
    n_train: int
    estimator: Any = field(repr=False, compare=False)

    @property
    def mode(self) -> str:
        return self.spec.mode

    @property
    def target(self) -> str:
        return self.formula.target

    @property
    def is_classifier(self) -> bool:
        return self.spec.mode == constants.MODE_CLASSIFICATION

    def design_matrix(self, df: pd.DataFrame) -> pd.DataFrame:
        missing = [c for c in self.features if c not in df.columns]
        if missing:
            raise SchemaMismatchError(missing, context="Prediction input")
        X = build_design_matrix(df, self.features, dict(self.categorical_levels))
        return X.reindex(columns=list(self.design_columns), fill_value=0.0)

    def predict(self, df: pd.DataFrame, output: str = constants.OUTPUT_CLASS):
        """
        Predict for every row of ``df``, preserving its index.

        Parameters:
            output: ``"class"`` for one label/value per row (Series), or
                ``"probability"`` (classification only) for one column per
                training class in fit-time order (DataFrame).
        """
        if output not in (constants.OUTPUT_CLASS, constants.OUTPUT_PROBABILITY):
            raise ConfigurationError(f"Unknown prediction output '{output}'.")
        if output == constants.OUTPUT_PROBABILITY and not self.is_classifier:
            raise UnsupportedModeError(
                f"Probability output requires a classification model; {self.spec.label} is {self.mode}.",
                kind=self.spec.kind, mode=self.mode,
            )

        X = self.design_matrix(df)
        try:
            if output == constants.OUTPUT_CLASS:
                return pd.Series(self.estimator.predict(X), index=df.index, name=constants.PREDICTION_COLUMN)
            proba = self.estimator.predict_proba(X)
        except ValueError as e:
            raise PredictionError(f"Prediction failed for {self.spec.label}: {e}") from e
        return pd.DataFrame(proba, index=df.index, columns=list(self.classes))

    def describe(self) -> Dict[str, Any]:
        return {
            'name': self.spec.label,
            'kind': self.spec.kind,
            'mode': self.mode,
            'engine': self.spec.engine,
            'formula': str(self.formula),
            'features': list(self.features),
            'design_columns': list(self.design_columns),
            'classes': [str(c) for c in self.classes],
            'n_train': self.n_train,
        }
