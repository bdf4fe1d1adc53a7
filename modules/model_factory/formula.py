from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from utils.exceptions import ConfigurationError, SchemaMismatchError


@dataclass(frozen=True)
class Formula:
    """
    Target/feature specification for a model.

    ``features=None`` means "all remaining columns". The formula is resolved
    once against a dataset's columns at fit time; the resolved feature list is
    then frozen inside the fitted model.
    """
    target: str
    features: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        if not self.target:
            raise ConfigurationError("Formula target must be a non-empty column name.")
        if self.features is not None:
            object.__setattr__(self, 'features', tuple(self.features))
            if self.target in self.features:
                raise ConfigurationError(f"Target '{self.target}' cannot also be a feature.")

    @classmethod
    def parse(cls, text: str) -> "Formula":
        """
        Build a Formula from ``"target ~ ."`` or ``"target ~ a + b"``.
        """
        if isinstance(text, Formula):
            return text
        if not isinstance(text, str) or text.count('~') != 1:
            raise ConfigurationError(f"Formula must look like 'target ~ .' or 'target ~ a + b', got {text!r}")

        lhs, rhs = (part.strip() for part in text.split('~'))
        if not lhs or not rhs:
            raise ConfigurationError(f"Formula has an empty side: {text!r}")
        if rhs == '.':
            return cls(target=lhs)

        terms = [t.strip() for t in rhs.split('+')]
        if any(not t for t in terms):
            raise ConfigurationError(f"Formula has an empty term: {text!r}")
        return cls(target=lhs, features=tuple(terms))

    def resolve(self, columns: Iterable[str]) -> List[str]:
        """
        Return the concrete feature list for a dataset with ``columns``.

        Raises:
            SchemaMismatchError: if the target or an explicit feature is absent.
        """
        columns = list(columns)
        required = [self.target] + list(self.features or ())
        missing = [c for c in required if c not in columns]
        if missing:
            raise SchemaMismatchError(missing, context="Formula dataset")

        if self.features is None:
            return [c for c in columns if c != self.target]
        return list(self.features)

    def without(self, columns: Iterable[str]) -> "Formula":
        """
        Formula with ``columns`` removed from an explicit feature list, e.g. the
        columns a fitted preprocessing pipeline dropped. ``target ~ .`` is
        returned unchanged since it resolves against whatever columns remain.
        """
        if self.features is None:
            return self
        removed = set(columns)
        return Formula(self.target, tuple(f for f in self.features if f not in removed))

    def __str__(self) -> str:
        rhs = '.' if self.features is None else ' + '.join(self.features)
        return f"{self.target} ~ {rhs}"
