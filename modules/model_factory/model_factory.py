import abc
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sklearn.base import clone
from sklearn.ensemble import (
    ExtraTreesClassifier,
    ExtraTreesRegressor,
    RandomForestClassifier,
    RandomForestRegressor,
)
from sklearn.linear_model import ElasticNet, LinearRegression, LogisticRegression

from utils import constants
from utils.exceptions import UnsupportedModeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelSpec:
    """Model family, mode, backend engine and engine-neutral hyperparameters."""
    kind: str
    mode: str
    engine: Optional[str] = None
    hyperparameters: Dict[str, Any] = field(default_factory=dict)
    name: Optional[str] = None

    @classmethod
    def from_config(cls, model_cfg: Dict[str, Any]) -> "ModelSpec":
        return cls(
            kind=model_cfg.get('kind'),
            mode=model_cfg.get('mode'),
            engine=model_cfg.get('engine'),
            hyperparameters=dict(model_cfg.get('hyperparameters', {})),
            name=model_cfg.get('name'),
        )

    @property
    def label(self) -> str:
        return self.name or f"{self.kind}_{self.mode}"


class Predictor(abc.ABC):
    """
    Backend-neutral model family.

    Subclasses declare which estimator class implements each (mode, engine)
    pair and how engine-neutral hyperparameter names translate to it. A
    Predictor never holds fitted state: ``fit`` returns a new fitted estimator.
    """

    kind: str = ""
    # mode -> engine -> estimator class; first engine listed is the default
    ENGINES: Dict[str, Dict[str, type]] = {}
    # engine-neutral name -> estimator keyword
    PARAM_ALIASES: Dict[str, str] = {}

    def __init__(self, mode: str, engine: Optional[str] = None,
                 hyperparameters: Optional[Dict[str, Any]] = None, seed: Optional[int] = None):
        if mode not in constants.MODES:
            raise UnsupportedModeError(f"Unknown mode '{mode}'. Available: {list(constants.MODES)}",
                                       kind=self.kind, mode=mode)
        engines = self.ENGINES.get(mode)
        if not engines:
            raise UnsupportedModeError(
                f"Model kind '{self.kind}' does not support mode '{mode}'. "
                f"Supported modes: {sorted(self.ENGINES)}",
                kind=self.kind, mode=mode,
            )
        engine = engine or next(iter(engines))
        if engine not in engines:
            raise UnsupportedModeError(
                f"Engine '{engine}' is not available for {self.kind}/{mode}. Available: {list(engines)}",
                kind=self.kind, mode=mode,
            )

        self.mode = mode
        self.engine = engine
        self.estimator_class = engines[engine]
        self.params = self._translate_params(dict(hyperparameters or {}), seed)

    def _translate_params(self, hyperparameters: Dict[str, Any], seed: Optional[int]) -> Dict[str, Any]:
        params = {}
        for key, value in hyperparameters.items():
            params[self.PARAM_ALIASES.get(key, key)] = value
        if seed is not None:
            params.setdefault('random_state', seed)
        return _filter_params(self.estimator_class, params)

    def build_estimator(self) -> Any:
        return self.estimator_class(**self.params)

    def fit(self, X, y) -> Any:
        """Fit a fresh estimator on (X, y) and return it."""
        estimator = clone(self.build_estimator())
        estimator.fit(X, y)
        return estimator

    def describe(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'mode': self.mode,
            'engine': self.engine,
            'estimator': self.estimator_class.__name__,
            'params': self.params,
        }


class LinearPredictor(Predictor):
    kind = 'linear'
    ENGINES = {
        constants.MODE_REGRESSION: {'ols': LinearRegression, 'elastic_net': ElasticNet},
    }
    PARAM_ALIASES = {'penalty': 'alpha', 'mixture': 'l1_ratio'}


class LogisticPredictor(Predictor):
    kind = 'logistic'
    ENGINES = {
        constants.MODE_CLASSIFICATION: {'lbfgs': LogisticRegression},
    }
    PARAM_ALIASES = {'epochs': 'max_iter'}

    def _translate_params(self, hyperparameters, seed):
        # Regularization strength is the inverse of the penalty amount
        penalty = hyperparameters.pop('penalty', None)
        if penalty is not None:
            if penalty <= 0:
                raise UnsupportedModeError(f"Logistic penalty must be > 0, got {penalty}",
                                           kind=self.kind, mode=self.mode)
            hyperparameters['C'] = 1.0 / penalty
        return super()._translate_params(hyperparameters, seed)


class RandomForestPredictor(Predictor):
    kind = 'random_forest'
    ENGINES = {
        constants.MODE_CLASSIFICATION: {'sklearn': RandomForestClassifier, 'extra_trees': ExtraTreesClassifier},
        constants.MODE_REGRESSION: {'sklearn': RandomForestRegressor, 'extra_trees': ExtraTreesRegressor},
    }
    PARAM_ALIASES = {'trees': 'n_estimators', 'mtry': 'max_features', 'min_n': 'min_samples_split'}


class ModelFactory:
    """
    Factory for creating Predictors with a unified interface.
    Maps a ModelSpec's kind onto the Predictor family that implements it.
    """

    PREDICTORS = {
        LinearPredictor.kind: LinearPredictor,
        LogisticPredictor.kind: LogisticPredictor,
        RandomForestPredictor.kind: RandomForestPredictor,
    }

    @classmethod
    def create(cls, spec: ModelSpec, seed: Optional[int] = None) -> Predictor:
        """
        Create and return an unfitted Predictor for ``spec``.

        Raises:
            UnsupportedModeError: unknown kind, or a kind/mode/engine combination
                the family does not implement.
        """
        predictor_class = cls.PREDICTORS.get(spec.kind)
        if predictor_class is None:
            raise UnsupportedModeError(
                f"Unknown model kind: {spec.kind}. Available: {cls.get_available_kinds()}",
                kind=spec.kind, mode=spec.mode,
            )
        return predictor_class(spec.mode, spec.engine, spec.hyperparameters, seed=seed)

    @classmethod
    def get_available_kinds(cls) -> List[str]:
        """Return list of all supported model kinds."""
        return list(cls.PREDICTORS.keys())

    @classmethod
    def get_supported_modes(cls, kind: str) -> List[str]:
        predictor_class = cls.PREDICTORS.get(kind)
        return sorted(predictor_class.ENGINES) if predictor_class else []


def _filter_params(model_class, params: Dict[str, Any]) -> Dict[str, Any]:
    """
    Remove parameters from `params` that are not accepted by `model_class` constructor.
    """
    sig = inspect.signature(model_class.__init__)

    valid_keys = [
        p.name for p in sig.parameters.values()
        if p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY)
    ]

    # Always allow **kwargs if the model supports it
    has_kwargs = any(p.kind == p.VAR_KEYWORD for p in sig.parameters.values())

    if has_kwargs:
        return params

    # random_state is offered to every estimator; only report user-supplied extras
    dropped = sorted(k for k in params if k not in valid_keys and k != 'random_state')
    if dropped:
        logger.warning(f"{model_class.__name__} does not accept parameter(s) {dropped}; ignoring them.")
    return {k: v for k, v in params.items() if k in valid_keys}
