"""
Model specifications and engine registry.

A model specification names the kind of model (decision tree, random
forest), its mode and its arguments in the modelling vocabulary. Building a
specification translates it into an unfitted scikit-learn estimator.
"""

from dataclasses import dataclass, field
from typing import Any

from sklearn.base import BaseEstimator
from sklearn.ensemble import RandomForestClassifier, RandomForestRegressor
from sklearn.tree import DecisionTreeClassifier, DecisionTreeRegressor

from tabdeploy.config.settings import ModelMode, ModelSpecConfig
from tabdeploy.modeling.params import is_tune
from tabdeploy.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class EngineInfo:
    """
    Estimator classes and defaults for one kind/engine combination.

    Attributes:
        classification: Estimator class for classification.
        regression: Estimator class for regression.
        defaults: Default arguments per mode, in the modelling vocabulary.
    """

    classification: type[BaseEstimator]
    regression: type[BaseEstimator]
    defaults: dict[str, dict[str, Any]]

    def estimator_class(self, mode: ModelMode) -> type[BaseEstimator]:
        """Estimator class for a mode."""
        return self.classification if mode == "classification" else self.regression


# Vocabulary -> scikit-learn argument names
ARG_TRANSLATION: dict[str, str] = {
    "tree_depth": "max_depth",
    "min_n": "min_samples_split",
    "cost_complexity": "ccp_alpha",
    "trees": "n_estimators",
    "mtry": "max_features",
}

_TREE = EngineInfo(
    classification=DecisionTreeClassifier,
    regression=DecisionTreeRegressor,
    defaults={
        "classification": {"tree_depth": 30, "min_n": 2, "cost_complexity": 0.01},
        "regression": {"tree_depth": 30, "min_n": 2, "cost_complexity": 0.01},
    },
)

_FOREST = EngineInfo(
    classification=RandomForestClassifier,
    regression=RandomForestRegressor,
    defaults={
        # mtry defaults to floor(sqrt(p)) in both modes
        "classification": {"trees": 500, "min_n": 2, "mtry": "sqrt", "n_jobs": -1},
        "regression": {"trees": 500, "min_n": 5, "mtry": "sqrt", "n_jobs": -1},
    },
)

# kind -> engine -> info; the first engine listed is the default
MODEL_REGISTRY: dict[str, dict[str, EngineInfo]] = {
    "decision_tree": {"rpart": _TREE, "sklearn": _TREE},
    "rand_forest": {"ranger": _FOREST, "sklearn": _FOREST},
}


def translate_args(args: dict[str, Any]) -> dict[str, Any]:
    """Translate vocabulary argument names to scikit-learn names."""
    return {ARG_TRANSLATION.get(k, k): v for k, v in args.items()}


@dataclass
class ModelSpec:
    """
    Specification of a model before fitting.

    Attributes:
        kind: 'decision_tree' or 'rand_forest'.
        mode: 'classification' or 'regression'.
        engine: Engine name; defaults to the kind's first engine.
        args: Arguments in the modelling vocabulary; TUNE marks tunable ones.
    """

    kind: str
    mode: ModelMode
    engine: str | None = None
    args: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.kind not in MODEL_REGISTRY:
            available = ", ".join(MODEL_REGISTRY)
            msg = f"Unknown model kind '{self.kind}'. Available: {available}"
            raise KeyError(msg)
        engines = MODEL_REGISTRY[self.kind]
        if self.engine is None:
            self.engine = next(iter(engines))
        if self.engine not in engines:
            available = ", ".join(engines)
            msg = f"Unknown engine '{self.engine}' for {self.kind}. Available: {available}"
            raise KeyError(msg)
        if self.mode not in ("classification", "regression"):
            msg = f"Unknown mode '{self.mode}'"
            raise ValueError(msg)

    @classmethod
    def from_config(cls, config: ModelSpecConfig) -> "ModelSpec":
        """Build a specification from configuration."""
        return cls(
            kind=config.kind,
            mode=config.mode,
            engine=config.engine,
            args=dict(config.args),
        )

    @property
    def info(self) -> EngineInfo:
        """Registry entry for this kind and engine."""
        return MODEL_REGISTRY[self.kind][self.engine]

    def tunable_args(self) -> list[tuple[str, str]]:
        """List (vocabulary name, workflow path) pairs marked for tuning."""
        return [
            (name, f"model__{ARG_TRANSLATION.get(name, name)}")
            for name, value in self.args.items()
            if is_tune(value)
        ]

    def build(self, random_state: int | None = 42) -> BaseEstimator:
        """
        Build an unfitted estimator.

        Tunable arguments keep their defaults until a search sets them.

        Args:
            random_state: Seed for estimators that accept one.

        Returns:
            Unfitted scikit-learn estimator.
        """
        estimator_cls = self.info.estimator_class(self.mode)
        fixed = {k: v for k, v in self.args.items() if not is_tune(v)}
        params = translate_args({**self.info.defaults[self.mode], **fixed})
        if "random_state" in estimator_cls().get_params():
            params.setdefault("random_state", random_state)

        log.debug(
            "Creating model",
            kind=self.kind,
            engine=self.engine,
            mode=self.mode,
            params=params,
        )
        return estimator_cls(**params)

    def __str__(self) -> str:
        return f"{self.kind} ({self.mode}, engine: {self.engine})"


def decision_tree(mode: ModelMode, engine: str = "rpart", **args: Any) -> ModelSpec:
    """Decision tree specification."""
    return ModelSpec(kind="decision_tree", mode=mode, engine=engine, args=args)


def rand_forest(mode: ModelMode, engine: str = "ranger", **args: Any) -> ModelSpec:
    """Random forest specification."""
    return ModelSpec(kind="rand_forest", mode=mode, engine=engine, args=args)


def list_models() -> list[str]:
    """List all available model kinds."""
    return list(MODEL_REGISTRY.keys())
