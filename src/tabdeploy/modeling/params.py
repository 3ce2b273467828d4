"""
Tunable parameter markers and default search ranges.

Arguments in configs or code may be set to ``TUNE`` ("tune()") to defer
their value to a hyperparameter search.
"""

from dataclasses import dataclass, replace
from typing import Any, Literal

TUNE = "tune()"


def is_tune(value: Any) -> bool:
    """Whether a config value marks a parameter for tuning."""
    return isinstance(value, str) and value.strip().replace(" ", "") == TUNE


@dataclass(frozen=True)
class Param:
    """
    A tunable parameter with its search range.

    Attributes:
        name: Name in the modelling vocabulary (e.g. 'tree_depth').
        path: scikit-learn parameter path on a workflow (e.g. 'model__max_depth').
        low: Lower bound (inclusive).
        high: Upper bound (inclusive).
        kind: 'int' or 'float'.
        log: Sample on a log10 scale.
    """

    name: str
    path: str
    low: float
    high: float
    kind: Literal["int", "float"] = "float"
    log: bool = False

    def with_range(self, low: float, high: float) -> "Param":
        """Copy with a different range."""
        return replace(self, low=low, high=high)

    def cast(self, value: float) -> int | float:
        """Cast a sampled value to the parameter's type."""
        if self.kind == "int":
            return int(round(value))
        return float(value)


# name -> (low, high, kind, log)
DEFAULT_RANGES: dict[str, tuple[float, float, Literal["int", "float"], bool]] = {
    "tree_depth": (1, 15, "int", False),
    "min_n": (2, 40, "int", False),
    "cost_complexity": (1e-10, 1e-1, "float", True),
    "trees": (1, 2000, "int", False),
    "mtry": (1, 10, "int", False),  # upper bound is finalized from the data
    "under_ratio": (1.0, 5.0, "float", False),
    "threshold": (0.0, 0.1, "float", False),
    "offset": (0.0, 1.0, "float", False),
}


def default_param(name: str, path: str) -> Param:
    """
    Build a Param with the default range for a vocabulary name.

    Raises:
        KeyError: If no default range exists for the name.
    """
    if name not in DEFAULT_RANGES:
        available = ", ".join(sorted(DEFAULT_RANGES))
        msg = f"No default range for parameter '{name}'. Known: {available}"
        raise KeyError(msg)
    low, high, kind, log = DEFAULT_RANGES[name]
    return Param(name=name, path=path, low=low, high=high, kind=kind, log=log)
