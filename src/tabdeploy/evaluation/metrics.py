"""
Evaluation metrics for classification and regression workflows.

Metrics follow the usual modelling conventions: ``rsq`` is the squared
correlation between truth and estimate (not the coefficient of
determination), and binary ``roc_auc`` treats the first outcome level as
the event.
"""

from collections.abc import Callable, Sequence
from typing import Any

import numpy as np
import pandas as pd
from sklearn.metrics import accuracy_score, mean_absolute_error, roc_auc_score

from tabdeploy.config.settings import ModelMode
from tabdeploy.utils.logging import get_logger

log = get_logger(__name__)

CLASSIFICATION_METRICS = ["roc_auc", "accuracy"]
REGRESSION_METRICS = ["rmse", "rsq", "mae"]

# Metrics where smaller values are better
LOWER_IS_BETTER = {"rmse", "mae"}


def rmse(truth: Sequence[float], estimate: Sequence[float]) -> float:
    """Root mean squared error."""
    truth_arr = np.asarray(truth, dtype=float)
    estimate_arr = np.asarray(estimate, dtype=float)
    return float(np.sqrt(np.mean((truth_arr - estimate_arr) ** 2)))


def rsq(truth: Sequence[float], estimate: Sequence[float]) -> float:
    """Squared Pearson correlation; NaN when either side is constant."""
    truth_arr = np.asarray(truth, dtype=float)
    estimate_arr = np.asarray(estimate, dtype=float)
    if len(truth_arr) < 2 or np.std(truth_arr) == 0 or np.std(estimate_arr) == 0:
        log.warning("rsq undefined for constant input")
        return float("nan")
    return float(np.corrcoef(truth_arr, estimate_arr)[0, 1] ** 2)


def mae(truth: Sequence[float], estimate: Sequence[float]) -> float:
    """Mean absolute error."""
    return float(mean_absolute_error(truth, estimate))


def accuracy(truth: Sequence[Any], estimate: Sequence[Any]) -> float:
    """Share of correct class predictions."""
    return float(accuracy_score(np.asarray(truth, dtype=object), np.asarray(estimate, dtype=object)))


def roc_auc(
    truth: Sequence[Any],
    probabilities: np.ndarray,
    classes: Sequence[Any],
) -> float:
    """
    Area under the ROC curve.

    Args:
        truth: True class labels.
        probabilities: Class probabilities, one column per class.
        classes: Class labels in column order.

    Returns:
        Binary AUC with the first class as event, or macro one-vs-rest AUC.
    """
    truth_arr = np.asarray(truth, dtype=object)
    probabilities = np.asarray(probabilities, dtype=float)
    classes = list(classes)

    if len(set(truth_arr)) < 2:
        log.warning("roc_auc undefined with a single observed class")
        return float("nan")

    if len(classes) == 2:
        event = classes[0]
        return float(roc_auc_score(truth_arr == event, probabilities[:, 0]))

    return float(
        roc_auc_score(truth_arr, probabilities, multi_class="ovr", average="macro", labels=classes)
    )


def default_metrics(mode: ModelMode) -> list[str]:
    """Default metric set for a mode."""
    return list(CLASSIFICATION_METRICS if mode == "classification" else REGRESSION_METRICS)


def _estimator_label(metric: str, n_classes: int | None) -> str:
    if metric == "roc_auc" and n_classes and n_classes > 2:
        return "macro"
    if metric in {"roc_auc", "accuracy"}:
        return "binary" if (n_classes or 2) <= 2 else "multiclass"
    return "standard"


def compute_metrics(
    truth: Sequence[Any],
    estimate: Sequence[Any],
    mode: ModelMode,
    *,
    probabilities: np.ndarray | None = None,
    classes: Sequence[Any] | None = None,
    metrics: Sequence[str] | None = None,
) -> pd.DataFrame:
    """
    Compute a metric set as a tidy frame.

    Args:
        truth: Observed outcome.
        estimate: Predicted values or classes.
        mode: 'classification' or 'regression'.
        probabilities: Class probabilities (needed for roc_auc).
        classes: Class labels matching the probability columns.
        metrics: Metric names (defaults to the mode's metric set).

    Returns:
        DataFrame with columns .metric, .estimator, .estimate.

    Raises:
        ValueError: If a metric is unknown or lacks its inputs.
    """
    metrics = list(metrics) if metrics is not None else default_metrics(mode)
    n_classes = len(classes) if classes is not None else None

    rows = []
    for name in metrics:
        if name == "rmse":
            value = rmse(truth, estimate)
        elif name == "rsq":
            value = rsq(truth, estimate)
        elif name == "mae":
            value = mae(truth, estimate)
        elif name == "accuracy":
            value = accuracy(truth, estimate)
        elif name == "roc_auc":
            if probabilities is None or classes is None:
                msg = "roc_auc requires class probabilities"
                raise ValueError(msg)
            value = roc_auc(truth, probabilities, classes)
        else:
            msg = f"Unknown metric '{name}'"
            raise ValueError(msg)
        rows.append(
            {
                ".metric": name,
                ".estimator": _estimator_label(name, n_classes),
                ".estimate": value,
            }
        )

    return pd.DataFrame(rows, columns=[".metric", ".estimator", ".estimate"])


def _rmse_scorer(estimator: Any, X: pd.DataFrame, y: pd.Series) -> float:
    return rmse(y, estimator.predict(X))


def _rsq_scorer(estimator: Any, X: pd.DataFrame, y: pd.Series) -> float:
    return rsq(y, estimator.predict(X))


def _mae_scorer(estimator: Any, X: pd.DataFrame, y: pd.Series) -> float:
    return mae(y, estimator.predict(X))


def _accuracy_scorer(estimator: Any, X: pd.DataFrame, y: pd.Series) -> float:
    return accuracy(y, estimator.predict(X))


def _roc_auc_scorer(estimator: Any, X: pd.DataFrame, y: pd.Series) -> float:
    return roc_auc(y, estimator.predict_proba(X), estimator.classes_)


SCORERS: dict[str, Callable[[Any, pd.DataFrame, pd.Series], float]] = {
    "rmse": _rmse_scorer,
    "rsq": _rsq_scorer,
    "mae": _mae_scorer,
    "accuracy": _accuracy_scorer,
    "roc_auc": _roc_auc_scorer,
}


def make_scorers(metrics: Sequence[str]) -> dict[str, Callable[..., float]]:
    """
    Scorer callables for scikit-learn searchers.

    Scores are raw metric values; ranking takes ``LOWER_IS_BETTER`` into
    account instead of negating.

    Raises:
        ValueError: If a metric is unknown.
    """
    unknown = [m for m in metrics if m not in SCORERS]
    if unknown:
        msg = f"Unknown metrics: {unknown}. Available: {', '.join(SCORERS)}"
        raise ValueError(msg)
    return {m: SCORERS[m] for m in metrics}
