"""
Workflows: a recipe bundled with a model.

A workflow is a scikit-learn estimator, so it plugs into cross-validation
and hyperparameter searches. Fitting preps the recipe on the training rows
only (including row steps such as downsampling), then fits the model on the
processed table. Predicting bakes new data with the fitted recipe first.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, ClassifierMixin, RegressorMixin, clone
from sklearn.model_selection import cross_validate
from sklearn.utils.validation import check_is_fitted

from tabdeploy.config.settings import ModelMode
from tabdeploy.evaluation.metrics import compute_metrics, default_metrics, make_scorers
from tabdeploy.modeling.data import DataSplit, Resamples, split_outcome
from tabdeploy.modeling.models import ModelSpec
from tabdeploy.modeling.recipe import Recipe, _clean_level
from tabdeploy.utils.logging import get_logger

log = get_logger(__name__)


class Workflow(BaseEstimator):
    """
    Recipe plus model.

    Attributes:
        recipe: Unfitted recipe (None means no preprocessing).
        model: Unfitted scikit-learn estimator.
    """

    mode: ModelMode

    def __init__(self, recipe: Recipe | None = None, model: BaseEstimator | None = None) -> None:
        self.recipe = recipe
        self.model = model

    def fit(self, X: pd.DataFrame, y: pd.Series) -> "Workflow":
        """
        Prep the recipe and fit the model on training data.

        Args:
            X: Training predictors.
            y: Training outcome.

        Returns:
            The fitted workflow.
        """
        if self.model is None:
            msg = "Workflow has no model"
            raise ValueError(msg)

        recipe = clone(self.recipe) if self.recipe is not None else Recipe(steps=[])
        Xt, yt = recipe.fit_resample(X, y)

        model = clone(self.model)
        model.fit(Xt, np.asarray(yt, dtype=object) if self.mode == "classification" else yt)

        self.recipe_ = recipe
        self.model_ = model
        self.ptype_ = recipe._drop_outcome(X).iloc[:0].copy()
        self.outcome_ = getattr(y, "name", None)
        return self

    def _bake(self, X: pd.DataFrame) -> pd.DataFrame:
        check_is_fitted(self, "model_")
        return self.recipe_.transform(X)

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        """Predict outcomes for new data."""
        return self.model_.predict(self._bake(X))

    @property
    def feature_names(self) -> list[str]:
        """Processed feature names seen by the model."""
        check_is_fitted(self, "model_")
        return list(self.recipe_.feature_names_out_)

    def predict_frame(self, X: pd.DataFrame) -> pd.DataFrame:
        """Predictions as a frame with a single ``.pred`` column."""
        return pd.DataFrame({".pred": self.predict(X)}, index=X.index)

    def augment(self, new_data: pd.DataFrame) -> pd.DataFrame:
        """Prediction columns followed by the original columns."""
        preds = self.predict_frame(new_data)
        return pd.concat([preds, new_data], axis=1)


class RegressionWorkflow(RegressorMixin, Workflow):
    """Workflow for a numeric outcome."""

    mode: ModelMode = "regression"


class ClassificationWorkflow(ClassifierMixin, Workflow):
    """Workflow for a categorical outcome."""

    mode: ModelMode = "classification"

    @property
    def classes_(self) -> np.ndarray:
        check_is_fitted(self, "model_")
        return self.model_.classes_

    def predict_proba(self, X: pd.DataFrame) -> np.ndarray:
        """Class probabilities, one column per entry of ``classes_``."""
        return self.model_.predict_proba(self._bake(X))

    def predict_frame(self, X: pd.DataFrame, *, probabilities: bool = False) -> pd.DataFrame:
        """
        Predictions as a frame.

        Args:
            X: New data.
            probabilities: Also return ``.pred_<level>`` columns.

        Returns:
            Frame with ``.pred_class`` and optionally class probabilities.
        """
        out = pd.DataFrame({".pred_class": self.predict(X)}, index=X.index)
        if probabilities:
            proba = self.predict_proba(X)
            for i, level in enumerate(self.classes_):
                out[f".pred_{_clean_level(level)}"] = proba[:, i]
        return out

    def augment(self, new_data: pd.DataFrame) -> pd.DataFrame:
        preds = self.predict_frame(new_data, probabilities=True)
        return pd.concat([preds, new_data], axis=1)


def make_workflow(
    recipe: Recipe | None,
    spec: ModelSpec,
    random_state: int | None = 42,
) -> Workflow:
    """
    Bundle a recipe with a built model specification.

    Args:
        recipe: Preprocessing recipe.
        spec: Model specification; its mode selects the workflow type.
        random_state: Seed passed to the estimator.

    Returns:
        Unfitted workflow.
    """
    workflow_cls = ClassificationWorkflow if spec.mode == "classification" else RegressionWorkflow
    return workflow_cls(recipe=recipe, model=spec.build(random_state=random_state))


def _summarize(per_fold: pd.DataFrame, by: list[str]) -> pd.DataFrame:
    """Mean, count and standard error of fold estimates per group."""
    grouped = per_fold.groupby(by, sort=False, dropna=False)[".estimate"]
    summary = grouped.agg(mean="mean", n="count", std="std").reset_index()
    summary["std_err"] = summary["std"] / np.sqrt(summary["n"])
    return summary.drop(columns=["std"])


@dataclass
class ResampleResults:
    """
    Per-fold metrics from fitting a workflow on resamples.

    Attributes:
        metrics: Long frame with columns id, .metric, .estimator, .estimate.
    """

    metrics: pd.DataFrame

    def collect_metrics(self, *, summarize: bool = True) -> pd.DataFrame:
        """Metrics averaged over folds, or per fold when summarize is False."""
        if not summarize:
            return self.metrics.copy()
        return _summarize(self.metrics, [".metric", ".estimator"])


def fit_resamples(
    workflow: Workflow,
    resamples: Resamples,
    data: pd.DataFrame,
    outcome: str,
    metrics: Sequence[str] | None = None,
    n_jobs: int | None = 1,
) -> ResampleResults:
    """
    Fit a workflow on each analysis set and score its assessment set.

    Args:
        workflow: Unfitted workflow.
        resamples: Folds over ``data``.
        data: Training table including the outcome.
        outcome: Outcome column.
        metrics: Metric names (defaults to the workflow mode's set).
        n_jobs: Parallel jobs.

    Returns:
        ResampleResults with per-fold metrics.
    """
    metrics = list(metrics) if metrics is not None else default_metrics(workflow.mode)
    X, y = split_outcome(data, outcome)

    scores = cross_validate(
        workflow,
        X,
        y,
        cv=resamples,
        scoring=make_scorers(metrics),
        n_jobs=n_jobs,
        error_score="raise",
    )

    rows = []
    for metric in metrics:
        for fold_id, value in zip(resamples.ids, scores[f"test_{metric}"]):
            rows.append(
                {"id": fold_id, ".metric": metric, ".estimator": "standard", ".estimate": value}
            )
    log.info("Fitted resamples", n_folds=len(resamples), metrics=metrics)
    return ResampleResults(metrics=pd.DataFrame(rows))


@dataclass
class LastFit:
    """
    Result of fitting on the training set and evaluating on the test set.

    Attributes:
        workflow: Workflow fitted on the full training set.
        metrics: Test-set metrics (.metric, .estimator, .estimate).
        predictions: Test-set predictions with .row and the observed outcome.
        split: The split used.
    """

    workflow: Workflow
    metrics: pd.DataFrame
    predictions: pd.DataFrame
    split: DataSplit | None = field(default=None, repr=False)

    def collect_metrics(self) -> pd.DataFrame:
        """Test-set metrics."""
        return self.metrics.copy()

    def collect_predictions(self) -> pd.DataFrame:
        """Test-set predictions."""
        return self.predictions.copy()

    def extract_workflow(self) -> Workflow:
        """The fitted workflow, ready for deployment."""
        return self.workflow


def last_fit(
    workflow: Workflow,
    split: DataSplit,
    outcome: str,
    metrics: Sequence[str] | None = None,
) -> LastFit:
    """
    Fit a finalized workflow on the training set and evaluate on the test set.

    Args:
        workflow: Workflow with all parameters set.
        split: Initial split.
        outcome: Outcome column.
        metrics: Metric names (defaults to the workflow mode's set).

    Returns:
        LastFit with the fitted workflow, test metrics and predictions.
    """
    X_train, y_train = split_outcome(split.training(), outcome)
    X_test, y_test = split_outcome(split.testing(), outcome)

    fitted = clone(workflow).fit(X_train, y_train)

    if isinstance(fitted, ClassificationWorkflow):
        preds = fitted.predict_frame(X_test, probabilities=True)
        scores = compute_metrics(
            y_test,
            preds[".pred_class"],
            "classification",
            probabilities=fitted.predict_proba(X_test),
            classes=fitted.classes_,
            metrics=metrics,
        )
    else:
        preds = fitted.predict_frame(X_test)
        scores = compute_metrics(y_test, preds[".pred"], "regression", metrics=metrics)

    preds.insert(0, ".row", np.asarray(split.test_idx) + 1)
    preds[outcome] = y_test.to_numpy()

    log.info(
        "Last fit complete",
        n_train=len(X_train),
        n_test=len(X_test),
        **{row[".metric"]: round(float(row[".estimate"]), 4) for _, row in scores.iterrows()},
    )
    return LastFit(workflow=fitted, metrics=scores, predictions=preds, split=split)
