"""
Hyperparameter tuning over resamples.

Candidates are plain dicts keyed by parameter name. Each candidate becomes
a singleton grid for scikit-learn's GridSearchCV, so random and regular
grids run through the same search. Results are kept in long form and
ranked with the metric's direction (rmse and mae: lower is better).
"""

import itertools
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import joblib
import numpy as np
import pandas as pd
from sklearn.base import clone
from sklearn.model_selection import GridSearchCV

from tabdeploy.config.settings import RecipeConfig
from tabdeploy.evaluation.metrics import LOWER_IS_BETTER, default_metrics, make_scorers
from tabdeploy.modeling.data import Resamples, split_outcome
from tabdeploy.modeling.models import ModelSpec
from tabdeploy.modeling.params import Param, default_param
from tabdeploy.modeling.recipe import Recipe
from tabdeploy.modeling.workflow import Workflow
from tabdeploy.utils.logging import get_logger

log = get_logger(__name__)

Candidate = dict[str, Any]


def default_n_jobs() -> int:
    """Available cores minus one, never below one."""
    return max(1, joblib.cpu_count() - 1)


def extract_parameter_set(
    spec: ModelSpec,
    recipe: Recipe | None = None,
    recipe_config: RecipeConfig | None = None,
    *,
    ranges: Mapping[str, Sequence[float]] | None = None,
    n_predictors: int | None = None,
) -> list[Param]:
    """
    Collect the parameters marked for tuning in a model spec and recipe.

    Args:
        spec: Model specification.
        recipe: Recipe built from ``recipe_config``.
        recipe_config: Recipe configuration holding the tune markers.
        ranges: Per-name (low, high) overrides.
        n_predictors: Number of predictors, used as the upper bound of mtry.

    Returns:
        Parameters with workflow paths (``model__...``, ``recipe__...``).

    Raises:
        ValueError: If two tunable parameters share a name.
    """
    pairs = list(spec.tunable_args())
    if recipe is not None and recipe_config is not None:
        pairs.extend((name, f"recipe__{path}") for name, path in recipe.tunable(recipe_config))

    ranges = ranges or {}
    params: list[Param] = []
    for name, path in pairs:
        param = default_param(name, path)
        if name == "mtry" and n_predictors is not None:
            param = param.with_range(1, max(1, n_predictors))
        if name in ranges:
            low, high = ranges[name]
            param = param.with_range(low, high)
        params.append(param)

    names = [p.name for p in params]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        msg = f"Tunable parameter names must be unique, got duplicates: {duplicates}"
        raise ValueError(msg)

    log.debug("Extracted parameter set", params=names)
    return params


def _dedupe(candidates: list[Candidate]) -> list[Candidate]:
    seen: set[tuple[Any, ...]] = set()
    unique = []
    for candidate in candidates:
        key = tuple(sorted(candidate.items()))
        if key not in seen:
            seen.add(key)
            unique.append(candidate)
    return unique


def _sample(param: Param, rng: np.random.Generator) -> int | float:
    if param.log:
        value = 10 ** rng.uniform(np.log10(param.low), np.log10(param.high))
        return param.cast(value)
    if param.kind == "int":
        return int(rng.integers(int(param.low), int(param.high), endpoint=True))
    return param.cast(rng.uniform(param.low, param.high))


def grid_random(params: Sequence[Param], size: int = 50, seed: int | None = 42) -> list[Candidate]:
    """
    Random candidates drawn independently within each parameter's range.

    Duplicate candidates (likely with small integer ranges) are dropped, so
    fewer than ``size`` may be returned.
    """
    if not params:
        return [{}]
    rng = np.random.default_rng(seed)
    candidates = [{p.name: _sample(p, rng) for p in params} for _ in range(size)]
    return _dedupe(candidates)


def grid_regular(params: Sequence[Param], levels: int = 3) -> list[Candidate]:
    """Full factorial of evenly spaced levels per parameter."""
    if not params:
        return [{}]
    axes = []
    for p in params:
        if p.log:
            values = np.logspace(np.log10(p.low), np.log10(p.high), levels)
        else:
            values = np.linspace(p.low, p.high, levels)
        axes.append([p.cast(v) for v in values])

    candidates = [
        {p.name: value for p, value in zip(params, combo)} for combo in itertools.product(*axes)
    ]
    return _dedupe(candidates)


def _config_ids(n: int) -> list[str]:
    width = max(2, len(str(n)))
    return [f"Model{i + 1:0{width}d}" for i in range(n)]


def _to_paths(candidate: Mapping[str, Any], params: Sequence[Param]) -> dict[str, Any]:
    lookup = {p.name: p.path for p in params}
    paths = {}
    for key, value in candidate.items():
        if key.startswith("."):
            continue
        paths[lookup.get(key, key)] = value
    return paths


@dataclass
class TuneResults:
    """
    Resampled metrics for every tuning candidate.

    Attributes:
        metrics: Long frame: parameter columns, .config, id, .metric,
            .estimator, .estimate.
        params: The tuned parameters.
        metric_names: Metric set, first entry is the default for ranking.
        candidates: Candidates in evaluation order.
    """

    metrics: pd.DataFrame
    params: list[Param]
    metric_names: list[str]
    candidates: list[Candidate] = field(default_factory=list)

    @property
    def param_names(self) -> list[str]:
        return [p.name for p in self.params]

    def collect_metrics(self, *, summarize: bool = True) -> pd.DataFrame:
        """
        Metrics per candidate.

        Args:
            summarize: Average over folds (mean, n, std_err) instead of
                returning one row per fold.
        """
        if not summarize:
            return self.metrics.copy()
        by = [*self.param_names, ".metric", ".estimator", ".config"]
        grouped = self.metrics.groupby(by, sort=False, dropna=False)[".estimate"]
        summary = grouped.agg(mean="mean", n="count", std="std").reset_index()
        summary["std_err"] = summary["std"] / np.sqrt(summary["n"])
        return summary.drop(columns=["std"])

    def _check_metric(self, metric: str | None) -> str:
        metric = metric or self.metric_names[0]
        if metric not in self.metric_names:
            msg = f"Metric '{metric}' was not computed. Available: {', '.join(self.metric_names)}"
            raise ValueError(msg)
        return metric

    def show_best(self, metric: str | None = None, n: int = 5) -> pd.DataFrame:
        """Top ``n`` candidates for a metric, best first."""
        metric = self._check_metric(metric)
        summary = self.collect_metrics()
        summary = summary[summary[".metric"] == metric]
        ascending = metric in LOWER_IS_BETTER
        summary = summary.sort_values("mean", ascending=ascending, na_position="last", kind="stable")
        return summary.head(n).reset_index(drop=True)

    def select_best(self, metric: str | None = None) -> Candidate:
        """Best candidate's parameters, plus its ``.config`` id."""
        best = self.show_best(metric, n=1)
        if best.empty or pd.isna(best.loc[0, "mean"]):
            msg = "No successful candidates to select from"
            raise ValueError(msg)
        row = best.iloc[0]
        selected: Candidate = {name: _plain(row[name]) for name in self.param_names}
        selected[".config"] = row[".config"]
        return selected


def _plain(value: Any) -> Any:
    """Convert numpy scalars to Python scalars."""
    return value.item() if isinstance(value, np.generic) else value


def tune_grid(
    workflow: Workflow,
    resamples: Resamples,
    data: pd.DataFrame,
    outcome: str,
    params: Sequence[Param],
    grid: Sequence[Candidate],
    metrics: Sequence[str] | None = None,
    n_jobs: int | None = None,
) -> TuneResults:
    """
    Evaluate every candidate on every resample.

    Args:
        workflow: Unfitted workflow with tunable parameters at defaults.
        resamples: Folds over ``data``.
        data: Training table including the outcome.
        outcome: Outcome column.
        params: Tuned parameters (maps names to workflow paths).
        grid: Candidate dicts from grid_random or grid_regular.
        metrics: Metric names (defaults to the workflow mode's set).
        n_jobs: Parallel jobs (default: cores minus one).

    Returns:
        TuneResults in long form.
    """
    metrics = list(metrics) if metrics is not None else default_metrics(workflow.mode)
    n_jobs = default_n_jobs() if n_jobs is None else n_jobs
    candidates = [dict(c) for c in grid]
    X, y = split_outcome(data, outcome)

    param_grid = [
        {path: [value] for path, value in _to_paths(c, params).items()} for c in candidates
    ]

    log.info(
        "Tuning workflow",
        n_candidates=len(candidates),
        n_folds=len(resamples),
        metrics=metrics,
        n_jobs=n_jobs,
    )

    search = GridSearchCV(
        workflow,
        param_grid=param_grid,
        scoring=make_scorers(metrics),
        cv=resamples,
        refit=False,
        n_jobs=n_jobs,
        error_score=np.nan,
    )
    search.fit(X, y)
    cv = search.cv_results_

    # cv_results_ lists candidates in ParameterGrid order, which follows param_grid
    config_ids = _config_ids(len(candidates))
    fold_ids = resamples.ids
    rows = []
    for i, candidate in enumerate(candidates):
        for metric in metrics:
            for k, fold_id in enumerate(fold_ids):
                rows.append(
                    {
                        **{p.name: candidate.get(p.name) for p in params},
                        ".config": config_ids[i],
                        "id": fold_id,
                        ".metric": metric,
                        ".estimator": "standard",
                        ".estimate": float(cv[f"split{k}_test_{metric}"][i]),
                    }
                )

    n_failed = int(np.isnan(np.asarray(cv[f"mean_test_{metrics[0]}"], dtype=float)).sum())
    if n_failed:
        log.warning("Some candidates failed on at least one fold", n_failed=n_failed)

    results = TuneResults(
        metrics=pd.DataFrame(rows),
        params=list(params),
        metric_names=metrics,
        candidates=candidates,
    )
    log.info("Tuning complete", n_candidates=len(candidates), n_failed=n_failed)
    return results


def finalize_workflow(
    workflow: Workflow,
    best: Mapping[str, Any],
    params: Sequence[Param] = (),
) -> Workflow:
    """
    Clone a workflow with chosen parameter values set.

    Args:
        workflow: Workflow with tunable parameters at defaults.
        best: Candidate from ``select_best`` (names or workflow paths as keys).
        params: Parameters mapping names to paths.

    Returns:
        Unfitted workflow with the parameters set.
    """
    finalized = clone(workflow)
    finalized.set_params(**_to_paths(best, params))
    log.debug("Finalized workflow", params=dict(best))
    return finalized
