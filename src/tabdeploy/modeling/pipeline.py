"""
End-to-end modelling run driven by a project config.

load -> split -> recipe + model -> (tune over resamples) -> last fit ->
deployable model -> (pin)
"""

from contextlib import ExitStack
from dataclasses import dataclass
from typing import Any

import pandas as pd

from tabdeploy.config.settings import ProjectConfig
from tabdeploy.deploy.board import FolderBoard, vetiver_pin_write
from tabdeploy.deploy.vetting import DeployableModel
from tabdeploy.evaluation.tracking import TuningTracker
from tabdeploy.ingestion.datasets import load_dataset
from tabdeploy.modeling.data import DataSplit, initial_split, vfold_cv
from tabdeploy.modeling.models import ModelSpec
from tabdeploy.modeling.params import Param
from tabdeploy.modeling.recipe import Recipe
from tabdeploy.modeling.tuning import (
    Candidate,
    TuneResults,
    extract_parameter_set,
    finalize_workflow,
    grid_random,
    grid_regular,
    tune_grid,
)
from tabdeploy.modeling.workflow import LastFit, Workflow, last_fit, make_workflow
from tabdeploy.utils.logging import get_logger, log_context

log = get_logger(__name__)


@dataclass
class PipelineResult:
    """
    Outcome of a modelling run.

    Attributes:
        split: Train/test split used.
        workflow: Final (unfitted) workflow with chosen parameters.
        fit: Last fit on the training set, evaluated on the test set.
        model: Deployable model wrapping the fitted workflow.
        params: Tuned parameters (empty when not tuning).
        tune_results: Tuning results, if tuning ran.
        best: Selected candidate, if tuning ran.
        version: Pin version, if the model was pinned.
    """

    split: DataSplit
    workflow: Workflow
    fit: LastFit
    model: DeployableModel
    params: list[Param]
    tune_results: TuneResults | None = None
    best: Candidate | None = None
    version: str | None = None

    @property
    def metrics(self) -> pd.DataFrame:
        """Test-set metrics."""
        return self.fit.collect_metrics()


def build_workflow(config: ProjectConfig) -> tuple[Workflow, Recipe, ModelSpec]:
    """Unfitted workflow from the recipe and model sections of a config."""
    recipe = Recipe.from_config(config.recipe, outcome=config.outcome)
    spec = ModelSpec.from_config(config.model)
    workflow = make_workflow(recipe, spec, random_state=config.split.seed)
    log.info("Built workflow", model=str(spec), steps=[name for name, _ in recipe.steps or []])
    return workflow, recipe, spec


def _tune(
    config: ProjectConfig,
    workflow: Workflow,
    params: list[Param],
    split: DataSplit,
    *,
    tracker: TuningTracker | None,
    n_jobs: int | None,
) -> tuple[TuneResults, Candidate]:
    training = split.training()
    resamples = vfold_cv(
        training,
        v=config.resampling.v,
        strata=config.resampling.strata,
        breaks=config.split.breaks,
        seed=config.split.seed,
    )

    if config.tuning.grid == "regular":
        grid = grid_regular(params, levels=config.tuning.levels)
    else:
        grid = grid_random(params, size=config.tuning.size, seed=config.split.seed)

    results = tune_grid(
        workflow,
        resamples,
        training,
        config.outcome,
        params,
        grid,
        n_jobs=n_jobs if n_jobs is not None else config.tuning.n_jobs,
    )
    best = results.select_best(config.tuning.metric)

    if tracker is not None:
        tracker.log_candidates(results.collect_metrics(), results.param_names)
        tracker.log_best(best)

    return results, best


def run_pipeline(
    config: ProjectConfig,
    *,
    data: pd.DataFrame | None = None,
    tune: bool = False,
    pin: bool = False,
    track: bool | None = None,
    n_jobs: int | None = None,
) -> PipelineResult:
    """
    Fit (and optionally tune and pin) the model described by a config.

    Args:
        config: Project configuration.
        data: Modelling table (default: loaded from ``config.dataset``).
        tune: Tune parameters marked ``tune()`` over resamples first.
        pin: Write the deployable model to the configured board.
        track: Log tuning to MLflow (default: ``config.tracking.enabled``).
        n_jobs: Parallel jobs for tuning (default: from config).

    Returns:
        PipelineResult with the last fit and deployable model.
    """
    track = config.tracking.enabled if track is None else track

    with log_context(project=config.project), ExitStack() as stack:
        if data is None:
            data = load_dataset(config.dataset)

        split = initial_split(
            data,
            prop=config.split.prop,
            strata=config.split.strata,
            breaks=config.split.breaks,
            seed=config.split.seed,
        )
        workflow, recipe, spec = build_workflow(config)

        params: list[Param] = []
        results: TuneResults | None = None
        best: Candidate | None = None
        tracker: TuningTracker | None = None
        if tune:
            params = extract_parameter_set(
                spec,
                recipe,
                config.recipe,
                ranges=config.tuning.ranges,
                n_predictors=data.shape[1] - 1,
            )
            if params:
                if track:
                    # Parent run stays open through the last fit
                    tracker = stack.enter_context(TuningTracker(config))
                results, best = _tune(
                    config, workflow, params, split, tracker=tracker, n_jobs=n_jobs
                )
                workflow = finalize_workflow(workflow, best, params)
            else:
                log.warning("Nothing marked for tuning, fitting with defaults")
        elif spec.tunable_args() or recipe.tunable(config.recipe):
            log.info("Parameters marked for tuning use their defaults without --tune")

        fit = last_fit(workflow, split, config.outcome)
        if tracker is not None:
            tracker.log_test_metrics(fit.collect_metrics())

        test_metrics: dict[str, Any] = {
            str(row[".metric"]): float(row[".estimate"])
            for _, row in fit.collect_metrics().iterrows()
        }
        user_meta: dict[str, Any] = {"project": config.project, "test_metrics": test_metrics}
        if best is not None:
            user_meta["tuned"] = {k: v for k, v in best.items() if not k.startswith(".")}

        model = DeployableModel(
            fit.extract_workflow(),
            name=config.deployment.model_name,
            description=config.deployment.description,
            metadata=user_meta,
        )

        version = None
        if pin:
            board = FolderBoard(config.board.path, versioned=config.board.versioned)
            version = vetiver_pin_write(board, model)

    return PipelineResult(
        split=split,
        workflow=workflow,
        fit=fit,
        model=model,
        params=params,
        tune_results=results,
        best=best,
        version=version,
    )
