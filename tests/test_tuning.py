"""Tests for parameter sets, grids and grid tuning."""

import math

import pandas as pd
import pytest

from tabdeploy.config.settings import ProjectConfig
from tabdeploy.modeling.data import vfold_cv
from tabdeploy.modeling.models import ModelSpec, decision_tree, rand_forest
from tabdeploy.modeling.params import Param, default_param, is_tune
from tabdeploy.modeling.recipe import Dummy, ImputeMedian, Recipe
from tabdeploy.modeling.tuning import (
    TuneResults,
    default_n_jobs,
    extract_parameter_set,
    finalize_workflow,
    grid_random,
    grid_regular,
    tune_grid,
)
from tabdeploy.modeling.workflow import make_workflow


class TestParams:
    """Tests for tune markers and parameter ranges."""

    def test_is_tune(self) -> None:
        """Test tune marker detection."""
        assert is_tune("tune()")
        assert is_tune(" tune( ) ")
        assert not is_tune("tune")
        assert not is_tune(3)

    def test_default_param(self) -> None:
        """Test default ranges."""
        param = default_param("cost_complexity", "model__ccp_alpha")
        assert param.log is True
        assert param.low == 1e-10

    def test_unknown_param(self) -> None:
        """Test that names without a default range raise error."""
        with pytest.raises(KeyError, match="No default range"):
            default_param("learning_rate", "model__learning_rate")

    def test_cast(self) -> None:
        """Test integer casting rounds."""
        assert Param("min_n", "p", 2, 40, kind="int").cast(3.6) == 4


class TestExtractParameterSet:
    """Tests for collecting tunable parameters."""

    def test_model_and_recipe(self, credit_config: ProjectConfig) -> None:
        """Test that model and recipe markers are both collected."""
        spec = ModelSpec.from_config(credit_config.model)
        recipe = Recipe.from_config(credit_config.recipe)

        params = extract_parameter_set(spec, recipe, credit_config.recipe)

        assert [(p.name, p.path) for p in params] == [
            ("tree_depth", "model__max_depth"),
            ("min_n", "model__min_samples_split"),
            ("under_ratio", "recipe__downsample__under_ratio"),
        ]

    def test_range_override(self) -> None:
        """Test per-name range overrides."""
        spec = decision_tree("regression", tree_depth="tune()")
        (param,) = extract_parameter_set(spec, ranges={"tree_depth": (2, 6)})
        assert (param.low, param.high) == (2, 6)

    def test_mtry_finalized(self) -> None:
        """Test that mtry's upper bound comes from the predictor count."""
        spec = rand_forest("regression", mtry="tune()")
        (param,) = extract_parameter_set(spec, n_predictors=6)
        assert (param.low, param.high) == (1, 6)

    def test_nothing_to_tune(self) -> None:
        """Test that a spec without markers has no parameters."""
        assert extract_parameter_set(decision_tree("regression")) == []


class TestGrids:
    """Tests for candidate grids."""

    @pytest.fixture
    def params(self) -> list[Param]:
        """Integer and log-scale parameters."""
        return [
            Param("tree_depth", "model__max_depth", 1, 15, kind="int"),
            Param("cost_complexity", "model__ccp_alpha", 1e-10, 1e-1, log=True),
        ]

    def test_random_within_range(self, params: list[Param]) -> None:
        """Test that random candidates respect ranges and types."""
        grid = grid_random(params, size=20, seed=1)

        assert len(grid) == 20
        for candidate in grid:
            assert isinstance(candidate["tree_depth"], int)
            assert 1 <= candidate["tree_depth"] <= 15
            assert 1e-10 <= candidate["cost_complexity"] <= 1e-1

    def test_random_reproducible(self, params: list[Param]) -> None:
        """Test that the seed fixes the grid."""
        assert grid_random(params, size=5, seed=7) == grid_random(params, size=5, seed=7)

    def test_random_dedupes(self) -> None:
        """Test that duplicate candidates are dropped."""
        grid = grid_random([Param("min_n", "p", 2, 3, kind="int")], size=30)
        assert sorted(c["min_n"] for c in grid) == [2, 3]

    def test_regular_factorial(self, params: list[Param]) -> None:
        """Test that regular grids cross evenly spaced levels."""
        grid = grid_regular(params, levels=3)

        assert len(grid) == 9
        assert sorted({c["tree_depth"] for c in grid}) == [1, 8, 15]
        costs = sorted({c["cost_complexity"] for c in grid})
        assert costs[1] == pytest.approx(10**-5.5)

    def test_empty_params(self) -> None:
        """Test that no parameters give a single empty candidate."""
        assert grid_random([]) == [{}]
        assert grid_regular([]) == [{}]


class TestTuneGrid:
    """Tests for evaluating candidates over resamples."""

    @pytest.fixture
    def tuned(self, credit_data: pd.DataFrame) -> TuneResults:
        """Tune tree depth of a small credit workflow."""
        recipe = Recipe(steps=[], outcome="status").add(ImputeMedian()).add(Dummy())
        spec = decision_tree("classification", tree_depth="tune()")
        wf = make_workflow(recipe, spec)
        params = extract_parameter_set(spec)
        grid = [{"tree_depth": 1}, {"tree_depth": 3}, {"tree_depth": 6}]
        folds = vfold_cv(credit_data, v=3, strata="status")
        return tune_grid(wf, folds, credit_data, "status", params, grid, n_jobs=1)

    def test_long_metrics(self, tuned: TuneResults) -> None:
        """Test one row per candidate, metric and fold."""
        per_fold = tuned.collect_metrics(summarize=False)

        assert len(per_fold) == 3 * 2 * 3
        assert set(per_fold[".config"]) == {"Model01", "Model02", "Model03"}
        assert set(per_fold["tree_depth"]) == {1, 3, 6}

    def test_summary(self, tuned: TuneResults) -> None:
        """Test summarized metrics per candidate."""
        summary = tuned.collect_metrics()

        assert len(summary) == 6
        assert (summary["n"] == 3).all()
        assert {"tree_depth", ".metric", ".estimator", ".config", "mean", "std_err"} <= set(
            summary.columns
        )

    def test_show_best_sorted(self, tuned: TuneResults) -> None:
        """Test that show_best orders candidates best first."""
        best = tuned.show_best("roc_auc", n=2)

        assert len(best) == 2
        assert best["mean"].is_monotonic_decreasing

    def test_select_best(self, tuned: TuneResults) -> None:
        """Test that the selected candidate matches the top of show_best."""
        best = tuned.select_best("roc_auc")
        top = tuned.show_best("roc_auc", n=1).iloc[0]

        assert best["tree_depth"] == top["tree_depth"]
        assert isinstance(best["tree_depth"], int)
        assert best[".config"] == top[".config"]

    def test_unknown_metric(self, tuned: TuneResults) -> None:
        """Test that ranking by an uncomputed metric raises error."""
        with pytest.raises(ValueError, match="was not computed"):
            tuned.show_best("rmse")

    def test_finalize(self, tuned: TuneResults, credit_data: pd.DataFrame) -> None:
        """Test that finalizing sets the chosen values on a copy."""
        recipe = Recipe(steps=[], outcome="status").add(ImputeMedian()).add(Dummy())
        wf = make_workflow(recipe, decision_tree("classification", tree_depth="tune()"))

        final = finalize_workflow(wf, {"tree_depth": 3, ".config": "Model02"}, tuned.params)

        assert final.model.max_depth == 3
        assert wf.model.max_depth == 30


class TestRegressionRanking:
    """Tests for metric direction when ranking."""

    def test_lower_rmse_first(self) -> None:
        """Test that rmse ranks ascending."""
        metrics = pd.DataFrame(
            {
                "min_n": [2, 2, 10, 10],
                ".config": ["Model01", "Model01", "Model02", "Model02"],
                "id": ["Fold01", "Fold02"] * 2,
                ".metric": ["rmse"] * 4,
                ".estimator": ["standard"] * 4,
                ".estimate": [5.0, 7.0, 2.0, 4.0],
            }
        )
        results = TuneResults(
            metrics=metrics,
            params=[Param("min_n", "model__min_samples_split", 2, 40, kind="int")],
            metric_names=["rmse"],
        )

        best = results.select_best()

        assert best == {"min_n": 10, ".config": "Model02"}
        assert results.show_best()["mean"].tolist() == [3.0, 6.0]

    def test_all_failed(self) -> None:
        """Test that selecting from failed candidates raises error."""
        metrics = pd.DataFrame(
            {
                "min_n": [2],
                ".config": ["Model01"],
                "id": ["Fold01"],
                ".metric": ["rmse"],
                ".estimator": ["standard"],
                ".estimate": [math.nan],
            }
        )
        results = TuneResults(
            metrics=metrics,
            params=[Param("min_n", "model__min_samples_split", 2, 40, kind="int")],
            metric_names=["rmse"],
        )
        with pytest.raises(ValueError, match="No successful candidates"):
            results.select_best()


def test_default_n_jobs() -> None:
    """Test that at least one worker is used."""
    assert default_n_jobs() >= 1
