"""Tests for preprocessing recipes."""

import numpy as np
import pandas as pd
import pytest
from sklearn.base import clone

from tabdeploy.config.loader import config_from_dict
from tabdeploy.config.settings import ProjectConfig
from tabdeploy.modeling.recipe import (
    Downsample,
    Dummy,
    ImputeMedian,
    ImputeMode,
    LogTransform,
    NearZeroVariance,
    Normalize,
    Novel,
    Other,
    Recipe,
    Unknown,
    YeoJohnson,
    bake,
    resolve_columns,
)


@pytest.fixture
def mixed() -> pd.DataFrame:
    """Small frame with numeric and nominal predictors."""
    return pd.DataFrame(
        {
            "x": [1.0, 2.0, np.nan, 4.0, 5.0, 6.0],
            "n": [10, 20, 30, 40, 50, 60],
            "color": ["red", "blue", None, "red", "green", "red"],
        }
    )


class TestResolveColumns:
    """Tests for column selectors."""

    def test_selectors(self, mixed: pd.DataFrame) -> None:
        """Test the built-in selectors."""
        assert resolve_columns("all_numeric_predictors", mixed) == ["x", "n"]
        assert resolve_columns("all_nominal_predictors", mixed) == ["color"]
        assert resolve_columns("all_predictors", mixed) == ["x", "n", "color"]

    def test_explicit_columns(self, mixed: pd.DataFrame) -> None:
        """Test explicit column lists and single names."""
        assert resolve_columns(["n", "x"], mixed) == ["n", "x"]
        assert resolve_columns("color", mixed) == ["color"]

    def test_missing_columns(self, mixed: pd.DataFrame) -> None:
        """Test that unknown columns raise error."""
        with pytest.raises(ValueError, match="Columns not found"):
            resolve_columns(["x", "y"], mixed)
        with pytest.raises(ValueError, match="Unknown selector"):
            resolve_columns("all_things", mixed)


class TestColumnSteps:
    """Tests for individual column steps."""

    def test_impute_median_uses_training_median(self, mixed: pd.DataFrame) -> None:
        """Test that medians learned on training data fill new data."""
        step = ImputeMedian().fit(mixed)
        new = pd.DataFrame({"x": [np.nan], "n": [np.nan], "color": ["red"]})
        out = step.transform(new)

        assert out.loc[0, "x"] == 4.0
        assert out.loc[0, "n"] == 35.0

    def test_impute_mode(self, mixed: pd.DataFrame) -> None:
        """Test that missing levels become the most frequent level."""
        out = ImputeMode().fit_transform(mixed)
        assert out.loc[2, "color"] == "red"

    def test_log_with_offset(self) -> None:
        """Test log(x + offset)."""
        df = pd.DataFrame({"a": [0.0, np.e - 1]})
        out = LogTransform(offset=1).fit_transform(df)
        np.testing.assert_allclose(out["a"], [0.0, 1.0])

    def test_log_base(self) -> None:
        """Test a non-default base."""
        out = LogTransform(base=10).fit_transform(pd.DataFrame({"a": [10.0, 100.0]}))
        np.testing.assert_allclose(out["a"], [1.0, 2.0])

    def test_normalize_training_stats(self, mixed: pd.DataFrame) -> None:
        """Test that new data is scaled with training mean and sd."""
        step = Normalize(columns=["n"]).fit(mixed)
        train = step.transform(mixed)
        assert train["n"].mean() == pytest.approx(0.0)
        assert train["n"].std() == pytest.approx(1.0)

        new = step.transform(pd.DataFrame({"x": [0.0], "n": [35.0], "color": ["red"]}))
        assert new.loc[0, "n"] == pytest.approx(0.0)

    def test_normalize_constant_column(self) -> None:
        """Test that constant columns are centred without dividing by zero."""
        out = Normalize().fit_transform(pd.DataFrame({"c": [3.0, 3.0, 3.0]}))
        assert (out["c"] == 0.0).all()

    def test_yeo_johnson_reduces_skew(self) -> None:
        """Test that a skewed column becomes more symmetric."""
        rng = np.random.default_rng(0)
        df = pd.DataFrame({"a": rng.exponential(2.0, 500)})
        out = YeoJohnson().fit_transform(df)
        assert abs(out["a"].skew()) < abs(df["a"].skew())

    def test_novel_maps_unseen_levels(self, mixed: pd.DataFrame) -> None:
        """Test that levels unseen in training become 'new'."""
        step = Novel().fit(mixed)
        out = step.transform(pd.DataFrame({"x": [1.0], "n": [1], "color": ["purple"]}))
        assert out.loc[0, "color"] == "new"
        assert "new" in out["color"].cat.categories

    def test_other_pools_rare_levels(self) -> None:
        """Test that levels under the threshold are pooled."""
        df = pd.DataFrame({"z": ["a"] * 18 + ["b"] * 1 + ["c"] * 1})
        out = Other(threshold=0.1).fit_transform(df)
        assert list(out["z"].cat.categories) == ["a", "other"]
        assert (out["z"] == "other").sum() == 2

    def test_other_count_threshold(self) -> None:
        """Test that a threshold of 1 or more is a minimum count."""
        df = pd.DataFrame({"z": ["a"] * 5 + ["b"] * 3 + ["c"]})
        out = Other(threshold=3).fit_transform(df)
        assert set(out["z"]) == {"a", "b", "other"}

    def test_unknown_fills_missing(self, mixed: pd.DataFrame) -> None:
        """Test that missing nominal values become 'unknown'."""
        out = Unknown().fit_transform(mixed)
        assert out.loc[2, "color"] == "unknown"
        assert out["color"].notna().all()

    def test_dummy_reference_level(self, mixed: pd.DataFrame) -> None:
        """Test that the first level is the reference."""
        step = Dummy().fit(mixed)
        out = step.transform(mixed)

        assert "color" not in out.columns
        assert step.get_feature_names_out() == ["color_green", "color_red"]
        assert out.loc[0, "color_red"] == 1.0
        assert out.loc[1, ["color_green", "color_red"]].sum() == 0.0
        assert np.isnan(out.loc[2, "color_red"])

    def test_dummy_one_hot(self, mixed: pd.DataFrame) -> None:
        """Test one-hot encoding keeps every level."""
        step = Dummy(one_hot=True).fit(mixed)
        assert step.get_feature_names_out() == ["color_blue", "color_green", "color_red"]

    def test_dummy_unseen_level_all_zero(self, mixed: pd.DataFrame) -> None:
        """Test that unseen levels produce all-zero indicators."""
        step = Dummy().fit(mixed)
        out = step.transform(pd.DataFrame({"x": [1.0], "n": [1], "color": ["purple"]}))
        assert out.loc[0, ["color_green", "color_red"]].sum() == 0.0

    def test_nzv_removes_constant_and_rare(self) -> None:
        """Test that zero and near-zero variance columns are removed."""
        df = pd.DataFrame(
            {
                "constant": [1.0] * 100,
                "rare": [0.0] * 99 + [1.0],
                "useful": np.arange(100.0),
            }
        )
        step = NearZeroVariance().fit(df)
        assert step.removed_ == ["constant", "rare"]
        assert list(step.transform(df).columns) == ["useful"]

    def test_empty_selection_is_noop(self) -> None:
        """Test that a step whose selector matches nothing leaves the frame as is."""
        numeric = pd.DataFrame({"a": [1.0, 2.0, 3.0], "b": [4, 5, 6]})
        step = Dummy().fit(numeric)

        assert step.columns_ == []
        pd.testing.assert_frame_equal(step.transform(numeric), numeric)

        recipe = Recipe(steps=[], outcome=None).add(Unknown()).add(Dummy()).fit(numeric)
        pd.testing.assert_frame_equal(bake(recipe, numeric), numeric)


class TestDownsample:
    """Tests for the downsampling row step."""

    def test_balances_classes(self) -> None:
        """Test that the majority class is cut to the minority count."""
        X = pd.DataFrame({"a": np.arange(30)})
        y = pd.Series(["good"] * 24 + ["bad"] * 6)
        Xd, yd = Downsample(under_ratio=1.0).fit_resample(X, y)

        assert yd.value_counts().to_dict() == {"good": 6, "bad": 6}
        assert list(Xd.index) == list(yd.index)

    def test_under_ratio(self) -> None:
        """Test that under_ratio allows a multiple of the minority count."""
        X = pd.DataFrame({"a": np.arange(30)})
        y = pd.Series(["good"] * 24 + ["bad"] * 6)
        _, yd = Downsample(under_ratio=2.0).fit_resample(X, y)
        assert yd.value_counts()["good"] == 12

    def test_numeric_outcome_rejected(self) -> None:
        """Test that numeric outcomes cannot be downsampled."""
        X = pd.DataFrame({"a": [1, 2, 3]})
        with pytest.raises(ValueError, match="categorical outcome"):
            Downsample().fit_resample(X, pd.Series([1.0, 2.0, 3.0]))


class TestRecipe:
    """Tests for recipe prep and bake."""

    def test_add_names_steps(self) -> None:
        """Test automatic step names with duplicates suffixed."""
        recipe = Recipe(steps=[]).add(Normalize()).add(Normalize()).add(Dummy())
        assert [name for name, _ in recipe.steps] == ["normalize", "normalize_2", "dummy"]

    def test_duplicate_name_rejected(self) -> None:
        """Test that explicit duplicate names raise error."""
        recipe = Recipe(steps=[]).add(Normalize(), name="scale")
        with pytest.raises(ValueError, match="Duplicate step name"):
            recipe.add(Dummy(), name="scale")

    def test_outcome_never_selected(self, housing_data: pd.DataFrame) -> None:
        """Test that the outcome column is dropped before steps run."""
        recipe = Recipe(steps=[], outcome="sale_price").add(Normalize())
        out = recipe.fit_transform(housing_data)
        assert "sale_price" not in out.columns

    def test_bake_skips_row_steps(self, credit_data: pd.DataFrame) -> None:
        """Test that downsampling only applies while fitting."""
        recipe = (
            Recipe(steps=[], outcome="status")
            .add(ImputeMedian())
            .add(Dummy())
            .add(Downsample())
        )
        X = credit_data.drop(columns=["status"])
        Xt, yt = recipe.fit_resample(X, credit_data["status"])

        assert len(Xt) < len(credit_data)
        assert yt.value_counts().nunique() == 1
        assert len(bake(recipe, X)) == len(credit_data)

    def test_nested_params(self) -> None:
        """Test that step parameters are addressable as step__param."""
        recipe = Recipe(steps=[]).add(Downsample())
        assert recipe.get_params()["downsample__under_ratio"] == 1.0

        recipe.set_params(downsample__under_ratio=3.0)
        assert recipe.named_steps["downsample"].under_ratio == 3.0

    def test_clone_is_independent(self) -> None:
        """Test that cloning copies steps."""
        recipe = Recipe(steps=[]).add(Downsample(under_ratio=2.0))
        copy = clone(recipe)
        copy.set_params(downsample__under_ratio=4.0)
        assert recipe.named_steps["downsample"].under_ratio == 2.0

    def test_unfitted_bake_raises(self, mixed: pd.DataFrame) -> None:
        """Test that baking before prepping raises."""
        from sklearn.exceptions import NotFittedError

        with pytest.raises(NotFittedError):
            Recipe(steps=[]).add(Normalize()).transform(mixed)


class TestRecipeFromConfig:
    """Tests for building recipes from configuration."""

    def test_from_config(self, credit_config: ProjectConfig) -> None:
        """Test that configured steps are built in order."""
        recipe = Recipe.from_config(credit_config.recipe, outcome="status")

        assert [name for name, _ in recipe.steps] == [
            "impute_median",
            "log",
            "normalize",
            "dummy",
            "downsample",
        ]
        assert recipe.named_steps["log"].offset == 1
        assert recipe.named_steps["log"].columns == ["assets", "debt", "income", "price", "expenses"]

    def test_tunable_paths(self, credit_config: ProjectConfig) -> None:
        """Test that tune() markers become step paths."""
        recipe = Recipe.from_config(credit_config.recipe)
        assert recipe.tunable(credit_config.recipe) == [("under_ratio", "downsample__under_ratio")]

    def test_unknown_step(self) -> None:
        """Test that an unknown step name raises error."""
        config = config_from_dict(
            {
                "project": "demo",
                "dataset": {"source": "x.csv", "outcome": "y"},
                "model": {"mode": "regression"},
                "recipe": ["scale_everything"],
            }
        )
        with pytest.raises(ValueError, match="Unknown recipe step"):
            Recipe.from_config(config.recipe)

    def test_credit_recipe_prep(self, credit_config: ProjectConfig, credit_data: pd.DataFrame) -> None:
        """Test the full credit recipe on training data."""
        recipe = Recipe.from_config(credit_config.recipe, outcome="status")
        Xt, _ = recipe.fit_resample(credit_data, credit_data["status"])

        assert not Xt.isna().any().any()
        assert "home" not in Xt.columns
        assert {"home_owner", "home_parents", "home_rent"} <= set(Xt.columns)
