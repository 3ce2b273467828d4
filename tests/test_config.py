"""Tests for configuration system."""

from pathlib import Path
from typing import Any

import pytest
from pydantic import ValidationError

from tabdeploy.config import (
    DatasetKind,
    DeploymentConfig,
    ProjectConfig,
    SplitConfig,
    TuningConfig,
    load_config,
)
from tabdeploy.config.loader import config_from_dict


def _minimal() -> dict[str, Any]:
    return {
        "project": "demo",
        "dataset": {"source": "data.csv", "outcome": "y"},
        "model": {"mode": "regression"},
    }


class TestConfigFromDict:
    """Tests for building a ProjectConfig from a mapping."""

    def test_minimal_config(self) -> None:
        """Test that a minimal config fills in defaults."""
        config = config_from_dict(_minimal())

        assert isinstance(config, ProjectConfig)
        assert config.outcome == "y"
        assert config.mode == "regression"
        assert config.dataset.kind == DatasetKind.GENERIC
        assert config.split.prop == 0.75
        assert config.resampling.v == 10
        assert config.tuning.grid == "random"
        assert config.board.versioned is True

    def test_model_name_defaults_to_project(self) -> None:
        """Test that the pin name falls back to the project name."""
        config = config_from_dict(_minimal())
        assert config.deployment.model_name == "demo"

    def test_experiment_name_defaults_to_project(self) -> None:
        """Test MLflow experiment name derivation."""
        config = config_from_dict(_minimal())
        assert config.experiment_name == "demo"

        data = {**_minimal(), "tracking": {"experiment_name": "other"}}
        assert config_from_dict(data).experiment_name == "other"

    def test_missing_project(self) -> None:
        """Test that a missing project name raises error."""
        data = _minimal()
        del data["project"]
        with pytest.raises(ValueError, match="project"):
            config_from_dict(data)

    def test_missing_outcome(self) -> None:
        """Test that a missing outcome raises error."""
        data = _minimal()
        data["dataset"] = {"source": "data.csv"}
        with pytest.raises(ValueError, match="dataset.outcome"):
            config_from_dict(data)

    def test_missing_mode(self) -> None:
        """Test that a missing model mode raises error."""
        data = _minimal()
        data["model"] = {"kind": "rand_forest"}
        with pytest.raises(ValueError, match="model.mode"):
            config_from_dict(data)

    def test_recipe_as_bare_list(self) -> None:
        """Test recipe given as a list with string and mapping entries."""
        data = {
            **_minimal(),
            "recipe": ["normalize", {"step": "dummy", "columns": "all_nominal_predictors"}],
        }
        config = config_from_dict(data)

        assert [s.step for s in config.recipe.steps] == ["normalize", "dummy"]
        assert config.recipe.steps[1].columns == "all_nominal_predictors"

    def test_config_is_frozen(self) -> None:
        """Test that configs cannot be mutated."""
        config = config_from_dict(_minimal())
        with pytest.raises(ValidationError):
            config.project = "changed"  # type: ignore[misc]


class TestSectionValidation:
    """Tests for per-section validation rules."""

    def test_split_prop_bounds(self) -> None:
        """Test that prop must lie strictly between 0 and 1."""
        with pytest.raises(ValidationError):
            SplitConfig(prop=1.0)

    def test_tuning_range_must_increase(self) -> None:
        """Test that ranges with low > high are rejected."""
        with pytest.raises(ValidationError, match="low <= high"):
            TuningConfig(ranges={"tree_depth": (10, 2)})

    def test_model_name_rejects_paths(self) -> None:
        """Test that pin names cannot contain path separators."""
        with pytest.raises(ValidationError, match="Invalid model name"):
            DeploymentConfig(model_name="../evil")

    def test_model_name_field(self) -> None:
        """Test that model_name is accepted as a regular field."""
        assert DeploymentConfig(model_name="house_prices").model_name == "house_prices"


class TestLoadConfig:
    """Tests for YAML loading with inheritance and interpolation."""

    def test_base_config_merge(self, tmp_path: Path) -> None:
        """Test that base.yaml in the same directory is merged underneath."""
        (tmp_path / "base.yaml").write_text(
            "split:\n  prop: 0.8\n  seed: 7\nresampling:\n  v: 5\n", encoding="utf-8"
        )
        (tmp_path / "project.yaml").write_text(
            "project: demo\n"
            "dataset:\n  source: data.csv\n  outcome: y\n"
            "model:\n  mode: regression\n"
            "split:\n  seed: 11\n",
            encoding="utf-8",
        )

        config = load_config(tmp_path / "project.yaml")

        assert config.split.prop == 0.8
        assert config.split.seed == 11
        assert config.resampling.v == 5

    def test_env_interpolation(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test ${VAR} and ${VAR:default} interpolation."""
        monkeypatch.setenv("TABDEPLOY_TEST_SOURCE", "remote.csv")
        monkeypatch.delenv("TABDEPLOY_TEST_BOARD", raising=False)
        (tmp_path / "project.yaml").write_text(
            "project: demo\n"
            "dataset:\n  source: ${TABDEPLOY_TEST_SOURCE}\n  outcome: y\n"
            "model:\n  mode: regression\n"
            "board:\n  path: ${TABDEPLOY_TEST_BOARD:./pins}\n",
            encoding="utf-8",
        )

        config = load_config(tmp_path / "project.yaml")

        assert config.dataset.source == "remote.csv"
        assert config.board.path == Path("./pins")

    def test_shipped_configs_load(self, project_root: Path) -> None:
        """Test that the example configs in configs/ validate."""
        credit = load_config(project_root / "configs" / "credit.yaml")
        housing = load_config(project_root / "configs" / "housing.yaml")

        assert credit.mode == "classification"
        assert credit.tuning.metric == "roc_auc"
        assert credit.recipe.steps[-1].params == {"under_ratio": "tune()"}
        assert housing.mode == "regression"
        assert housing.deployment.model_name == "house_prices"
