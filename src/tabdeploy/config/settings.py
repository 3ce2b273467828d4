"""
Typed configuration models using Pydantic.

All configuration is defined here with explicit typing and validation.
Dataset locations, recipe steps and model arguments never live in
processing code.
"""

from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ModelMode = Literal["classification", "regression"]


class DatasetKind(str, Enum):
    """Known dataset layouts, each with its own loader and schema."""

    CREDIT = "credit"
    HOUSING = "housing"
    GENERIC = "generic"


class DatasetConfig(BaseModel):
    """Source table and outcome column."""

    model_config = ConfigDict(frozen=True)

    kind: DatasetKind = Field(
        default=DatasetKind.GENERIC, description="Dataset layout (selects loader)"
    )
    source: str = Field(description="CSV location, HTTP(S) URL or local path")
    outcome: str = Field(description="Name of the outcome column")
    new_data: str | None = Field(
        default=None,
        description="CSV with fresh observations for querying a served model",
    )


class SplitConfig(BaseModel):
    """Initial train/test split configuration."""

    model_config = ConfigDict(frozen=True)

    prop: float = Field(default=0.75, gt=0.0, lt=1.0, description="Training share")
    strata: str | None = Field(default=None, description="Column to stratify on")
    breaks: int = Field(
        default=4, ge=2, description="Quantile bins for numeric strata"
    )
    seed: int = Field(default=42)


class RecipeStepConfig(BaseModel):
    """A single preprocessing step."""

    model_config = ConfigDict(frozen=True)

    step: str = Field(description="Step name, e.g. 'normalize' or 'dummy'")
    columns: list[str] | str | None = Field(
        default=None,
        description="Explicit column names or a selector such as 'all_numeric_predictors'",
    )
    params: dict[str, Any] = Field(
        default_factory=dict, description="Step arguments ('tune()' marks tunable)"
    )


class RecipeConfig(BaseModel):
    """Ordered list of preprocessing steps."""

    model_config = ConfigDict(frozen=True)

    steps: list[RecipeStepConfig] = Field(default_factory=list)


class ModelSpecConfig(BaseModel):
    """Model specification: kind, mode, engine and arguments."""

    model_config = ConfigDict(frozen=True)

    kind: str = Field(default="decision_tree", description="decision_tree or rand_forest")
    mode: ModelMode = Field(description="classification or regression")
    engine: str | None = Field(
        default=None, description="Engine name (defaults to the kind's default engine)"
    )
    args: dict[str, Any] = Field(
        default_factory=dict, description="Model arguments ('tune()' marks tunable)"
    )


class ResamplingConfig(BaseModel):
    """V-fold cross-validation configuration."""

    model_config = ConfigDict(frozen=True)

    v: int = Field(default=10, ge=2, le=50)
    strata: str | None = Field(default=None)


class TuningConfig(BaseModel):
    """Hyperparameter search configuration."""

    model_config = ConfigDict(frozen=True)

    grid: Literal["random", "regular"] = Field(default="random")
    size: int = Field(default=50, ge=1, description="Candidates for random grids")
    levels: int = Field(default=3, ge=1, description="Levels per parameter for regular grids")
    metric: str | None = Field(
        default=None, description="Metric used to pick the best candidate"
    )
    n_jobs: int | None = Field(
        default=None, description="Parallel workers (None: available cores minus one)"
    )
    ranges: dict[str, tuple[float, float]] = Field(
        default_factory=dict, description="Overrides for default parameter ranges"
    )

    @field_validator("ranges")
    @classmethod
    def validate_ranges(
        cls, v: dict[str, tuple[float, float]]
    ) -> dict[str, tuple[float, float]]:
        """Ensure every range is increasing."""
        for name, (low, high) in v.items():
            if high < low:
                msg = f"Range for {name!r} must satisfy low <= high, got ({low}, {high})"
                raise ValueError(msg)
        return v


class BoardConfig(BaseModel):
    """Folder pin board configuration."""

    model_config = ConfigDict(frozen=True)

    path: Path = Field(default=Path("./models"), description="Board directory")
    versioned: bool = Field(default=True)


class ServerConfig(BaseModel):
    """Local prediction API configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=0, le=65535)


class DeploymentConfig(BaseModel):
    """Deployable model naming and container settings."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_name: str = Field(description="Pin name of the deployable model")
    description: str | None = Field(default=None)
    docker_port: int = Field(default=8000, ge=1, le=65535)
    python_version: str = Field(default="3.11")

    @field_validator("model_name")
    @classmethod
    def validate_model_name(cls, v: str) -> str:
        """Pin names become directory names; no path separators allowed."""
        if not v or "/" in v or "\\" in v or v.startswith("."):
            msg = f"Invalid model name: {v!r}"
            raise ValueError(msg)
        return v


class TrackingConfig(BaseModel):
    """MLflow experiment tracking configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=False)
    tracking_uri: str = Field(default="file:./mlruns")
    # experiment_name is optional; derived from project name if not set
    experiment_name: str | None = Field(default=None)


class ProjectConfig(BaseModel):
    """Complete project configuration.

    The project name drives the MLflow experiment name (if not explicitly set).
    """

    model_config = ConfigDict(frozen=True)

    project: str = Field(description="Project identifier (e.g., 'credit-tuning')")

    dataset: DatasetConfig
    split: SplitConfig = Field(default_factory=SplitConfig)
    recipe: RecipeConfig = Field(default_factory=RecipeConfig)
    model: ModelSpecConfig
    resampling: ResamplingConfig = Field(default_factory=ResamplingConfig)
    tuning: TuningConfig = Field(default_factory=TuningConfig)
    board: BoardConfig = Field(default_factory=BoardConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    deployment: DeploymentConfig
    tracking: TrackingConfig = Field(default_factory=TrackingConfig)

    @property
    def outcome(self) -> str:
        """Convenience accessor for the outcome column."""
        return self.dataset.outcome

    @property
    def mode(self) -> ModelMode:
        """Convenience accessor for the model mode."""
        return self.model.mode

    @property
    def experiment_name(self) -> str:
        """MLflow experiment name (derived from project if not set)."""
        return self.tracking.experiment_name or self.project
