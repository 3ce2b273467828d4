"""
Configuration management with typed Pydantic models.

Provides YAML loading with environment interpolation and base-config
inheritance.
"""

from tabdeploy.config.loader import load_config
from tabdeploy.config.settings import (
    BoardConfig,
    DatasetConfig,
    DatasetKind,
    DeploymentConfig,
    ModelSpecConfig,
    ProjectConfig,
    RecipeConfig,
    RecipeStepConfig,
    ResamplingConfig,
    ServerConfig,
    SplitConfig,
    TrackingConfig,
    TuningConfig,
)

__all__ = [
    "BoardConfig",
    "DatasetConfig",
    "DatasetKind",
    "DeploymentConfig",
    "ModelSpecConfig",
    "ProjectConfig",
    "RecipeConfig",
    "RecipeStepConfig",
    "ResamplingConfig",
    "ServerConfig",
    "SplitConfig",
    "TrackingConfig",
    "TuningConfig",
    "load_config",
]
