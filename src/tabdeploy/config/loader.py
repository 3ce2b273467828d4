"""
Configuration loading utilities.

Supports environment variable interpolation and config inheritance.
Minimal configs only need: project, dataset.source, dataset.outcome,
model.mode and deployment.model_name.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml

from tabdeploy.config.settings import (
    BoardConfig,
    DatasetConfig,
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


def _interpolate_env_vars(value: str) -> str:
    """
    Interpolate environment variables in string values.

    Supports ${VAR} and ${VAR:default} syntax.
    """
    pattern = r"\$\{([^}:]+)(?::([^}]*))?\}"

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default = match.group(2)
        return os.environ.get(var_name, default if default is not None else "")

    return re.sub(pattern, replacer, value)


def _process_config_values(obj: Any) -> Any:
    """Recursively process config values for env var interpolation."""
    if isinstance(obj, str):
        return _interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _process_config_values(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_process_config_values(item) for item in obj]
    return obj


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and process environment variables."""
    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return _process_config_values(data) if data else {}


def _build_recipe(recipe_data: dict[str, Any] | list[Any]) -> RecipeConfig:
    """Build recipe config from either a mapping with 'steps' or a bare list."""
    steps_data = recipe_data if isinstance(recipe_data, list) else recipe_data.get("steps", [])
    steps = []
    for entry in steps_data:
        if isinstance(entry, str):
            steps.append(RecipeStepConfig(step=entry))
        else:
            steps.append(RecipeStepConfig(**entry))
    return RecipeConfig(steps=steps)


def config_from_dict(merged: dict[str, Any]) -> ProjectConfig:
    """
    Build a validated ProjectConfig from a plain dictionary.

    Args:
        merged: Configuration mapping (already merged and interpolated).

    Returns:
        Fully validated ProjectConfig instance.

    Raises:
        ValueError: If a required key is missing.
    """
    project = merged.get("project")
    if not project:
        msg = "Config must specify 'project' name"
        raise ValueError(msg)

    dataset_data = merged.get("dataset", {})
    if not dataset_data.get("source"):
        msg = "Config must specify 'dataset.source'"
        raise ValueError(msg)
    if not dataset_data.get("outcome"):
        msg = "Config must specify 'dataset.outcome'"
        raise ValueError(msg)
    dataset = DatasetConfig(**dataset_data)

    model_data = merged.get("model", {})
    if not model_data.get("mode"):
        msg = "Config must specify 'model.mode' (classification or regression)"
        raise ValueError(msg)
    model = ModelSpecConfig(**model_data)

    deployment_data = merged.get("deployment", {})
    # Pin name defaults to the project name
    deployment = DeploymentConfig(
        **{"model_name": project, **deployment_data},
    )

    return ProjectConfig(
        project=project,
        dataset=dataset,
        split=SplitConfig(**merged.get("split", {})),
        recipe=_build_recipe(merged.get("recipe", {})),
        model=model,
        resampling=ResamplingConfig(**merged.get("resampling", {})),
        tuning=TuningConfig(**merged.get("tuning", {})),
        board=BoardConfig(**merged.get("board", {})),
        server=ServerConfig(**merged.get("server", {})),
        deployment=deployment,
        tracking=TrackingConfig(**merged.get("tracking", {})),
    )


def load_config(
    config_path: Path,
    base_path: Path | None = None,
) -> ProjectConfig:
    """
    Load project configuration from YAML file(s).

    Args:
        config_path: Path to the main configuration file.
        base_path: Optional path to base configuration for inheritance.
            Defaults to base.yaml next to config_path when present.

    Returns:
        Fully validated ProjectConfig instance.
    """
    if base_path is not None:
        base_data = load_yaml(base_path)
    else:
        potential_base = config_path.parent / "base.yaml"
        if potential_base.exists() and potential_base.resolve() != config_path.resolve():
            base_data = load_yaml(potential_base)
        else:
            base_data = {}

    main_data = load_yaml(config_path)

    # Main overrides base
    merged = _deep_merge(base_data, main_data)

    return config_from_dict(merged)
