"""Pytest configuration and shared fixtures."""

from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
import pytest

from tabdeploy.config.loader import config_from_dict
from tabdeploy.config.settings import ProjectConfig
from tabdeploy.deploy.board import FolderBoard
from tabdeploy.deploy.vetting import DeployableModel
from tabdeploy.modeling.data import split_outcome
from tabdeploy.modeling.models import rand_forest
from tabdeploy.modeling.recipe import Dummy, Normalize, Novel, Recipe, Unknown
from tabdeploy.modeling.workflow import make_workflow


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def credit_data() -> pd.DataFrame:
    """Synthetic credit applicants; status depends on income, seniority and home."""
    rng = np.random.default_rng(0)
    n = 240
    income = rng.gamma(4.0, 30.0, n)
    seniority = rng.integers(0, 30, n)
    price = rng.normal(1400, 300, n).clip(100)
    home = rng.choice(["owner", "rent", "parents", "other"], n, p=[0.45, 0.35, 0.15, 0.05])
    score = 0.03 * income + 0.15 * seniority - 0.001 * price + (home == "owner") + rng.normal(0, 0.5, n)
    status = np.where(score > np.quantile(score, 0.3), "good", "bad")

    assets = rng.exponential(5000, n)
    assets[rng.choice(n, 12, replace=False)] = np.nan
    income[rng.choice(n, 6, replace=False)] = np.nan

    return pd.DataFrame(
        {
            "status": status,
            "seniority": seniority,
            "home": home,
            "expenses": rng.normal(60, 15, n).clip(10),
            "income": income,
            "assets": assets,
            "debt": rng.exponential(500, n),
            "price": price,
        }
    )


@pytest.fixture
def housing_data() -> pd.DataFrame:
    """Synthetic house sales; sale_price is linear in area and quality."""
    rng = np.random.default_rng(1)
    n = 200
    gr_liv_area = rng.normal(1500, 400, n).clip(400)
    overall_qual = rng.integers(1, 11, n)
    price = 50_000 + 80 * gr_liv_area + 15_000 * overall_qual + rng.normal(0, 10_000, n)

    return pd.DataFrame(
        {
            "sale_price": price.clip(10_000),
            "gr_liv_area": gr_liv_area,
            "overall_qual": overall_qual,
            "year_built": rng.integers(1950, 2011, n),
            "ms_zoning": rng.choice(["RL", "RM", "FV", "RH"], n, p=[0.75, 0.15, 0.07, 0.03]),
            "neighborhood": rng.choice(["NAmes", "CollgCr", "OldTown", "Edwards", "Somerst"], n),
            "utilities": ["AllPub"] * n,
        }
    )


@pytest.fixture
def credit_config_dict(tmp_path: Path) -> dict[str, Any]:
    """Small credit tuning config writing to a temporary board."""
    return {
        "project": "credit-test",
        "dataset": {"kind": "credit", "source": str(tmp_path / "credit.csv"), "outcome": "status"},
        "split": {"strata": "status", "seed": 42},
        "recipe": {
            "steps": [
                {"step": "impute_median", "columns": "all_numeric_predictors"},
                {
                    "step": "log",
                    "columns": ["assets", "debt", "income", "price", "expenses"],
                    "params": {"offset": 1},
                },
                {"step": "normalize", "columns": "all_numeric_predictors"},
                {"step": "dummy", "columns": "all_nominal_predictors"},
                {"step": "downsample", "params": {"under_ratio": "tune()"}},
            ]
        },
        "model": {
            "kind": "decision_tree",
            "mode": "classification",
            "args": {"tree_depth": "tune()", "min_n": "tune()"},
        },
        "resampling": {"v": 3, "strata": "status"},
        "tuning": {"size": 3, "n_jobs": 1, "metric": "roc_auc"},
        "board": {"path": str(tmp_path / "models")},
        "tracking": {"tracking_uri": (tmp_path / "mlruns").as_uri()},
        "deployment": {"model_name": "credit_status"},
    }


@pytest.fixture
def credit_config(credit_config_dict: dict[str, Any]) -> ProjectConfig:
    """Validated credit config."""
    return config_from_dict(credit_config_dict)


@pytest.fixture
def housing_config(tmp_path: Path) -> ProjectConfig:
    """Small housing random forest config writing to a temporary board."""
    return config_from_dict(
        {
            "project": "house-prices-test",
            "dataset": {
                "kind": "housing",
                "source": str(tmp_path / "housing.csv"),
                "outcome": "sale_price",
            },
            "split": {"strata": "sale_price"},
            "recipe": [
                {"step": "normalize", "columns": "all_numeric_predictors"},
                {"step": "novel", "columns": "all_nominal_predictors"},
                {"step": "other", "columns": ["ms_zoning"], "params": {"threshold": 0.05}},
                {"step": "unknown", "columns": "all_nominal_predictors"},
                {"step": "dummy", "columns": "all_nominal_predictors"},
                {"step": "nzv", "columns": "all_predictors"},
            ],
            "model": {
                "kind": "rand_forest",
                "mode": "regression",
                "args": {"trees": 25, "n_jobs": 1},
            },
            "board": {"path": str(tmp_path / "models")},
            "deployment": {"model_name": "house_prices"},
        }
    )


@pytest.fixture
def board(tmp_path: Path) -> FolderBoard:
    """Empty versioned folder board."""
    return FolderBoard(tmp_path / "board", versioned=True)


@pytest.fixture
def housing_model(housing_data: pd.DataFrame) -> DeployableModel:
    """Deployable random forest fitted on the synthetic housing data."""
    recipe = (
        Recipe(steps=[], outcome="sale_price")
        .add(Normalize())
        .add(Novel())
        .add(Unknown())
        .add(Dummy())
    )
    workflow = make_workflow(recipe, rand_forest("regression", trees=20, n_jobs=1))
    X, y = split_outcome(housing_data, "sale_price")
    workflow.fit(X, y)
    return DeployableModel(workflow, name="house_prices", metadata={"source": "synthetic"})
