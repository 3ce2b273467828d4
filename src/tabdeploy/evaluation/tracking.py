"""
MLflow tracking for tuning runs.

A tuning run is one parent MLflow run with a nested run per candidate. The
parent run records the split, resampling and best candidate, plus the test
metrics of the final fit when available.
"""

from datetime import datetime
from typing import Any

import mlflow
import pandas as pd

from tabdeploy.config.settings import ProjectConfig
from tabdeploy.utils.logging import get_logger

log = get_logger(__name__)


def _metric_dict(frame: pd.DataFrame, value_column: str) -> dict[str, float]:
    return {
        str(row[".metric"]): float(row[value_column])
        for _, row in frame.iterrows()
        if pd.notna(row[value_column])
    }


class TuningTracker:
    """
    Log tuning runs to MLflow.

    Usable as a context manager; the parent run is ended on exit.
    """

    def __init__(self, config: ProjectConfig) -> None:
        """
        Initialize tracker.

        Args:
            config: Project configuration (tracking URI, experiment name).
        """
        self.config = config
        self._run_id: str | None = None

    def setup(self) -> None:
        """Point MLflow at the configured tracking URI and experiment."""
        mlflow.set_tracking_uri(self.config.tracking.tracking_uri)
        mlflow.set_experiment(self.config.experiment_name)

        log.info(
            "Experiment setup",
            name=self.config.experiment_name,
            tracking_uri=self.config.tracking.tracking_uri,
        )

    def start_run(self, run_name: str | None = None) -> str:
        """
        Start the parent run.

        Args:
            run_name: Optional run name (default: timestamped tune run).

        Returns:
            Run ID.
        """
        self.setup()
        tags = {
            "project": self.config.project,
            "mode": self.config.mode,
            "model_kind": self.config.model.kind,
            "outcome": self.config.outcome,
        }
        run_name = run_name or f"tune-{datetime.now():%Y%m%d-%H%M}"
        run = mlflow.start_run(run_name=run_name, tags=tags)
        self._run_id = run.info.run_id

        mlflow.log_params(
            {
                "split_prop": self.config.split.prop,
                "split_strata": self.config.split.strata,
                "folds": self.config.resampling.v,
                "grid": self.config.tuning.grid,
                "grid_size": self.config.tuning.size,
            }
        )
        log.info("Started MLflow run", run_id=self._run_id)
        return self._run_id

    def end_run(self) -> None:
        """End the parent run."""
        mlflow.end_run()
        log.info("Ended MLflow run", run_id=self._run_id)

    def log_candidates(self, summary: pd.DataFrame, param_names: list[str]) -> None:
        """
        Log each candidate as a nested run.

        Args:
            summary: Summarized tuning metrics (one row per candidate and metric).
            param_names: Parameter columns in ``summary``.
        """
        for config_id, rows in summary.groupby(".config", sort=False):
            first = rows.iloc[0]
            with mlflow.start_run(run_name=str(config_id), nested=True):
                mlflow.log_params({name: first[name] for name in param_names})
                mlflow.log_metrics(_metric_dict(rows, "mean"))

        log.debug("Logged candidates", n=summary[".config"].nunique())

    def log_best(self, best: dict[str, Any]) -> None:
        """Log the selected candidate on the parent run."""
        mlflow.log_params({f"best_{k}": v for k, v in best.items() if not k.startswith(".")})
        if ".config" in best:
            mlflow.set_tag("best_config", best[".config"])

    def log_test_metrics(self, metrics: pd.DataFrame) -> None:
        """Log test-set metrics from the final fit."""
        mlflow.log_metrics({f"test_{k}": v for k, v in _metric_dict(metrics, ".estimate").items()})

    def __enter__(self) -> "TuningTracker":
        self.start_run()
        return self

    def __exit__(self, *exc: object) -> None:
        self.end_run()
