"""
Deployable model bundles.

A DeployableModel carries a fitted workflow together with everything needed
to serve it: a name, a description, metadata (including the packages
required to load it) and an input prototype. The prototype is a zero-row
frame with the predictor columns and dtypes seen at training time; incoming
data is checked and coerced against it before predicting.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version
from typing import Any

import pandas as pd
from sklearn.base import is_classifier

from tabdeploy.deploy.errors import PrototypeError
from tabdeploy.schemas.output import ClassificationPredictionSchema, RegressionPredictionSchema
from tabdeploy.utils.logging import get_logger

log = get_logger(__name__)

# Distributions needed to unpickle and run a workflow
DEFAULT_REQUIRED_PKGS = ["tabdeploy", "scikit-learn", "pandas", "numpy", "joblib"]


def required_packages(names: Iterable[str] = DEFAULT_REQUIRED_PKGS) -> list[str]:
    """
    Pin installed versions of the given distributions.

    Returns:
        Requirement strings like ``scikit-learn==1.5.2``; distributions that
        are not installed are listed without a version.
    """
    pkgs = []
    for name in names:
        try:
            pkgs.append(f"{name}=={version(name)}")
        except PackageNotFoundError:
            log.warning("Package not installed, listing without version", package=name)
            pkgs.append(name)
    return pkgs


def _model_mode(model: Any) -> str:
    mode = getattr(model, "mode", None)
    if mode is not None:
        return str(mode)
    return "classification" if is_classifier(model) else "regression"


def _estimator_name(model: Any) -> str:
    inner = getattr(model, "model_", None)
    return type(inner if inner is not None else model).__name__


class DeployableModel:
    """
    A fitted model ready to be pinned and served.

    Attributes:
        model: Fitted workflow (or any fitted estimator with ``predict``).
        name: Model name, used as the pin name.
        description: Human-readable description.
        metadata: Model metadata: ``user`` (caller-supplied), ``required_pkgs``,
            ``created`` and, when read from a board, ``version``.
        prototype: Zero-row frame of predictor columns and dtypes.
    """

    def __init__(
        self,
        model: Any,
        name: str,
        description: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        prototype: pd.DataFrame | None = None,
    ) -> None:
        if prototype is None:
            prototype = getattr(model, "ptype_", None)
        if prototype is None:
            msg = "A prototype is required for models without a training prototype"
            raise ValueError(msg)

        self.model = model
        self.name = name
        self.mode = _model_mode(model)
        self.description = description or (
            f"A scikit-learn {_estimator_name(model)} {self.mode} modeling workflow"
        )
        self.prototype = prototype.iloc[:0].copy()
        self.metadata: dict[str, Any] = {
            "user": dict(metadata or {}),
            "required_pkgs": required_packages(),
            "created": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        }

    def __repr__(self) -> str:
        return (
            f"DeployableModel(name={self.name!r}, mode={self.mode!r}, "
            f"n_predictors={self.prototype.shape[1]})"
        )

    @property
    def version(self) -> str | None:
        """Pin version, when the model was read from a board."""
        return self.metadata.get("version")

    def prototype_spec(self) -> dict[str, Any]:
        """Column names and dtypes of the prototype."""
        return {
            "columns": [
                {"name": str(col), "dtype": str(dtype)}
                for col, dtype in self.prototype.dtypes.items()
            ]
        }

    def check_prototype(self, new_data: pd.DataFrame) -> pd.DataFrame:
        """
        Check and coerce new data against the prototype.

        Extra columns are dropped and columns are reordered to match.

        Args:
            new_data: Incoming predictors.

        Returns:
            Frame with exactly the prototype's columns and dtypes.

        Raises:
            PrototypeError: If columns are missing or cannot be coerced.
        """
        missing = [c for c in self.prototype.columns if c not in new_data.columns]
        if missing:
            msg = f"New data is missing required columns: {', '.join(map(str, missing))}"
            raise PrototypeError(msg, missing=missing)

        out = new_data.loc[:, list(self.prototype.columns)].copy()
        for col, dtype in self.prototype.dtypes.items():
            try:
                out[col] = _coerce(out[col], dtype)
            except (TypeError, ValueError) as e:
                msg = f"Column '{col}' cannot be converted to {dtype}: {e}"
                raise PrototypeError(msg) from e
        return out

    def predict(self, new_data: pd.DataFrame) -> pd.DataFrame:
        """
        Predict for new data after checking it against the prototype.

        Returns:
            Frame with ``.pred`` (regression) or ``.pred_class`` (classification).
        """
        data = self.check_prototype(new_data)
        if hasattr(self.model, "predict_frame"):
            preds = self.model.predict_frame(data)
        else:
            column = ".pred_class" if self.mode == "classification" else ".pred"
            preds = pd.DataFrame({column: self.model.predict(data)}, index=data.index)
        schema = (
            ClassificationPredictionSchema
            if self.mode == "classification"
            else RegressionPredictionSchema
        )
        preds = schema.validate(preds)
        log.debug("Predicted", model=self.name, n_rows=len(preds))
        return preds.reset_index(drop=True)

    def to_bundle(self) -> dict[str, Any]:
        """Plain dict of everything needed to restore the model."""
        return {
            "model": self.model,
            "name": self.name,
            "description": self.description,
            "metadata": {k: v for k, v in self.metadata.items() if k != "version"},
            "prototype": self.prototype,
        }

    @classmethod
    def from_bundle(cls, bundle: Mapping[str, Any]) -> "DeployableModel":
        """Restore a model from ``to_bundle`` output."""
        model = cls(
            bundle["model"],
            name=bundle["name"],
            description=bundle.get("description"),
            prototype=bundle["prototype"],
        )
        model.metadata = dict(bundle.get("metadata") or model.metadata)
        return model


def _coerce(series: pd.Series, dtype: Any) -> pd.Series:
    """Convert a column to a prototype dtype."""
    if series.dtype == dtype:
        return series
    if isinstance(dtype, pd.CategoricalDtype) or pd.api.types.is_object_dtype(dtype):
        # Levels unseen in training are handled by the recipe
        return series.astype(object).where(series.notna(), None)
    if pd.api.types.is_string_dtype(dtype):
        return series.astype(dtype)
    if pd.api.types.is_bool_dtype(dtype):
        return series.astype(bool)
    if pd.api.types.is_datetime64_any_dtype(dtype):
        return pd.to_datetime(series)
    if pd.api.types.is_numeric_dtype(dtype):
        numeric = pd.to_numeric(series, errors="raise")
        if not pd.api.types.is_integer_dtype(dtype):
            return numeric.astype(dtype)
        if (numeric.dropna() % 1 != 0).any():
            msg = "non-integral values for an integer column"
            raise ValueError(msg)
        if numeric.isna().any():
            return numeric.astype(float)
        return numeric.astype(dtype)
    return series.astype(dtype)
