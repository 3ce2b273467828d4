"""
Preprocessing recipes.

A recipe is an ordered list of steps bound to an outcome column. Every step
is a scikit-learn estimator operating on pandas frames, so a recipe can be
cloned, inspected and tuned like any other estimator. Step parameters are
addressed as ``<step name>__<param>``.

Column steps learn their statistics on the training frame and replay them on
new data. Row steps (downsampling) only run while fitting.
"""

import math
import re
from collections.abc import Sequence
from typing import Any

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, clone
from sklearn.preprocessing import PowerTransformer
from sklearn.utils.validation import check_is_fitted

from tabdeploy.config.settings import RecipeConfig
from tabdeploy.modeling.params import is_tune
from tabdeploy.utils.logging import get_logger

log = get_logger(__name__)

ALL_NUMERIC = "all_numeric_predictors"
ALL_NOMINAL = "all_nominal_predictors"
ALL_PREDICTORS = "all_predictors"
SELECTORS = {ALL_NUMERIC, ALL_NOMINAL, ALL_PREDICTORS}


def is_nominal(series: pd.Series) -> bool:
    """Whether a column holds nominal (non-numeric) values."""
    return (
        isinstance(series.dtype, pd.CategoricalDtype)
        or pd.api.types.is_object_dtype(series)
        or pd.api.types.is_string_dtype(series)
        or pd.api.types.is_bool_dtype(series)
    )


def is_numeric(series: pd.Series) -> bool:
    """Whether a column holds numeric values (booleans excluded)."""
    return pd.api.types.is_numeric_dtype(series) and not pd.api.types.is_bool_dtype(
        series
    )


def resolve_columns(selection: str | Sequence[str], df: pd.DataFrame) -> list[str]:
    """
    Resolve a selector or explicit column list against a frame.

    Args:
        selection: Selector name or list of column names.
        df: Predictor frame.

    Returns:
        Selected column names in frame order.

    Raises:
        ValueError: If explicit columns are missing or the selector is unknown.
    """
    if isinstance(selection, str):
        if selection == ALL_NUMERIC:
            return [c for c in df.columns if is_numeric(df[c])]
        if selection == ALL_NOMINAL:
            return [c for c in df.columns if is_nominal(df[c])]
        if selection == ALL_PREDICTORS:
            return list(df.columns)
        if selection in df.columns:
            return [selection]
        msg = f"Unknown selector or column: {selection!r}"
        raise ValueError(msg)

    missing = [c for c in selection if c not in df.columns]
    if missing:
        msg = f"Columns not found for recipe step: {missing}"
        raise ValueError(msg)
    return list(selection)


def _clean_level(level: Any) -> str:
    """Make a factor level safe for use in a column name."""
    return re.sub(r"[^0-9A-Za-z]+", "_", str(level)).strip("_") or "blank"


def _as_categorical(series: pd.Series, extra_level: str | None = None) -> pd.Series:
    """Convert to a categorical, optionally appending a level."""
    if isinstance(series.dtype, pd.CategoricalDtype):
        out = series.copy()
    else:
        values = series.astype("object")
        present = values.notna()
        values[present] = values[present].astype(str)
        out = values.astype("category")
    if extra_level is not None and extra_level not in out.cat.categories:
        out = out.cat.add_categories([extra_level])
    return out


class RecipeStep(BaseEstimator):
    """
    Base class for column steps.

    Subclasses implement ``_fit`` and ``_transform`` over the resolved
    columns; selection and bookkeeping happen here.
    """

    default_selector: str = ALL_PREDICTORS

    def _select(self, X: pd.DataFrame) -> list[str]:
        selection = getattr(self, "columns", None) or self.default_selector
        return resolve_columns(selection, X)

    def fit(self, X: pd.DataFrame, y: pd.Series | None = None) -> "RecipeStep":
        """Learn step statistics on the training frame."""
        self.columns_ = self._select(X)
        self._fit(X, y)
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """Apply the learned step to a frame."""
        check_is_fitted(self, "columns_")
        if not self.columns_:
            return X
        return self._transform(X.copy())

    def fit_transform(self, X: pd.DataFrame, y: pd.Series | None = None) -> pd.DataFrame:
        """Fit, then transform the same frame."""
        return self.fit(X, y).transform(X)

    def _fit(self, X: pd.DataFrame, y: pd.Series | None) -> None:
        _ = X, y

    def _transform(self, X: pd.DataFrame) -> pd.DataFrame:
        raise NotImplementedError


class ImputeMedian(RecipeStep):
    """Fill missing numeric values with the training median."""

    default_selector = ALL_NUMERIC

    def __init__(self, columns: str | Sequence[str] | None = None) -> None:
        self.columns = columns

    def _fit(self, X: pd.DataFrame, y: pd.Series | None) -> None:
        self.columns_ = [c for c in self.columns_ if is_numeric(X[c])]
        self.medians_ = {c: float(X[c].median()) for c in self.columns_}

    def _transform(self, X: pd.DataFrame) -> pd.DataFrame:
        for col, median in self.medians_.items():
            X[col] = X[col].fillna(median)
        return X


class ImputeMode(RecipeStep):
    """Fill missing nominal values with the most frequent training level."""

    default_selector = ALL_NOMINAL

    def __init__(self, columns: str | Sequence[str] | None = None) -> None:
        self.columns = columns

    def _fit(self, X: pd.DataFrame, y: pd.Series | None) -> None:
        self.modes_ = {}
        for col in self.columns_:
            counts = X[col].value_counts(dropna=True)
            if len(counts):
                self.modes_[col] = counts.index[0]

    def _transform(self, X: pd.DataFrame) -> pd.DataFrame:
        for col, mode in self.modes_.items():
            X[col] = X[col].fillna(mode)
        return X


class LogTransform(RecipeStep):
    """Apply ``log(x + offset)`` with the given base."""

    default_selector = ALL_NUMERIC

    def __init__(
        self,
        columns: str | Sequence[str] | None = None,
        offset: float = 0.0,
        base: float = math.e,
    ) -> None:
        self.columns = columns
        self.offset = offset
        self.base = base

    def _transform(self, X: pd.DataFrame) -> pd.DataFrame:
        with np.errstate(divide="ignore", invalid="ignore"):
            for col in self.columns_:
                shifted = X[col].astype(float) + self.offset
                X[col] = np.log(shifted) / np.log(self.base)
        return X


class Normalize(RecipeStep):
    """Center and scale numeric columns with training mean and sd."""

    default_selector = ALL_NUMERIC

    def __init__(self, columns: str | Sequence[str] | None = None) -> None:
        self.columns = columns

    def _fit(self, X: pd.DataFrame, y: pd.Series | None) -> None:
        self.columns_ = [c for c in self.columns_ if is_numeric(X[c])]
        self.means_ = {c: float(X[c].mean()) for c in self.columns_}
        self.sds_ = {}
        for col in self.columns_:
            sd = float(X[col].std(ddof=1))
            # Constant columns are centred only
            self.sds_[col] = sd if sd > 0 and not math.isnan(sd) else 1.0

    def _transform(self, X: pd.DataFrame) -> pd.DataFrame:
        for col in self.columns_:
            X[col] = (X[col].astype(float) - self.means_[col]) / self.sds_[col]
        return X


class YeoJohnson(RecipeStep):
    """Yeo-Johnson power transform of numeric columns."""

    default_selector = ALL_NUMERIC

    def __init__(self, columns: str | Sequence[str] | None = None) -> None:
        self.columns = columns

    def _fit(self, X: pd.DataFrame, y: pd.Series | None) -> None:
        self.columns_ = [c for c in self.columns_ if is_numeric(X[c])]
        if self.columns_:
            self.transformer_ = PowerTransformer(method="yeo-johnson", standardize=False)
            self.transformer_.fit(X[self.columns_].astype(float).to_numpy())

    def _transform(self, X: pd.DataFrame) -> pd.DataFrame:
        values = self.transformer_.transform(X[self.columns_].astype(float).to_numpy())
        X[self.columns_] = values
        return X


class Novel(RecipeStep):
    """Map levels unseen during training to a ``new`` level."""

    default_selector = ALL_NOMINAL

    def __init__(
        self,
        columns: str | Sequence[str] | None = None,
        new_level: str = "new",
    ) -> None:
        self.columns = columns
        self.new_level = new_level

    def _fit(self, X: pd.DataFrame, y: pd.Series | None) -> None:
        self.levels_ = {
            col: list(_as_categorical(X[col]).cat.categories) for col in self.columns_
        }

    def _transform(self, X: pd.DataFrame) -> pd.DataFrame:
        for col, levels in self.levels_.items():
            values = _as_categorical(X[col]).astype("object")
            unseen = values.notna() & ~values.isin(levels)
            values = values.mask(unseen, self.new_level)
            categories = levels if self.new_level in levels else [*levels, self.new_level]
            X[col] = pd.Categorical(values, categories=categories)
        return X


class Other(RecipeStep):
    """
    Pool infrequent levels into an ``other`` level.

    ``threshold`` below 1 is a minimum training proportion, 1 or above a
    minimum count. Levels unseen in training are pooled as well.
    """

    default_selector = ALL_NOMINAL

    def __init__(
        self,
        columns: str | Sequence[str] | None = None,
        threshold: float = 0.05,
        other: str = "other",
    ) -> None:
        self.columns = columns
        self.threshold = threshold
        self.other = other

    def _fit(self, X: pd.DataFrame, y: pd.Series | None) -> None:
        self.keep_ = {}
        for col in self.columns_:
            values = _as_categorical(X[col])
            counts = values.value_counts(dropna=True)
            counts = counts[counts > 0]
            if self.threshold < 1:
                share = counts / max(counts.sum(), 1)
                keep = share[share >= self.threshold].index
            else:
                keep = counts[counts >= self.threshold].index
            keep_levels = [lvl for lvl in values.cat.categories if lvl in set(keep)]
            pooled = len(counts) - len(keep_levels)
            if pooled:
                log.debug("Pooling levels", column=col, n_pooled=pooled)
            self.keep_[col] = keep_levels

    def _transform(self, X: pd.DataFrame) -> pd.DataFrame:
        for col, keep in self.keep_.items():
            values = _as_categorical(X[col]).astype("object")
            pooled = values.notna() & ~values.isin(keep)
            values = values.mask(pooled, self.other)
            categories = keep if self.other in keep else [*keep, self.other]
            X[col] = pd.Categorical(values, categories=categories)
        return X


class Unknown(RecipeStep):
    """Replace missing nominal values with an ``unknown`` level."""

    default_selector = ALL_NOMINAL

    def __init__(
        self,
        columns: str | Sequence[str] | None = None,
        new_level: str = "unknown",
    ) -> None:
        self.columns = columns
        self.new_level = new_level

    def _transform(self, X: pd.DataFrame) -> pd.DataFrame:
        for col in self.columns_:
            values = _as_categorical(X[col], extra_level=self.new_level)
            X[col] = values.fillna(self.new_level)
        return X


class Dummy(RecipeStep):
    """
    Dummy-code nominal columns.

    The first level is the reference and gets no column unless ``one_hot``
    is set. Levels unseen in training produce all-zero rows; missing values
    produce missing indicators.
    """

    default_selector = ALL_NOMINAL

    def __init__(
        self,
        columns: str | Sequence[str] | None = None,
        one_hot: bool = False,
    ) -> None:
        self.columns = columns
        self.one_hot = one_hot

    def _fit(self, X: pd.DataFrame, y: pd.Series | None) -> None:
        self.columns_ = [c for c in self.columns_ if is_nominal(X[c])]
        self.levels_ = {}
        for col in self.columns_:
            levels = list(_as_categorical(X[col]).cat.categories)
            self.levels_[col] = levels if self.one_hot else levels[1:]

    def _transform(self, X: pd.DataFrame) -> pd.DataFrame:
        encoded = []
        for col, levels in self.levels_.items():
            values = _as_categorical(X[col]).astype("object")
            missing = values.isna()
            block = {}
            for level in levels:
                indicator = (values == level).astype(float)
                block[f"{col}_{_clean_level(level)}"] = indicator.mask(missing, np.nan)
            encoded.append(pd.DataFrame(block, index=X.index))
        X = X.drop(columns=list(self.levels_))
        return pd.concat([X, *encoded], axis=1)

    def get_feature_names_out(self) -> list[str]:
        """Names of the indicator columns created by this step."""
        check_is_fitted(self, "levels_")
        return [
            f"{col}_{_clean_level(level)}"
            for col, levels in self.levels_.items()
            for level in levels
        ]


class NearZeroVariance(RecipeStep):
    """
    Drop columns with (near) zero variance.

    A column is removed when it has a single value, or when the ratio of the
    most to second most frequent value exceeds ``freq_cut`` and the share of
    distinct values (percent) is at most ``unique_cut``.
    """

    default_selector = ALL_PREDICTORS

    def __init__(
        self,
        columns: str | Sequence[str] | None = None,
        freq_cut: float = 95 / 5,
        unique_cut: float = 10,
    ) -> None:
        self.columns = columns
        self.freq_cut = freq_cut
        self.unique_cut = unique_cut

    def _fit(self, X: pd.DataFrame, y: pd.Series | None) -> None:
        self.removed_ = []
        for col in self.columns_:
            counts = X[col].value_counts(dropna=True)
            if len(counts) <= 1:
                self.removed_.append(col)
                continue
            freq_ratio = counts.iloc[0] / counts.iloc[1]
            pct_unique = 100 * len(counts) / len(X)
            if freq_ratio > self.freq_cut and pct_unique <= self.unique_cut:
                self.removed_.append(col)
        if self.removed_:
            log.info("Removing near-zero variance columns", columns=self.removed_)

    def _transform(self, X: pd.DataFrame) -> pd.DataFrame:
        return X.drop(columns=[c for c in self.removed_ if c in X.columns])


class Downsample(BaseEstimator):
    """
    Downsample classes of the outcome while fitting.

    Every class keeps at most ``under_ratio`` times the minority class count.
    The step is skipped when transforming new data.
    """

    def __init__(self, under_ratio: float = 1.0, seed: int | None = 42) -> None:
        self.under_ratio = under_ratio
        self.seed = seed

    def fit_resample(
        self, X: pd.DataFrame, y: pd.Series
    ) -> tuple[pd.DataFrame, pd.Series]:
        """Return the downsampled training rows."""
        if y is None:
            msg = "Downsampling requires an outcome"
            raise ValueError(msg)
        if is_numeric(y) and not isinstance(y.dtype, pd.CategoricalDtype):
            msg = "Downsampling requires a categorical outcome"
            raise ValueError(msg)

        y = y.set_axis(X.index) if isinstance(y, pd.Series) else pd.Series(y, index=X.index)
        counts = y.value_counts()
        counts = counts[counts > 0]
        target = max(1, int(math.floor(counts.min() * self.under_ratio)))

        rng = np.random.default_rng(self.seed)
        keep: list[Any] = []
        for level in counts.index:
            idx = y.index[y == level].to_numpy()
            if len(idx) > target:
                idx = rng.choice(idx, size=target, replace=False)
            keep.extend(idx)
        keep_index = X.index[X.index.isin(keep)]

        self.n_removed_ = len(X) - len(keep_index)
        log.debug(
            "Downsampled outcome",
            before=counts.to_dict(),
            per_class_max=target,
            removed=self.n_removed_,
        )
        return X.loc[keep_index], y.loc[keep_index]


STEP_REGISTRY: dict[str, type[BaseEstimator]] = {
    "impute_median": ImputeMedian,
    "impute_mode": ImputeMode,
    "log": LogTransform,
    "normalize": Normalize,
    "yeo_johnson": YeoJohnson,
    "novel": Novel,
    "other": Other,
    "unknown": Unknown,
    "dummy": Dummy,
    "nzv": NearZeroVariance,
    "downsample": Downsample,
}


def is_row_step(step: Any) -> bool:
    """Whether a step changes rows (and only runs during fitting)."""
    return hasattr(step, "fit_resample")


class Recipe(BaseEstimator):
    """
    Ordered preprocessing steps for a modelling table.

    Attributes:
        steps: List of (name, step) pairs.
        outcome: Outcome column name (never selected by predictors).
    """

    def __init__(
        self,
        steps: list[tuple[str, Any]] | None = None,
        outcome: str | None = None,
    ) -> None:
        self.steps = steps
        self.outcome = outcome

    def add(self, step: Any, name: str | None = None) -> "Recipe":
        """
        Append a step, naming it after its type unless a name is given.

        Returns:
            The recipe itself, for chaining.
        """
        steps = list(self.steps or [])
        if name is None:
            base = next(
                (key for key, cls in STEP_REGISTRY.items() if type(step) is cls),
                type(step).__name__.lower(),
            )
            existing = {n for n, _ in steps}
            name, i = base, 2
            while name in existing:
                name = f"{base}_{i}"
                i += 1
        if any(n == name for n, _ in steps):
            msg = f"Duplicate step name: {name}"
            raise ValueError(msg)
        steps.append((name, step))
        self.steps = steps
        return self

    @property
    def named_steps(self) -> dict[str, Any]:
        """Steps by name."""
        return dict(self.steps or [])

    def get_params(self, deep: bool = True) -> dict[str, Any]:
        params = super().get_params(deep=False)
        if not deep:
            return params
        for name, step in self.steps or []:
            params[name] = step
            for key, value in step.get_params(deep=True).items():
                params[f"{name}__{key}"] = value
        return params

    def set_params(self, **params: Any) -> "Recipe":
        steps = dict(self.steps or [])
        replacements = {k: params.pop(k) for k in list(params) if k in steps}
        if replacements:
            self.steps = [
                (name, replacements.get(name, step)) for name, step in self.steps or []
            ]
        if params:
            super().set_params(**params)
        return self

    def _drop_outcome(self, X: pd.DataFrame) -> pd.DataFrame:
        if self.outcome is not None and self.outcome in X.columns:
            return X.drop(columns=[self.outcome])
        return X

    def fit_resample(
        self, X: pd.DataFrame, y: pd.Series | None = None
    ) -> tuple[pd.DataFrame, pd.Series | None]:
        """
        Fit every step on training data, applying row steps along the way.

        Args:
            X: Training predictors.
            y: Training outcome (required by row steps).

        Returns:
            Tuple of (processed predictors, matching outcome).
        """
        X = self._drop_outcome(X)
        if isinstance(y, pd.Series):
            y = y.set_axis(X.index)
        elif y is not None:
            y = pd.Series(y, index=X.index)

        fitted = []
        for name, step in self.steps or []:
            step = clone(step)
            if is_row_step(step):
                X, y = step.fit_resample(X, y)
            else:
                X = step.fit_transform(X, y)
            fitted.append((name, step))

        self.steps_ = fitted
        self.feature_names_out_ = list(X.columns)
        log.debug("Prepped recipe", n_steps=len(fitted), n_features=X.shape[1])
        return X, y

    def fit(self, X: pd.DataFrame, y: pd.Series | None = None) -> "Recipe":
        """Fit the recipe (prep)."""
        self.fit_resample(X, y)
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """Apply fitted column steps to new data (bake). Row steps are skipped."""
        check_is_fitted(self, "steps_")
        X = self._drop_outcome(X)
        for _, step in self.steps_:
            if is_row_step(step):
                continue
            X = step.transform(X)
        return X

    def fit_transform(self, X: pd.DataFrame, y: pd.Series | None = None) -> pd.DataFrame:
        """Fit and return the processed training predictors."""
        Xt, _ = self.fit_resample(X, y)
        return Xt

    prep = fit
    bake = transform

    @classmethod
    def from_config(cls, config: RecipeConfig, outcome: str | None = None) -> "Recipe":
        """
        Build a recipe from configuration.

        Parameters marked for tuning keep the step default until a search
        sets them.

        Raises:
            ValueError: If a step name is unknown.
        """
        recipe = cls(steps=[], outcome=outcome)
        for entry in config.steps:
            if entry.step not in STEP_REGISTRY:
                available = ", ".join(STEP_REGISTRY)
                msg = f"Unknown recipe step '{entry.step}'. Available: {available}"
                raise ValueError(msg)
            step_cls = STEP_REGISTRY[entry.step]
            kwargs = {k: v for k, v in entry.params.items() if not is_tune(v)}
            if entry.columns is not None and entry.step != "downsample":
                kwargs["columns"] = entry.columns
            recipe.add(step_cls(**kwargs))
        return recipe

    def tunable(self, config: RecipeConfig) -> list[tuple[str, str]]:
        """
        List (param name, path) pairs marked for tuning in a config.

        Paths are relative to the recipe, e.g. ``downsample__under_ratio``.
        """
        names = [name for name, _ in self.steps or []]
        pairs = []
        for name, entry in zip(names, config.steps):
            for key, value in entry.params.items():
                if is_tune(value):
                    pairs.append((key, f"{name}__{key}"))
        return pairs


def bake(recipe: Recipe, new_data: pd.DataFrame) -> pd.DataFrame:
    """Apply a fitted recipe to new data."""
    return recipe.transform(new_data)
