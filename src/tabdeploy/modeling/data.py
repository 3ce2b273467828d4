"""
Train/test splitting and cross-validation resamples.

Stratification follows the usual convention for modelling tables: a
categorical column stratifies by level, a numeric column is first binned
into quantiles.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from sklearn.model_selection import KFold, StratifiedKFold, train_test_split

from tabdeploy.utils.logging import get_logger

log = get_logger(__name__)

# Strata with fewer rows than this cannot be split and disable stratification
MIN_STRATUM_SIZE = 2


def make_strata(values: pd.Series, breaks: int = 4) -> pd.Series | None:
    """
    Build stratification labels from a column.

    Args:
        values: Column to stratify on.
        breaks: Number of quantile bins for numeric columns.

    Returns:
        Stratum labels, or None when stratification is not possible.
    """
    if pd.api.types.is_numeric_dtype(values) and not pd.api.types.is_bool_dtype(values):
        strata = pd.qcut(values, q=breaks, labels=False, duplicates="drop")
    else:
        strata = values.astype("object")

    if strata.isna().any():
        log.warning("Missing values in strata column, stratification disabled")
        return None

    counts = strata.value_counts()
    if len(counts) < 2 or counts.min() < MIN_STRATUM_SIZE:
        log.warning(
            "Strata too small, stratification disabled",
            n_strata=len(counts),
            smallest=int(counts.min()) if len(counts) else 0,
        )
        return None

    return strata


@dataclass
class DataSplit:
    """
    Initial train/test split of a table.

    Attributes:
        data: The full table (index reset).
        train_idx: Positional indices of training rows.
        test_idx: Positional indices of testing rows.
    """

    data: pd.DataFrame
    train_idx: np.ndarray
    test_idx: np.ndarray

    def training(self) -> pd.DataFrame:
        """Training rows."""
        return self.data.iloc[self.train_idx].reset_index(drop=True)

    def testing(self) -> pd.DataFrame:
        """Testing rows."""
        return self.data.iloc[self.test_idx].reset_index(drop=True)

    def __repr__(self) -> str:
        return f"<Training/Testing/Total> <{len(self.train_idx)}/{len(self.test_idx)}/{len(self.data)}>"


def initial_split(
    df: pd.DataFrame,
    prop: float = 0.75,
    strata: str | None = None,
    breaks: int = 4,
    seed: int = 42,
) -> DataSplit:
    """
    Split a table into training and testing sets.

    Args:
        df: Table to split.
        prop: Share of rows used for training.
        strata: Optional column to stratify on.
        breaks: Quantile bins when the strata column is numeric.
        seed: Random seed; the same seed always gives the same split.

    Returns:
        DataSplit with training/testing accessors.

    Raises:
        ValueError: If the strata column is missing or prop is out of range.
    """
    if not 0 < prop < 1:
        msg = f"prop must be between 0 and 1, got {prop}"
        raise ValueError(msg)

    data = df.reset_index(drop=True)
    labels = None
    if strata is not None:
        if strata not in data.columns:
            msg = f"Strata column not found: {strata}"
            raise ValueError(msg)
        labels = make_strata(data[strata], breaks=breaks)

    positions = np.arange(len(data))
    train_idx, test_idx = train_test_split(
        positions,
        train_size=prop,
        stratify=labels,
        random_state=seed,
    )

    split = DataSplit(data=data, train_idx=np.sort(train_idx), test_idx=np.sort(test_idx))
    log.info(
        "Created initial split",
        n_train=len(train_idx),
        n_test=len(test_idx),
        strata=strata,
        stratified=labels is not None,
    )
    return split


@dataclass
class Resamples:
    """
    V-fold cross-validation folds over a training table.

    Usable directly as the ``cv`` argument of scikit-learn searchers.

    Attributes:
        folds: (analysis, assessment) positional index pairs.
        strata: Column used for stratification, if any.
    """

    folds: list[tuple[np.ndarray, np.ndarray]] = field(default_factory=list)
    strata: str | None = None

    def split(
        self,
        X: object = None,
        y: object = None,
        groups: object = None,
    ) -> Iterator[tuple[np.ndarray, np.ndarray]]:
        """Yield (analysis, assessment) index pairs."""
        _ = X, y, groups
        yield from self.folds

    def get_n_splits(self, X: object = None, y: object = None, groups: object = None) -> int:
        """Number of folds."""
        _ = X, y, groups
        return len(self.folds)

    def __len__(self) -> int:
        return len(self.folds)

    @property
    def ids(self) -> list[str]:
        """Fold identifiers (Fold01, Fold02, ...)."""
        width = max(2, len(str(len(self.folds))))
        return [f"Fold{i + 1:0{width}d}" for i in range(len(self.folds))]


def vfold_cv(
    df: pd.DataFrame,
    v: int = 10,
    strata: str | None = None,
    breaks: int = 4,
    seed: int = 42,
) -> Resamples:
    """
    Create v-fold cross-validation resamples.

    Args:
        df: Training table (positions refer to this frame's row order).
        v: Number of folds.
        strata: Optional column to stratify on.
        breaks: Quantile bins when the strata column is numeric.
        seed: Random seed.

    Returns:
        Resamples with v folds.
    """
    if v < 2 or v > len(df):
        msg = f"v must be between 2 and the number of rows ({len(df)}), got {v}"
        raise ValueError(msg)

    data = df.reset_index(drop=True)
    labels = None
    if strata is not None:
        if strata not in data.columns:
            msg = f"Strata column not found: {strata}"
            raise ValueError(msg)
        labels = make_strata(data[strata], breaks=breaks)
        if labels is not None and labels.value_counts().min() < v:
            log.warning("Some strata have fewer rows than folds, stratification disabled")
            labels = None

    positions = np.arange(len(data))
    if labels is not None:
        splitter = StratifiedKFold(n_splits=v, shuffle=True, random_state=seed)
        folds = list(splitter.split(positions, labels))
    else:
        splitter = KFold(n_splits=v, shuffle=True, random_state=seed)
        folds = list(splitter.split(positions))

    log.info("Created resamples", v=v, strata=strata, stratified=labels is not None)
    return Resamples(folds=folds, strata=strata)


def split_outcome(df: pd.DataFrame, outcome: str) -> tuple[pd.DataFrame, pd.Series]:
    """
    Separate predictors from the outcome column.

    Args:
        df: Table containing the outcome.
        outcome: Outcome column name.

    Returns:
        Tuple of (predictors, outcome).

    Raises:
        ValueError: If the outcome column is missing.
    """
    if outcome not in df.columns:
        msg = f"Missing outcome column: {outcome}"
        raise ValueError(msg)
    return df.drop(columns=[outcome]), df[outcome]
