"""
Loaders for the course datasets.
"""

import pandas as pd

from tabdeploy.config.settings import DatasetConfig, DatasetKind
from tabdeploy.ingestion.base import DatasetLoader, read_table
from tabdeploy.schemas.credit import CreditSchema
from tabdeploy.schemas.housing import HousingSchema
from tabdeploy.utils.logging import get_logger

log = get_logger(__name__)


class CreditLoader(DatasetLoader[CreditSchema]):
    """Loader for the credit approval table; ``status`` becomes categorical."""

    schema = CreditSchema

    def _prepare(self, df: pd.DataFrame) -> pd.DataFrame:
        df = df.copy()
        if "status" not in df.columns:
            return df
        df["status"] = df["status"].astype("category")
        log.info(
            "Prepared credit data",
            status_counts=df["status"].value_counts().to_dict(),
        )
        return df


class HousingLoader(DatasetLoader[HousingSchema]):
    """Loader for the housing sales table."""

    schema = HousingSchema


class GenericLoader(DatasetLoader):
    """Loader without a schema for arbitrary tables."""


class DollarStoreLoader(DatasetLoader):
    """Loader for the raw dollar-store product export (cleaned downstream)."""

    def _load_raw(self) -> pd.DataFrame:
        # All columns as text
        return read_table(self.source, dtype=str)


LOADERS: dict[DatasetKind, type[DatasetLoader]] = {
    DatasetKind.CREDIT: CreditLoader,
    DatasetKind.HOUSING: HousingLoader,
    DatasetKind.GENERIC: GenericLoader,
}


def load_dataset(config: DatasetConfig, *, validate: bool = True) -> pd.DataFrame:
    """
    Load the modelling table described by a dataset config.

    Args:
        config: Dataset configuration.
        validate: Whether to validate against the dataset's schema.

    Returns:
        Loaded DataFrame containing the outcome column.

    Raises:
        ValueError: If the outcome column is missing.
    """
    loader = LOADERS[config.kind](config.source)
    df = loader.load(validate=validate)

    if config.outcome not in df.columns:
        msg = f"Outcome column {config.outcome!r} not found in {config.source}"
        raise ValueError(msg)

    return df
