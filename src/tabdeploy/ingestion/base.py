"""
Base classes and utilities for data ingestion.

Provides common functionality for all table loaders.
"""

from abc import ABC
from pathlib import Path
from typing import Generic, TypeVar
from urllib.parse import urlparse

import pandas as pd
import pandera.pandas as pa

from tabdeploy.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T", bound=pa.DataFrameModel)

REMOTE_SCHEMES = {"http", "https", "ftp", "s3", "gs"}


def is_remote(source: str | Path) -> bool:
    """Whether a source string points at a remote location."""
    return urlparse(str(source)).scheme in REMOTE_SCHEMES


def read_table(source: str | Path, **read_kwargs: object) -> pd.DataFrame:
    """
    Read a CSV table from a URL or a local path.

    Args:
        source: HTTP(S) URL or local file path.
        **read_kwargs: Passed through to pandas.read_csv.

    Returns:
        Raw DataFrame.

    Raises:
        FileNotFoundError: If a local source does not exist.
    """
    if not is_remote(source):
        path = Path(source)
        if not path.exists():
            msg = f"Data file not found: {path}"
            raise FileNotFoundError(msg)
        source = path

    log.info("Reading table", source=str(source))
    df = pd.read_csv(source, **read_kwargs)
    log.info("Read table", rows=len(df), columns=len(df.columns))
    return df


class DatasetLoader(ABC, Generic[T]):
    """
    Abstract base class for table loaders.

    All loaders inherit from this class to ensure consistent
    schema validation at system boundaries.
    """

    schema: type[T] | None = None

    def __init__(self, source: str | Path) -> None:
        """
        Initialize data loader.

        Args:
            source: URL or path of the CSV to load.
        """
        self.source = source

    def _load_raw(self) -> pd.DataFrame:
        """Load raw data from source."""
        return read_table(self.source)

    def _prepare(self, df: pd.DataFrame) -> pd.DataFrame:
        """Post-process the raw frame before validation. Subclasses override as needed."""
        return df

    def load(self, *, validate: bool = True) -> pd.DataFrame:
        """
        Load and prepare data, then optionally validate it.

        Args:
            validate: Whether to validate against schema.

        Returns:
            Loaded DataFrame.

        Raises:
            FileNotFoundError: If a local data file is not found.
            pandera.errors.SchemaError: If validation fails.
        """
        log.info("Loading data", loader=self.__class__.__name__)

        df = self._prepare(self._load_raw())

        if validate and self.schema is not None:
            df = self.schema.validate(df)
            log.info("Schema validation passed", schema=self.schema.__name__)

        return df
