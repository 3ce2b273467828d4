"""
Data ingestion layer for loading raw tables with schema validation.

All raw data loading happens through this module to ensure
consistent validation at system boundaries.
"""

from tabdeploy.ingestion.base import DatasetLoader, read_table
from tabdeploy.ingestion.datasets import (
    CreditLoader,
    DollarStoreLoader,
    GenericLoader,
    HousingLoader,
    load_dataset,
)

__all__ = [
    "CreditLoader",
    "DatasetLoader",
    "DollarStoreLoader",
    "GenericLoader",
    "HousingLoader",
    "load_dataset",
    "read_table",
]
