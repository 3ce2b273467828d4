"""
Data cleaning for messy text exports.
"""

from tabdeploy.cleaning.columns import clean_names, make_clean_name
from tabdeploy.cleaning.parsing import (
    parse_dates,
    parse_number,
    parse_stock_status,
    split_product_info,
)
from tabdeploy.cleaning.products import clean_dollar_store

__all__ = [
    "clean_dollar_store",
    "clean_names",
    "make_clean_name",
    "parse_dates",
    "parse_number",
    "parse_stock_status",
    "split_product_info",
]
