"""
Cleaning pipeline for the dollar-store product export.
"""

import pandas as pd

from tabdeploy.cleaning.columns import clean_names
from tabdeploy.cleaning.parsing import (
    parse_dates,
    parse_number,
    parse_stock_status,
    split_product_info,
)
from tabdeploy.schemas.cleaning import CleanProductSchema
from tabdeploy.utils.logging import get_logger

log = get_logger(__name__)

NUMERIC_COLUMNS = ["price", "star_rating", "review_count", "unit_size"]

OUTPUT_COLUMNS = [
    "brand",
    "product",
    "price",
    "star_rating",
    "review_count",
    "unit_size",
    "stock_status",
    "date_added",
    "first_sold_at",
    "days_on_shelf",
]


def days_between(start: pd.Series, end: pd.Series) -> pd.Series:
    """Fractional days from ``start`` to ``end``; missing if either is missing."""
    return (end - start).dt.total_seconds() / 86400.0


def clean_dollar_store(raw: pd.DataFrame, *, validate: bool = True) -> pd.DataFrame:
    """
    Clean the raw dollar-store export.

    Steps:
        1. snake_case column names
        2. numbers parsed from price, rating, review and size text
        3. "Out of stock" counted as zero units
        4. product info split into brand and product
        5. date added (day-month-year) and first sale (month-day-year plus
           time) parsed, then days on shelf computed

    Args:
        raw: Raw export with text columns.
        validate: Validate the result against CleanProductSchema.

    Returns:
        Cleaned table with the columns in OUTPUT_COLUMNS first, followed by
        any other source columns.
    """
    df = clean_names(raw)
    out = pd.DataFrame(index=df.index)

    if "product_info" in df.columns:
        out = out.join(split_product_info(df["product_info"]))
    else:
        log.warning("No product_info column, brand and product left missing")
        out["brand"] = pd.NA
        out["product"] = pd.NA

    for col in NUMERIC_COLUMNS:
        if col in df.columns:
            out[col] = parse_number(df[col])

    if "stock_status" in df.columns:
        out["stock_status"] = parse_stock_status(df["stock_status"])

    if "date_added" in df.columns:
        out["date_added"] = parse_dates(df["date_added"], "dmy")

    if "first_sold_day" in df.columns:
        stamp = df["first_sold_day"].astype("string")
        if "first_sold_time" in df.columns:
            stamp = stamp.str.cat(df["first_sold_time"].astype("string"), sep=" ")
        with_time = parse_dates(stamp, "mdy_hms")
        # Fall back to the date alone where the time is missing or unparseable
        out["first_sold_at"] = with_time.fillna(parse_dates(df["first_sold_day"], "mdy"))

    if "date_added" in out.columns and "first_sold_at" in out.columns:
        out["days_on_shelf"] = days_between(out["date_added"], out["first_sold_at"])

    handled = {"product_info", "first_sold_day", "first_sold_time", *out.columns}
    rest = [c for c in df.columns if c not in handled]
    out = pd.concat([out, df[rest]], axis=1)

    if validate:
        out = CleanProductSchema.validate(out)

    log.info(
        "Cleaned dollar-store data",
        rows=len(out),
        missing={c: int(out[c].isna().sum()) for c in OUTPUT_COLUMNS if c in out.columns},
    )
    return out
