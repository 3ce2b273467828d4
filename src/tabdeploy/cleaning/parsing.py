"""
Parsers for messy text columns: numbers, dates and delimited fields.

Every parser returns missing values only where the text carries no usable
information; it never raises on a bad cell.
"""

import itertools
import re
from collections.abc import Sequence
from typing import Literal

import numpy as np
import pandas as pd

from tabdeploy.utils.logging import get_logger

log = get_logger(__name__)

DateOrder = Literal["dmy", "mdy", "ymd", "dmy_hms", "mdy_hms"]

_NUMBER_RE = re.compile(r"([-+]?(?:\d[\d,]*(?:\.\d*)?|\.\d+))")
_DATE_SEP_RE = re.compile(r"[\s/\-.,:]+")

# strptime directives per date component
_DAY = ["%d"]
_MONTH = ["%m", "%b", "%B"]
_YEAR = ["%Y", "%y"]
_TIME = ["%H %M %S", "%H %M", "%I %M %S %p", "%I %M %p"]

_ORDERS: dict[str, tuple[list[str], ...]] = {
    "dmy": (_DAY, _MONTH, _YEAR),
    "mdy": (_MONTH, _DAY, _YEAR),
    "ymd": (_YEAR, _MONTH, _DAY),
}


def parse_number(series: pd.Series) -> pd.Series:
    """
    Extract the first number from each string.

    Grouping commas are dropped, so "$1,234.50" gives 1234.5 and
    "(1,024 reviews)" gives 1024. Cells without a number become NaN.
    Numeric input is returned as float unchanged.
    """
    if pd.api.types.is_numeric_dtype(series):
        return series.astype(float)

    extracted = series.astype("string").str.extract(_NUMBER_RE, expand=False)
    cleaned = extracted.str.replace(",", "", regex=False)
    return pd.to_numeric(cleaned, errors="coerce").astype(float)


def _formats(order: str) -> list[str]:
    date_part, _, time_part = order.partition("_")
    if date_part not in _ORDERS:
        msg = f"Unknown date order '{order}'. Use one of: dmy, mdy, ymd, dmy_hms, mdy_hms"
        raise ValueError(msg)
    if time_part not in ("", "hms"):
        msg = f"Unknown time component in order '{order}'"
        raise ValueError(msg)

    dates = [" ".join(combo) for combo in itertools.product(*_ORDERS[date_part])]
    if not time_part:
        return dates
    return [f"{d} {t}" for d in dates for t in _TIME]


def parse_dates(series: pd.Series, order: DateOrder) -> pd.Series:
    """
    Parse date or date-time strings with a known component order.

    Separators are ignored ("Dec-1-2024", "12/01/2024" and "1 Dec 2024" all
    parse with the matching order); month names may be abbreviated or full.

    Args:
        series: Text column.
        order: Component order, optionally with a time part (``mdy_hms``).

    Returns:
        datetime64 column; unparseable cells are NaT.

    Raises:
        ValueError: If ``order`` is unknown.
    """
    formats = _formats(order)
    text = series.astype("string").str.strip()
    text = text.str.replace(_DATE_SEP_RE, " ", regex=True).str.strip()

    result = pd.Series(pd.NaT, index=series.index, dtype="datetime64[ns]")
    for fmt in formats:
        todo = result.isna() & text.notna()
        if not todo.any():
            break
        parsed = pd.to_datetime(text[todo], format=fmt, errors="coerce")
        result.loc[todo] = parsed

    n_failed = int((result.isna() & series.notna()).sum())
    if n_failed:
        log.debug("Unparseable dates set to missing", order=order, n=n_failed)
    return result


def split_product_info(
    series: pd.Series,
    delim: str = " - ",
    names: Sequence[str] = ("brand", "product"),
    prefix: str = "Brand:",
) -> pd.DataFrame:
    """
    Split a combined "Brand: X - Product" column into two columns.

    Extra delimiters stay in the second column; values without a delimiter
    fill the first column only. The ``prefix`` label is stripped from the
    first column, and empty strings become missing.

    Args:
        series: Combined text column.
        delim: Delimiter between the parts.
        names: Output column names.
        prefix: Label to strip from the first part.

    Returns:
        DataFrame with the two named columns, same index as ``series``.
    """
    first, second = names
    parts = series.astype("string").str.split(delim, n=1, expand=True, regex=False)
    # Empty or delimiter-free input yields fewer than two columns
    parts = parts.reindex(columns=[0, 1]).astype("string")

    out = pd.DataFrame(index=series.index)
    head = parts[0].str.strip()
    if prefix:
        head = head.str.replace(rf"^\s*{re.escape(prefix)}\s*", "", regex=True)
    out[first] = head.str.strip()
    out[second] = parts[1].str.strip()
    out = out.mask(out.eq("").fillna(False))
    return out.astype(object).where(out.notna(), np.nan)


def parse_stock_status(series: pd.Series, out_of_stock: str = "out of stock") -> pd.Series:
    """
    Units in stock: "Out of stock" is 0, otherwise the first number in the text.
    """
    text = series.astype("string").str.strip()
    numbers = parse_number(text)
    is_out = text.str.lower().str.contains(out_of_stock, regex=False).fillna(False).astype(bool)
    return numbers.mask(is_out, 0.0)
