"""
Column name cleaning.

Turns arbitrary export headers into unique snake_case names.
"""

import re
from collections.abc import Iterable

import pandas as pd

from tabdeploy.utils.logging import get_logger

log = get_logger(__name__)

# Symbols spelled out before non-alphanumerics are replaced
SYMBOLS: dict[str, str] = {
    "%": "_percent_",
    "#": "_number_",
    "&": "_and_",
    "@": "_at_",
}

_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_NON_ALNUM_RE = re.compile(r"[^0-9a-zA-Z]+")


def make_clean_name(name: object) -> str:
    """
    snake_case a single column name.

    Examples:
        "Product Info" -> "product_info"
        "firstSoldDay" -> "first_sold_day"
        "% Off" -> "percent_off"
    """
    text = str(name)
    for symbol, word in SYMBOLS.items():
        text = text.replace(symbol, word)
    text = _CAMEL_RE.sub("_", text)
    text = _NON_ALNUM_RE.sub("_", text).strip("_").lower()
    if not text:
        return "x"
    if text[0].isdigit():
        return f"x{text}"
    return text


def make_clean_names(names: Iterable[object]) -> list[str]:
    """Clean names and suffix duplicates with _2, _3, ..."""
    cleaned: list[str] = []
    seen: dict[str, int] = {}
    for name in names:
        base = make_clean_name(name)
        count = seen.get(base, 0) + 1
        seen[base] = count
        candidate = base if count == 1 else f"{base}_{count}"
        while candidate in cleaned:
            count += 1
            candidate = f"{base}_{count}"
        seen[base] = count
        cleaned.append(candidate)
    return cleaned


def clean_names(df: pd.DataFrame) -> pd.DataFrame:
    """
    Return a copy of ``df`` with snake_case, unique column names.

    Args:
        df: DataFrame with raw headers.

    Returns:
        DataFrame with cleaned column names.
    """
    new_names = make_clean_names(df.columns)
    renamed = {old: new for old, new in zip(df.columns, new_names) if str(old) != new}
    if renamed:
        log.debug("Cleaned column names", renamed=renamed)
    out = df.copy()
    out.columns = new_names
    return out
