"""
Pandera schema for the cleaned dollar-store product table.
"""

from typing import Optional

import pandera.pandas as pa
from pandera.typing import Series


class CleanProductSchema(pa.DataFrameModel):
    """
    Schema for cleaned product data.

    Every parsed column is nullable: a value is missing only when the raw
    text carried no usable information.
    """

    brand: Series[str] = pa.Field(nullable=True)
    product: Series[str] = pa.Field(nullable=True)
    price: Series[float] = pa.Field(ge=0, nullable=True)
    star_rating: Optional[Series[float]] = pa.Field(ge=0, le=5, nullable=True)
    review_count: Optional[Series[float]] = pa.Field(ge=0, nullable=True)
    stock_status: Optional[Series[float]] = pa.Field(ge=0, nullable=True)
    unit_size: Optional[Series[float]] = pa.Field(ge=0, nullable=True)
    date_added: Optional[Series[pa.DateTime]] = pa.Field(nullable=True)
    first_sold_at: Optional[Series[pa.DateTime]] = pa.Field(nullable=True)
    days_on_shelf: Optional[Series[float]] = pa.Field(nullable=True)

    class Config:
        """Schema configuration."""

        name = "CleanProductSchema"
        strict = False
        coerce = True
