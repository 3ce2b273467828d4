"""
Pandera schema for the housing sales table.
"""

import pandera.pandas as pa
from pandera.typing import Series


class HousingSchema(pa.DataFrameModel):
    """
    Schema for house sale data.

    Only the outcome is enforced; predictors vary between course datasets.
    """

    sale_price: Series[float] = pa.Field(gt=0, description="Sale price (outcome)")

    class Config:
        """Schema configuration."""

        name = "HousingSchema"
        strict = False
        coerce = True
