"""
Pandera schema for the credit approval table.

One row per applicant; ``status`` is the outcome.
"""

from typing import Optional

import pandera.pandas as pa
from pandera.typing import Series


class CreditSchema(pa.DataFrameModel):
    """
    Schema for credit applicant data.

    Monetary columns may be missing (imputed downstream) but never negative.
    """

    status: Series[pa.Category] = pa.Field(
        description="Credit status outcome (e.g., 'good' / 'bad')",
    )
    assets: Series[float] = pa.Field(ge=0, nullable=True, description="Applicant assets")
    debt: Series[float] = pa.Field(ge=0, nullable=True, description="Applicant debt")
    income: Series[float] = pa.Field(ge=0, nullable=True, description="Applicant income")
    price: Series[float] = pa.Field(ge=0, nullable=True, description="Purchase price")
    expenses: Series[float] = pa.Field(ge=0, nullable=True, description="Living expenses")
    amount: Optional[Series[float]] = pa.Field(
        ge=0, nullable=True, description="Requested loan amount"
    )
    age: Optional[Series[float]] = pa.Field(ge=0, nullable=True)

    class Config:
        """Schema configuration."""

        name = "CreditSchema"
        strict = False  # Allow extra columns
        coerce = True
