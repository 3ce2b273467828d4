"""
Pandera schemas for model prediction output.
"""

import pandera.pandas as pa
from pandera.typing import Series


class RegressionPredictionSchema(pa.DataFrameModel):
    """Schema for regression predictions."""

    pred: Series[float] = pa.Field(alias=".pred", description="Predicted value")

    class Config:
        """Schema configuration."""

        name = "RegressionPredictionSchema"
        strict = False
        coerce = True


class ClassificationPredictionSchema(pa.DataFrameModel):
    """Schema for class predictions."""

    pred_class: Series[str] = pa.Field(alias=".pred_class", description="Predicted class")

    class Config:
        """Schema configuration."""

        name = "ClassificationPredictionSchema"
        strict = False
        coerce = True
