"""Tests for Pandera schemas."""

import pandas as pd
import pandera.errors
import pytest

from tabdeploy.schemas import (
    ClassificationPredictionSchema,
    CleanProductSchema,
    HousingSchema,
    RegressionPredictionSchema,
)


class TestHousingSchema:
    """Tests for the housing schema."""

    def test_positive_price(self) -> None:
        """Test that non-positive sale prices fail."""
        with pytest.raises(pandera.errors.SchemaError):
            HousingSchema.validate(pd.DataFrame({"sale_price": [100.0, 0.0]}))

    def test_extra_columns_allowed(self) -> None:
        """Test that predictors are not enforced."""
        df = pd.DataFrame({"sale_price": [1.0], "anything": ["x"]})
        assert HousingSchema.validate(df).shape == (1, 2)


class TestPredictionSchemas:
    """Tests for prediction output schemas."""

    def test_regression_coerces(self) -> None:
        """Test that integer predictions are coerced to float."""
        out = RegressionPredictionSchema.validate(pd.DataFrame({".pred": [1, 2]}))
        assert out[".pred"].dtype == "float64"

    def test_regression_requires_column(self) -> None:
        """Test that the .pred column is required."""
        with pytest.raises(pandera.errors.SchemaError):
            RegressionPredictionSchema.validate(pd.DataFrame({"pred": [1.0]}))

    def test_classification_coerces_to_str(self) -> None:
        """Test that class labels become strings."""
        out = ClassificationPredictionSchema.validate(pd.DataFrame({".pred_class": [1, 0]}))
        assert out[".pred_class"].tolist() == ["1", "0"]


class TestCleanProductSchema:
    """Tests for the cleaned product schema."""

    def test_rating_bounds(self) -> None:
        """Test that ratings above five fail."""
        df = pd.DataFrame(
            {"brand": ["a"], "product": ["b"], "price": [1.0], "star_rating": [6.0]}
        )
        with pytest.raises(pandera.errors.SchemaError):
            CleanProductSchema.validate(df)
