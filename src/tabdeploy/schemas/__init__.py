"""
Schema definitions using Pandera for data validation.

All data contracts are defined here to ensure explicit,
validated data structures at system boundaries.
"""

from tabdeploy.schemas.cleaning import CleanProductSchema
from tabdeploy.schemas.credit import CreditSchema
from tabdeploy.schemas.housing import HousingSchema
from tabdeploy.schemas.output import (
    ClassificationPredictionSchema,
    RegressionPredictionSchema,
)

__all__ = [
    "ClassificationPredictionSchema",
    "CleanProductSchema",
    "CreditSchema",
    "HousingSchema",
    "RegressionPredictionSchema",
]
