"""Storage models."""

from featuregate.models.feature import (
    DEFAULT_FEATURES_TABLE,
    DEFAULT_GATES_TABLE,
    FeatureModels,
    StorageLocation,
    build_models,
)

__all__ = [
    "DEFAULT_FEATURES_TABLE",
    "DEFAULT_GATES_TABLE",
    "FeatureModels",
    "StorageLocation",
    "build_models",
]
