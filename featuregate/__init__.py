"""featuregate: feature flags with boolean, actor, group and percentage gates."""

from featuregate.core.exceptions import (
    ConfigurationError,
    FeatureGateError,
    GroupNotRegisteredError,
    StorageError,
    ValidationError,
)
from featuregate.models.feature import StorageLocation
from featuregate.services import (
    ActorTarget,
    BooleanTarget,
    Feature,
    FeatureState,
    GroupTarget,
    MemoryAdapter,
    PercentageOfActorsTarget,
    PercentageOfTimeTarget,
    RedisAdapter,
    Registry,
    SQLAlchemyAdapter,
    Thing,
    create_registry,
)

__version__ = "0.1.0"

__all__ = [
    "ActorTarget",
    "BooleanTarget",
    "ConfigurationError",
    "Feature",
    "FeatureGateError",
    "FeatureState",
    "GroupNotRegisteredError",
    "GroupTarget",
    "MemoryAdapter",
    "PercentageOfActorsTarget",
    "PercentageOfTimeTarget",
    "RedisAdapter",
    "Registry",
    "SQLAlchemyAdapter",
    "StorageError",
    "StorageLocation",
    "Thing",
    "ValidationError",
    "create_registry",
]
