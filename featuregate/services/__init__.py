"""
Feature gate service layer

This module provides:
- Gates (boolean, actors, groups, percentage of actors, percentage of time)
- Features and their mutation targets
- Storage adapters (memory, SQLAlchemy, Redis)
- The registry callers use to look up and change features
"""

from featuregate.services.adapters import Adapter, MemoryAdapter, RedisAdapter, SQLAlchemyAdapter
from featuregate.services.feature import Feature, FeatureState
from featuregate.services.gates import GateKind, GateValues, actor_bucket
from featuregate.services.groups import Group, GroupRegistry
from featuregate.services.registry import Registry, create_adapter, create_registry
from featuregate.services.targets import (
    ActorTarget,
    BooleanTarget,
    GroupTarget,
    MutationTarget,
    PercentageOfActorsTarget,
    PercentageOfTimeTarget,
    to_target,
)
from featuregate.services.things import Thing, thing_id

__all__ = [
    "ActorTarget",
    "Adapter",
    "BooleanTarget",
    "Feature",
    "FeatureState",
    "GateKind",
    "GateValues",
    "Group",
    "GroupRegistry",
    "GroupTarget",
    "MemoryAdapter",
    "MutationTarget",
    "PercentageOfActorsTarget",
    "PercentageOfTimeTarget",
    "RedisAdapter",
    "Registry",
    "SQLAlchemyAdapter",
    "Thing",
    "actor_bucket",
    "create_adapter",
    "create_registry",
    "thing_id",
    "to_target",
]
