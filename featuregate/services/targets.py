"""Mutation targets for enable/disable.

A target says which gate a mutation touches and with what value. Callers may
pass raw values; ``to_target`` maps them onto the tagged variants:

    True / False        -> BooleanTarget
    int / float         -> PercentageOfActorsTarget
    str / Enum / Group  -> GroupTarget
    Thing / has an id   -> ActorTarget
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from featuregate.core.exceptions import ValidationError
from featuregate.services.groups import Group
from featuregate.services.things import thing_id


def validate_percentage(value: Any) -> int:
    """Return ``value`` as an int percentage or raise ValidationError."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"Percentage must be a number, got {type(value).__name__}")
    if value < 0 or value > 100:
        raise ValidationError(f"Percentage must be between 0 and 100, got {value}")
    if int(value) != value:
        raise ValidationError(f"Percentage must be a whole number, got {value}")
    return int(value)


@dataclass(frozen=True)
class BooleanTarget:
    value: bool = True


@dataclass(frozen=True)
class ActorTarget:
    id: str

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id:
            raise ValidationError("Actor id must be a non-empty string")


@dataclass(frozen=True)
class GroupTarget:
    name: str

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name:
            raise ValidationError("Group name must be a non-empty string")


@dataclass(frozen=True)
class PercentageOfActorsTarget:
    value: int

    def __post_init__(self):
        object.__setattr__(self, "value", validate_percentage(self.value))


@dataclass(frozen=True)
class PercentageOfTimeTarget:
    value: int

    def __post_init__(self):
        object.__setattr__(self, "value", validate_percentage(self.value))


MutationTarget = Union[
    BooleanTarget,
    ActorTarget,
    GroupTarget,
    PercentageOfActorsTarget,
    PercentageOfTimeTarget,
]

_TARGET_TYPES = (
    BooleanTarget,
    ActorTarget,
    GroupTarget,
    PercentageOfActorsTarget,
    PercentageOfTimeTarget,
)


def to_target(raw: Any) -> MutationTarget:
    """Coerce a raw enable/disable argument into a MutationTarget.

    Raises:
        ValidationError: if the value maps to no gate
    """
    if isinstance(raw, _TARGET_TYPES):
        return raw
    # bool is a subclass of int, check it first
    if isinstance(raw, bool):
        return BooleanTarget(raw)
    if isinstance(raw, (int, float)):
        return PercentageOfActorsTarget(raw)
    if isinstance(raw, (str, Enum, Group)):
        return GroupTarget(group_name_of(raw))
    if raw is not None:
        actor_id = thing_id(raw)
        if actor_id:
            return ActorTarget(actor_id)
    raise ValidationError(f"Unrecognized mutation target: {raw!r}")


def actor_id_of(actor: Any) -> str:
    """Actor id for ``actor`` (an ActorTarget, id string, or thing)."""
    if isinstance(actor, ActorTarget):
        return actor.id
    actor_id = thing_id(actor)
    if not actor_id:
        raise ValidationError(f"Cannot derive an actor id from {actor!r}")
    return actor_id


def group_name_of(group: Any) -> str:
    """Group name for ``group`` (a GroupTarget, name string, Enum or Group)."""
    if isinstance(group, GroupTarget):
        return group.name
    if isinstance(group, Enum):
        name = group.value
    elif isinstance(group, str):
        name = group
    else:
        name = getattr(group, "name", None)
    if not isinstance(name, str) or not name:
        raise ValidationError(f"Cannot derive a group name from {group!r}")
    return name
