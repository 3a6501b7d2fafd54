"""Gates: the individual rules that can open a feature.

A feature's stored state is a single ``GateValues`` snapshot. Each gate reads
its own slice of that snapshot when evaluating, and produces a new snapshot
when enabled or disabled. Snapshots are immutable so a reader never sees a
half-applied mutation.

Gate kinds:
- boolean: on for everyone
- actors: on for listed thing ids
- groups: on for things matching a registered group
- percentage_of_actors: on for a stable hash bucket of things
- percentage_of_time: on for a random share of calls
"""

from __future__ import annotations

import hashlib
import random
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional, Tuple

from featuregate.core.exceptions import ValidationError
from featuregate.core.logging import get_logger
from featuregate.services.groups import GroupRegistry
from featuregate.services.targets import (
    ActorTarget,
    BooleanTarget,
    GroupTarget,
    MutationTarget,
    PercentageOfActorsTarget,
    PercentageOfTimeTarget,
    validate_percentage,
)
from featuregate.services.things import thing_id

logger = get_logger(__name__)


class GateKind(str, Enum):
    """Gate kinds, values double as storage keys."""

    BOOLEAN = "boolean"
    ACTORS = "actors"
    GROUPS = "groups"
    PERCENTAGE_OF_ACTORS = "percentage_of_actors"
    PERCENTAGE_OF_TIME = "percentage_of_time"


@dataclass(frozen=True)
class GateValues:
    """Stored values of every gate of one feature."""

    boolean: bool = False
    actors: FrozenSet[str] = field(default_factory=frozenset)
    groups: FrozenSet[str] = field(default_factory=frozenset)
    percentage_of_actors: int = 0
    percentage_of_time: int = 0

    def __post_init__(self):
        object.__setattr__(self, "actors", frozenset(self.actors))
        object.__setattr__(self, "groups", frozenset(self.groups))
        validate_percentage(self.percentage_of_actors)
        validate_percentage(self.percentage_of_time)

    @property
    def is_empty(self) -> bool:
        return self == GateValues()

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation, sets sorted for stable output."""
        return {
            GateKind.BOOLEAN.value: self.boolean,
            GateKind.ACTORS.value: sorted(self.actors),
            GateKind.GROUPS.value: sorted(self.groups),
            GateKind.PERCENTAGE_OF_ACTORS.value: self.percentage_of_actors,
            GateKind.PERCENTAGE_OF_TIME.value: self.percentage_of_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GateValues":
        return cls(
            boolean=bool(data.get(GateKind.BOOLEAN.value, False)),
            actors=frozenset(data.get(GateKind.ACTORS.value) or ()),
            groups=frozenset(data.get(GateKind.GROUPS.value) or ()),
            percentage_of_actors=int(data.get(GateKind.PERCENTAGE_OF_ACTORS.value) or 0),
            percentage_of_time=int(data.get(GateKind.PERCENTAGE_OF_TIME.value) or 0),
        )

    def to_rows(self) -> Iterable[Tuple[str, str]]:
        """Flatten into (gate key, value) pairs for row-per-value storage.

        Unset gates produce no rows.
        """
        if self.boolean:
            yield GateKind.BOOLEAN.value, "true"
        for actor in sorted(self.actors):
            yield GateKind.ACTORS.value, actor
        for group in sorted(self.groups):
            yield GateKind.GROUPS.value, group
        if self.percentage_of_actors:
            yield GateKind.PERCENTAGE_OF_ACTORS.value, str(self.percentage_of_actors)
        if self.percentage_of_time:
            yield GateKind.PERCENTAGE_OF_TIME.value, str(self.percentage_of_time)

    @classmethod
    def from_rows(cls, rows: Iterable[Tuple[str, str]]) -> "GateValues":
        """Inverse of ``to_rows``. Unknown gate keys are skipped."""
        boolean = False
        actors = set()
        groups = set()
        percentage_of_actors = 0
        percentage_of_time = 0

        for key, value in rows:
            if key == GateKind.BOOLEAN.value:
                boolean = value == "true"
            elif key == GateKind.ACTORS.value:
                actors.add(value)
            elif key == GateKind.GROUPS.value:
                groups.add(value)
            elif key == GateKind.PERCENTAGE_OF_ACTORS.value:
                percentage_of_actors = int(value)
            elif key == GateKind.PERCENTAGE_OF_TIME.value:
                percentage_of_time = int(value)
            else:
                logger.warning("unknown_gate_key_skipped", gate_key=key)

        return cls(
            boolean=boolean,
            actors=frozenset(actors),
            groups=frozenset(groups),
            percentage_of_actors=percentage_of_actors,
            percentage_of_time=percentage_of_time,
        )


def actor_bucket(feature_name: str, actor_id: str) -> int:
    """Stable bucket (0-99) for an actor within a feature.

    SHA-256 of ``"{feature_name}:{actor_id}"``, first four bytes as an
    unsigned int, modulo 100. Keying by feature spreads a given actor across
    different buckets for different features.
    """
    hash_input = f"{feature_name}:{actor_id}"
    hash_bytes = hashlib.sha256(hash_input.encode()).digest()
    hash_int = int.from_bytes(hash_bytes[:4], byteorder="big", signed=False)
    return hash_int % 100


class Gate:
    """Base gate. Subclasses implement one gate kind."""

    kind: GateKind
    target_type: type

    def is_open(self, thing: Any, values: GateValues, feature_name: str) -> bool:
        raise NotImplementedError

    def is_set(self, values: GateValues) -> bool:
        raise NotImplementedError

    def enable(self, values: GateValues, target: MutationTarget) -> GateValues:
        raise NotImplementedError

    def disable(self, values: GateValues, target: MutationTarget) -> GateValues:
        raise NotImplementedError

    def _check_target(self, target: MutationTarget) -> None:
        if not isinstance(target, self.target_type):
            raise ValidationError(
                f"{type(target).__name__} cannot be applied to the {self.kind.value} gate"
            )

    @property
    def name(self) -> str:
        return self.kind.value

    def __repr__(self):
        return f"<{type(self).__name__}>"


class BooleanGate(Gate):
    kind = GateKind.BOOLEAN
    target_type = BooleanTarget

    def is_open(self, thing: Any, values: GateValues, feature_name: str) -> bool:
        return values.boolean

    def is_set(self, values: GateValues) -> bool:
        return values.boolean

    def enable(self, values: GateValues, target: MutationTarget) -> GateValues:
        self._check_target(target)
        return replace(values, boolean=bool(target.value))

    def disable(self, values: GateValues, target: MutationTarget) -> GateValues:
        self._check_target(target)
        # Turning the boolean gate off clears every other gate as well
        return GateValues()


class ActorsGate(Gate):
    kind = GateKind.ACTORS
    target_type = ActorTarget

    def is_open(self, thing: Any, values: GateValues, feature_name: str) -> bool:
        actor_id = thing_id(thing)
        if actor_id is None:
            return False
        return actor_id in values.actors

    def is_set(self, values: GateValues) -> bool:
        return bool(values.actors)

    def enable(self, values: GateValues, target: MutationTarget) -> GateValues:
        self._check_target(target)
        return replace(values, actors=values.actors | {target.id})

    def disable(self, values: GateValues, target: MutationTarget) -> GateValues:
        self._check_target(target)
        return replace(values, actors=values.actors - {target.id})


class GroupsGate(Gate):
    kind = GateKind.GROUPS
    target_type = GroupTarget

    def __init__(self, groups: GroupRegistry):
        self.groups = groups

    def is_open(self, thing: Any, values: GateValues, feature_name: str) -> bool:
        if thing is None or not values.groups:
            return False
        for name in sorted(values.groups):
            group = self.groups.find(name)
            if group is None:
                logger.debug("group_not_registered", feature=feature_name, group=name)
                continue
            if group.matches(thing):
                return True
        return False

    def is_set(self, values: GateValues) -> bool:
        return bool(values.groups)

    def enable(self, values: GateValues, target: MutationTarget) -> GateValues:
        self._check_target(target)
        return replace(values, groups=values.groups | {target.name})

    def disable(self, values: GateValues, target: MutationTarget) -> GateValues:
        self._check_target(target)
        return replace(values, groups=values.groups - {target.name})


class PercentageOfActorsGate(Gate):
    kind = GateKind.PERCENTAGE_OF_ACTORS
    target_type = PercentageOfActorsTarget

    def is_open(self, thing: Any, values: GateValues, feature_name: str) -> bool:
        percentage = values.percentage_of_actors
        if percentage <= 0:
            return False
        actor_id = thing_id(thing)
        if actor_id is None:
            return False
        if percentage >= 100:
            return True
        return actor_bucket(feature_name, actor_id) < percentage

    def is_set(self, values: GateValues) -> bool:
        return values.percentage_of_actors > 0

    def enable(self, values: GateValues, target: MutationTarget) -> GateValues:
        self._check_target(target)
        return replace(values, percentage_of_actors=target.value)

    def disable(self, values: GateValues, target: MutationTarget) -> GateValues:
        self._check_target(target)
        return replace(values, percentage_of_actors=0)


class PercentageOfTimeGate(Gate):
    kind = GateKind.PERCENTAGE_OF_TIME
    target_type = PercentageOfTimeTarget

    def __init__(self, rng: Optional[Callable[[], float]] = None):
        # rng returns a float in [0, 1)
        self.rng = rng or random.random

    def is_open(self, thing: Any, values: GateValues, feature_name: str) -> bool:
        percentage = values.percentage_of_time
        if percentage >= 100:
            return True
        if percentage <= 0:
            return False
        return self.rng() * 100 < percentage

    def is_set(self, values: GateValues) -> bool:
        return values.percentage_of_time > 0

    def enable(self, values: GateValues, target: MutationTarget) -> GateValues:
        self._check_target(target)
        return replace(values, percentage_of_time=target.value)

    def disable(self, values: GateValues, target: MutationTarget) -> GateValues:
        self._check_target(target)
        return replace(values, percentage_of_time=0)


def default_gates(groups: GroupRegistry, rng: Optional[Callable[[], float]] = None) -> Tuple[Gate, ...]:
    """Gates every feature carries, cheapest checks first."""
    return (
        BooleanGate(),
        ActorsGate(),
        PercentageOfActorsGate(),
        PercentageOfTimeGate(rng),
        GroupsGate(groups),
    )
