"""Feature: a named set of gates with a combined enablement decision.

A feature is enabled for a thing when any one of its gates is open. Mutations
are applied by the adapter to the stored ``GateValues`` in one atomic
read-modify-write, and the result is swapped in memory only after it is
stored, so a failed write leaves the feature untouched.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from featuregate.core.exceptions import ValidationError
from featuregate.core.logging import get_logger
from featuregate.services.adapters import Adapter
from featuregate.services.gates import Gate, GateKind, GateValues
from featuregate.services.targets import (
    ActorTarget,
    BooleanTarget,
    GroupTarget,
    MutationTarget,
    PercentageOfActorsTarget,
    PercentageOfTimeTarget,
    actor_id_of,
    group_name_of,
    to_target,
)

logger = get_logger(__name__)


class FeatureState(str, Enum):
    """Coarse summary of a feature's gates."""

    ON = "on"
    OFF = "off"
    CONDITIONAL = "conditional"


class Feature:
    """A feature flag and its gates.

    Attributes:
        name: Unique, immutable feature key
        adapter: Storage the feature writes through
        gates: Gate instances, one per gate kind
    """

    def __init__(
        self,
        name: str,
        adapter: Adapter,
        gates: Tuple[Gate, ...],
        values: Optional[GateValues] = None,
    ):
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Feature name must be a non-empty string")
        self._name = name
        self.adapter = adapter
        self.gates = gates
        self._gates_by_kind: Dict[GateKind, Gate] = {gate.kind: gate for gate in gates}
        self._values = values if values is not None else GateValues()
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def key(self) -> str:
        return self._name

    def __repr__(self):
        return f"<Feature(name='{self.name}', state={self.state.value})>"

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def is_enabled(self, thing: Any = None) -> bool:
        """Check whether any gate is open for ``thing``.

        Args:
            thing: Subject being evaluated (optional)

        Returns:
            True if at least one gate is open
        """
        values = self._values
        for gate in self.gates:
            if gate.is_open(thing, values, self.name):
                logger.debug("feature_gate_open", feature=self.name, gate=gate.name)
                return True
        return False

    @property
    def gate_values(self) -> GateValues:
        return self._values

    @property
    def state(self) -> FeatureState:
        values = self._values
        if values.boolean or values.percentage_of_actors >= 100 or values.percentage_of_time >= 100:
            return FeatureState.ON
        if any(gate.is_set(values) for gate in self.gates):
            return FeatureState.CONDITIONAL
        return FeatureState.OFF

    @property
    def is_on(self) -> bool:
        return self.state is FeatureState.ON

    @property
    def is_off(self) -> bool:
        return self.state is FeatureState.OFF

    @property
    def is_conditional(self) -> bool:
        return self.state is FeatureState.CONDITIONAL

    @property
    def enabled_gates(self) -> List[Gate]:
        values = self._values
        return [gate for gate in self.gates if gate.is_set(values)]

    @property
    def disabled_gates(self) -> List[Gate]:
        values = self._values
        return [gate for gate in self.gates if not gate.is_set(values)]

    @property
    def enabled_gate_names(self) -> List[str]:
        return [gate.name for gate in self.enabled_gates]

    @property
    def boolean_value(self) -> bool:
        return self._values.boolean

    @property
    def actors_value(self) -> FrozenSet[str]:
        return self._values.actors

    @property
    def groups_value(self) -> FrozenSet[str]:
        return self._values.groups

    @property
    def percentage_of_actors_value(self) -> int:
        return self._values.percentage_of_actors

    @property
    def percentage_of_time_value(self) -> int:
        return self._values.percentage_of_time

    def enabled_groups(self) -> List[str]:
        """Names of the enabled groups, sorted."""
        return sorted(self._values.groups)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def gate_for(self, target: MutationTarget) -> Gate:
        """Return the gate a mutation target applies to."""
        if isinstance(target, BooleanTarget):
            kind = GateKind.BOOLEAN
        elif isinstance(target, ActorTarget):
            kind = GateKind.ACTORS
        elif isinstance(target, GroupTarget):
            kind = GateKind.GROUPS
        elif isinstance(target, PercentageOfActorsTarget):
            kind = GateKind.PERCENTAGE_OF_ACTORS
        elif isinstance(target, PercentageOfTimeTarget):
            kind = GateKind.PERCENTAGE_OF_TIME
        else:
            raise ValidationError(f"Unrecognized mutation target: {target!r}")

        gate = self._gates_by_kind.get(kind)
        if gate is None:
            raise ValidationError(f"Feature '{self.name}' has no {kind.value} gate")
        return gate

    def enable(self, target: Any = True) -> bool:
        """Open the gate matching ``target`` and persist the feature.

        Args:
            target: MutationTarget or raw value (see ``to_target``)

        Returns:
            True once the new gate values are stored

        Raises:
            ValidationError: target does not map to a gate
            StorageError: the adapter write failed
        """
        target = to_target(target)
        gate = self.gate_for(target)
        return self._apply("enable", gate, target)

    def disable(self, target: Any = False) -> bool:
        """Close the gate matching ``target`` and persist the feature.

        With the default target every gate is cleared.
        """
        target = to_target(target)
        gate = self.gate_for(target)
        return self._apply("disable", gate, target)

    def _apply(self, operation: str, gate: Gate, target: MutationTarget) -> bool:
        change = gate.enable if operation == "enable" else gate.disable

        with self._lock:
            # Applied to the stored gates, not the cached snapshot
            self._values = self.adapter.update(self.name, lambda current: change(current, target))

        logger.info(
            "feature_updated",
            feature=self.name,
            operation=operation,
            gate=gate.name,
            state=self.state.value,
        )
        return True

    def enable_actor(self, actor: Any) -> bool:
        return self.enable(ActorTarget(actor_id_of(actor)))

    def disable_actor(self, actor: Any) -> bool:
        return self.disable(ActorTarget(actor_id_of(actor)))

    def enable_group(self, group: Any) -> bool:
        return self.enable(GroupTarget(group_name_of(group)))

    def disable_group(self, group: Any) -> bool:
        return self.disable(GroupTarget(group_name_of(group)))

    def enable_percentage_of_actors(self, percentage: int) -> bool:
        return self.enable(PercentageOfActorsTarget(percentage))

    def disable_percentage_of_actors(self) -> bool:
        return self.disable(PercentageOfActorsTarget(0))

    def enable_percentage_of_time(self, percentage: int) -> bool:
        return self.enable(PercentageOfTimeTarget(percentage))

    def disable_percentage_of_time(self) -> bool:
        return self.disable(PercentageOfTimeTarget(0))

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def add(self) -> bool:
        """Persist the feature without touching its gates."""
        return self.adapter.add(self.name)

    def remove(self) -> bool:
        """Delete the feature from storage and reset in-memory gates."""
        removed = self.adapter.remove(self.name)
        with self._lock:
            self._values = GateValues()
        return removed

    def reload(self) -> "Feature":
        """Re-read gate values from storage (empty if not persisted)."""
        values = self.adapter.get(self.name)
        with self._lock:
            self._values = values if values is not None else GateValues()
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert feature to dictionary."""
        return {
            "name": self.name,
            "state": self.state.value,
            "gates": self._values.to_dict(),
        }

