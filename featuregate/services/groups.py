"""Named groups of things.

A group is a predicate over a thing. Groups are registered once per registry
and looked up by name when a groups gate is evaluated.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from featuregate.core.exceptions import GroupNotRegisteredError, ValidationError
from featuregate.core.logging import get_logger

logger = get_logger(__name__)

GroupPredicate = Callable[[Any], bool]


@dataclass(frozen=True)
class Group:
    """A named membership test."""

    name: str
    predicate: GroupPredicate

    def matches(self, thing: Any) -> bool:
        """Check membership, treating a failing predicate as "not a member"."""
        if thing is None:
            return False
        try:
            return bool(self.predicate(thing))
        except Exception as e:
            logger.warning("group_predicate_failed", group=self.name, error=str(e), error_type=type(e).__name__)
            return False


class GroupRegistry:
    """Thread-safe name -> Group lookup."""

    def __init__(self):
        self._groups: Dict[str, Group] = {}
        self._lock = threading.Lock()

    def register(self, name: str, predicate: GroupPredicate) -> Group:
        """Register (or replace) a group.

        Args:
            name: Group name used by the groups gate
            predicate: Callable receiving a thing and returning membership

        Returns:
            The registered Group
        """
        if not isinstance(name, str) or not name:
            raise ValidationError("Group name must be a non-empty string")
        if not callable(predicate):
            raise ValidationError(f"Group predicate for '{name}' is not callable")

        group = Group(name=name, predicate=predicate)
        with self._lock:
            if name in self._groups:
                logger.info("group_replaced", group=name)
            self._groups[name] = group
        return group

    def unregister(self, name: str) -> None:
        with self._lock:
            self._groups.pop(name, None)

    def get(self, name: str) -> Group:
        """Return the group called ``name``.

        Raises:
            GroupNotRegisteredError: if nothing was registered under that name
        """
        group = self.find(name)
        if group is None:
            raise GroupNotRegisteredError(name)
        return group

    def find(self, name: str) -> Optional[Group]:
        with self._lock:
            return self._groups.get(name)

    def is_registered(self, name: str) -> bool:
        return self.find(name) is not None

    def names(self) -> List[str]:
        with self._lock:
            return list(self._groups)

    def clear(self) -> None:
        with self._lock:
            self._groups.clear()
