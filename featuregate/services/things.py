"""Subjects that features are evaluated against."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Thing:
    """An opaque subject (user, account, device...) checked against gates.

    Attributes:
        id: Stable identifier used for actor and percentage matching
        attributes: Extra data group predicates may inspect
    """

    id: str
    attributes: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def get(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name, default)


def thing_id(thing: Any) -> Optional[str]:
    """Return the identifier of ``thing`` as a string.

    Strings are their own id. Other objects are asked for ``flag_id`` first,
    then ``id``. Returns None when no identity can be found.
    """
    if thing is None:
        return None
    if isinstance(thing, str):
        return thing
    for attr in ("flag_id", "id"):
        value = getattr(thing, attr, None)
        if value is not None:
            return str(value)
    return None
