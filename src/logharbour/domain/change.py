"""Change descriptions carried by data-change records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

_OPERATIONS = ("Create", "Update", "Delete")


@dataclass(slots=True, frozen=True)
class ChangeDetail:
    """Old and new value of a single field."""

    field: str
    old_value: Any
    new_value: Any

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "old_value": self.old_value, "new_value": self.new_value}


@dataclass(slots=True)
class ChangeInfo:
    """Ordered list of field changes applied to one entity.

    Examples
    --------
    >>> info = ChangeInfo("User", "Update")
    >>> _ = info.add_change("email", "a@x", "b@x")
    >>> info.to_dict()["changes"][0]["new_value"]
    'b@x'
    """

    entity: str
    op: str
    changes: list[ChangeDetail] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.entity.strip():
            raise ValueError("entity must not be empty")
        if self.op not in _OPERATIONS:
            raise ValueError(f"op must be one of {', '.join(_OPERATIONS)}; got {self.op!r}")
        self.changes = list(self.changes)

    def add_change(self, field_name: str, old_value: Any, new_value: Any) -> "ChangeInfo":
        """Append a change and return ``self`` for chaining."""

        self.changes.append(ChangeDetail(field_name, old_value, new_value))
        return self

    def __len__(self) -> int:
        return len(self.changes)

    def to_dict(self) -> dict[str, Any]:
        """Return the ``data`` payload embedded in a data-change record."""

        return {
            "entity": self.entity,
            "op": self.op,
            "changes": [change.to_dict() for change in self.changes],
        }


__all__ = ["ChangeDetail", "ChangeInfo"]
