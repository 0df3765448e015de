"""
History ledger - append-only audit trail of registration changes.

Every change to a registration (lane update, payment, refund) is recorded
as one HistoryEntry attributed to an actor, holding one HistoryChange per
changed key. Entries are never updated or deleted once persisted.

Change values are stored as text. Lists (``event_ids``) are stored as
JSON arrays and decoded back into lists when the history is read.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

EVENT_IDS_KEY = "event_ids"


@dataclass(frozen=True)
class HistoryChange:
    """One key/value pair attached to a history entry."""

    key: str
    value: str


@dataclass
class HistoryEntry:
    """
    One actor-attributed audit record.

    ``id`` is None until the entry has been persisted.
    """

    actor_type: str
    actor_id: int | None
    action: str
    created_at: datetime
    changes: tuple[HistoryChange, ...] = ()
    id: int | None = None

    @property
    def is_persisted(self) -> bool:
        return self.id is not None

    def changed_attributes(self) -> dict[str, Any]:
        """Changes as a dict, with ``event_ids`` decoded into a list."""
        return {change.key: decode_change_value(change.key, change.value) for change in self.changes}

    def as_dict(self) -> dict[str, Any]:
        return {
            "changed_attributes": self.changed_attributes(),
            "actor_type": self.actor_type,
            "actor_id": self.actor_id,
            "timestamp": self.created_at,
            "action": self.action,
        }


def encode_change_value(value: Any) -> str:
    """Encode a change value for text storage."""
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, str):
        return value
    return json.dumps(value)


def decode_change_value(key: str, value: str) -> Any:
    if key == EVENT_IDS_KEY:
        return json.loads(value)
    return value


@dataclass
class HistoryLedger:
    """Ordered, append-only collection of history entries for one registration."""

    entries: list[HistoryEntry] = field(default_factory=list)

    def add(
        self,
        changes: Mapping[str, Any],
        actor_type: str,
        actor_id: int | None,
        action: str,
        timestamp: datetime | None = None,
    ) -> HistoryEntry:
        """
        Append a new entry with one change record per key in ``changes``.

        Args:
            changes: Mapping of attribute name to new value
            actor_type: Kind of actor (e.g. "user", "system")
            actor_id: Identifier of the actor
            action: Human-readable action label (e.g. "Payment")
            timestamp: Creation time, defaults to now (UTC)

        Returns:
            The newly appended (not yet persisted) entry
        """
        entry = HistoryEntry(
            actor_type=actor_type,
            actor_id=actor_id,
            action=action,
            created_at=timestamp or datetime.now(timezone.utc),
            changes=tuple(
                HistoryChange(key=key, value=encode_change_value(value)) for key, value in changes.items()
            ),
        )
        self.entries.append(entry)
        return entry

    def pending(self) -> list[HistoryEntry]:
        """Entries appended since the ledger was loaded."""
        return [entry for entry in self.entries if not entry.is_persisted]

    def ordered(self) -> list[HistoryEntry]:
        return sorted(self.entries, key=lambda entry: entry.created_at)

    def as_dicts(self) -> list[dict[str, Any]]:
        return [entry.as_dict() for entry in self.ordered()]
