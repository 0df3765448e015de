"""
Unit tests for the history ledger and roles encoding.

Tests verify:
- One change record per key
- Value encoding (enums, ints, event id lists)
- event_ids decoded back into a list on read
- Ordering by creation time
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.domain.history import HistoryLedger, decode_change_value, encode_change_value
from src.domain.roles import decode_roles, encode_roles, normalize_roles
from src.domain.status import CompetingStatus


class TestHistoryLedger:
    """Tests for HistoryLedger."""

    def test_add_creates_one_change_per_key(self) -> None:
        """Each key in the changes mapping becomes one change record."""
        ledger = HistoryLedger()
        entry = ledger.add({"guests": 2, "comments": "hi"}, "user", 1, "Competitor update")

        assert [change.key for change in entry.changes] == ["guests", "comments"]
        assert ledger.entries == [entry]

    def test_new_entries_are_pending_until_persisted(self) -> None:
        """Entries without an id are pending."""
        ledger = HistoryLedger()
        entry = ledger.add({"guests": 1}, "user", 1, "Admin update")
        assert ledger.pending() == [entry]

        entry.id = 10
        assert ledger.pending() == []

    def test_timestamp_defaults_to_now_utc(self) -> None:
        """created_at defaults to an aware UTC timestamp."""
        before = datetime.now(timezone.utc)
        entry = HistoryLedger().add({}, "user", 1, "Payment")
        assert entry.created_at >= before
        assert entry.created_at.tzinfo is not None

    def test_ordered_by_creation_time(self) -> None:
        """History reads in creation order, not insertion order."""
        now = datetime.now(timezone.utc)
        ledger = HistoryLedger()
        later = ledger.add({"guests": 2}, "user", 1, "second", timestamp=now + timedelta(seconds=5))
        earlier = ledger.add({"guests": 1}, "user", 1, "first", timestamp=now)

        assert [item["action"] for item in ledger.as_dicts()] == ["first", "second"]
        assert ledger.ordered() == [earlier, later]

    def test_as_dicts_shape(self) -> None:
        """Each item carries changed_attributes, actor, timestamp and action."""
        now = datetime.now(timezone.utc)
        ledger = HistoryLedger()
        ledger.add({"event_ids": ["333", "444"], "guests": 0}, "user", 5, "Admin update", timestamp=now)

        assert ledger.as_dicts() == [
            {
                "changed_attributes": {"event_ids": ["333", "444"], "guests": "0"},
                "actor_type": "user",
                "actor_id": 5,
                "timestamp": now,
                "action": "Admin update",
            }
        ]


class TestChangeValueEncoding:
    """Tests for change value text storage."""

    def test_enum_stored_as_value(self) -> None:
        """Status enums are stored by value."""
        assert encode_change_value(CompetingStatus.ACCEPTED) == "accepted"

    def test_int_stored_as_text(self) -> None:
        """Integers are stored as their decimal text."""
        assert encode_change_value(1000) == "1000"

    def test_string_stored_verbatim(self) -> None:
        assert encode_change_value("succeeded") == "succeeded"

    def test_event_ids_round_trip_as_list(self) -> None:
        """event_ids are stored as a JSON array and read back as a list."""
        raw = encode_change_value(["333", "clock"])
        assert raw == '["333", "clock"]'
        assert decode_change_value("event_ids", raw) == ["333", "clock"]

    def test_other_keys_decoded_as_raw_string(self) -> None:
        assert decode_change_value("guests", "3") == "3"


class TestRoles:
    """Tests for roles encoding."""

    def test_normalize_keeps_order_and_drops_duplicates(self) -> None:
        """Roles are stripped and de-duplicated in first-seen order."""
        assert normalize_roles(["delegate", " organizer ", "delegate", ""]) == ("delegate", "organizer")

    def test_encode_decode(self) -> None:
        raw = encode_roles(["staff-judge", "staff-scrambler"])
        assert raw == '["staff-judge", "staff-scrambler"]'
        assert decode_roles(raw) == ("staff-judge", "staff-scrambler")

    def test_decode_accepts_list_and_none(self) -> None:
        assert decode_roles(["delegate"]) == ("delegate",)
        assert decode_roles(None) == ()

    def test_decode_rejects_non_list(self) -> None:
        """Only a JSON list of strings is accepted."""
        with pytest.raises(ValueError):
            decode_roles('{"role": "delegate"}')
