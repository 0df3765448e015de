"""
Unit tests for PostgresRegistrationSession statements.

Tests use a mocked connection, so no database is needed:
- Roles are written through the roles codec
- Serialization failures surface as StaleRegistration
"""

from unittest.mock import MagicMock

import pytest
from psycopg.errors import SerializationFailure

from src.adapters.repository.postgres import PostgresRegistrationSession
from src.domain.exceptions import StaleRegistration
from src.domain.roles import encode_roles

from conftest import FakeCompetition, FakeUser, make_registration


@pytest.fixture
def conn() -> MagicMock:
    return MagicMock()


@pytest.fixture
def cursor(conn: MagicMock) -> MagicMock:
    cursor = conn.cursor.return_value.__enter__.return_value
    cursor.fetchone.return_value = (42,)
    return cursor


class TestRolesColumn:
    """Tests for how roles reach the JSONB column."""

    def test_insert_writes_encoded_roles(self, conn, cursor) -> None:
        registration = make_registration(
            FakeCompetition(), FakeUser(), roles=("delegate", "staff-judge", "delegate")
        )

        PostgresRegistrationSession(conn).insert(registration)

        sql, params = cursor.execute.call_args_list[0].args
        assert "%s::jsonb" in sql
        assert params[-1] == encode_roles(["delegate", "staff-judge"])
        assert registration.id == 42

    def test_save_writes_encoded_roles(self, conn, cursor) -> None:
        """The update binds roles just before the id and version check."""
        registration = make_registration(FakeCompetition(), FakeUser(), id=7, roles=("organizer",))
        registration.mark_saved()

        PostgresRegistrationSession(conn).save(registration)

        sql, params = cursor.execute.call_args_list[0].args
        assert "roles = %s::jsonb" in sql
        assert params[-3:] == (encode_roles(["organizer"]), 7, 0)
        assert registration.lock_version == 42


class TestSaveConflicts:
    """Tests for version conflicts on save."""

    def test_serialization_failure_is_stale(self, conn, cursor) -> None:
        """A concurrent committed write is reported as a stale registration."""
        cursor.execute.side_effect = SerializationFailure("could not serialize access")
        registration = make_registration(FakeCompetition(), FakeUser(), id=7)
        registration.mark_saved()

        with pytest.raises(StaleRegistration):
            PostgresRegistrationSession(conn).save(registration)

    def test_no_row_is_stale(self, conn, cursor) -> None:
        cursor.fetchone.return_value = None
        registration = make_registration(FakeCompetition(), FakeUser(), id=7)
        registration.mark_saved()

        with pytest.raises(StaleRegistration):
            PostgresRegistrationSession(conn).save(registration)
