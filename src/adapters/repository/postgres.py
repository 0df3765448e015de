"""
PostgreSQL repository adapter - Implements RegistrationRepository protocol.

This module provides the PostgreSQL implementation of the domain's
repository port using psycopg3 with raw SQL.

Transaction Design:
-------------------
1. **One session, one transaction**: session() checks a connection out of
   the pool and opens a REPEATABLE READ transaction, so every read used for
   validation (series siblings, counts) observes the same snapshot as the
   write that follows. The transaction commits when the session exits
   cleanly and rolls back on any exception.

2. **Optimistic concurrency**: save() updates the registration row only
   WHERE lock_version matches the version that was loaded, bumping it by
   one. Zero affected rows, or a serialization failure when the other
   writer committed after our snapshot, means another writer won;
   StaleRegistration is raised and the whole transaction rolls back.

3. **Append-only ledgers**: history entries, history changes and payments
   are only ever INSERTed. Nothing in this adapter updates or deletes them;
   they disappear only through ON DELETE CASCADE of their registration.
"""

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path

from psycopg import Connection
from psycopg.errors import SerializationFailure
from psycopg_pool import ConnectionPool

from src.domain.aggregate import CompetingEvents, Registration
from src.domain.exceptions import RegistrationNotFound, StaleRegistration
from src.domain.history import HistoryChange, HistoryEntry, HistoryLedger
from src.domain.payments import PaymentLedger, RegistrationPayment
from src.domain.roles import decode_roles, encode_roles
from src.domain.status import CompetingStatus

logger = logging.getLogger(__name__)


class PostgresRegistrationSession:
    """
    Implements RegistrationSession protocol on one open transaction.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries.
    """

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def get(self, registration_id: int) -> Registration:
        select_sql = """
            SELECT id, competition_id, user_id, competing_status, is_competing, guests,
                   comments, administrative_notes, registered_at, roles, lock_version
            FROM registrations
            WHERE id = %s
        """
        with self._conn.cursor() as cursor:
            cursor.execute(select_sql, (registration_id,))
            row = cursor.fetchone()
        if row is None:
            raise RegistrationNotFound(registration_id)
        return self._load(row)

    def insert(self, registration: Registration) -> Registration:
        insert_sql = """
            INSERT INTO registrations (
                competition_id, user_id, competing_status, is_competing, guests,
                comments, administrative_notes, registered_at, roles, lock_version
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s::jsonb, 0)
            RETURNING id
        """
        with self._conn.cursor() as cursor:
            cursor.execute(
                insert_sql,
                (
                    registration.competition_id,
                    registration.user_id,
                    registration.competing_status.value,
                    registration.is_competing,
                    registration.guests,
                    registration.comments,
                    registration.administrative_notes,
                    registration.registered_at,
                    encode_roles(registration.roles),
                ),
            )
            registration.id = cursor.fetchone()[0]
        registration.lock_version = 0
        self._write_pending(registration)
        return registration

    def save(self, registration: Registration) -> Registration:
        # registered_at is immutable once set
        update_sql = """
            UPDATE registrations
            SET competing_status = %s,
                is_competing = %s,
                guests = %s,
                comments = %s,
                administrative_notes = %s,
                roles = %s::jsonb,
                lock_version = lock_version + 1,
                updated_at = NOW()
            WHERE id = %s AND lock_version = %s
            RETURNING lock_version
        """
        with self._conn.cursor() as cursor:
            try:
                cursor.execute(
                    update_sql,
                    (
                        registration.competing_status.value,
                        registration.is_competing,
                        registration.guests,
                        registration.comments,
                        registration.administrative_notes,
                        encode_roles(registration.roles),
                        registration.id,
                        registration.lock_version,
                    ),
                )
            except SerializationFailure as e:
                # A writer that committed after our snapshot was taken
                raise StaleRegistration(registration.id, registration.lock_version) from e
            row = cursor.fetchone()
        if row is None:
            raise StaleRegistration(registration.id, registration.lock_version)
        registration.lock_version = row[0]
        self._write_pending(registration)
        return registration

    def registrations_for_user(
        self,
        user_id: int,
        competition_ids: Iterable[str],
        status: CompetingStatus | None = None,
    ) -> list[Registration]:
        sql = """
            SELECT id, competition_id, user_id, competing_status, is_competing, guests,
                   comments, administrative_notes, registered_at, roles, lock_version
            FROM registrations
            WHERE user_id = %s AND competition_id = ANY(%s)
        """
        params: list = [user_id, list(competition_ids)]
        if status is not None:
            sql += " AND competing_status = %s"
            params.append(status.value)
        sql += " ORDER BY id"

        with self._conn.cursor() as cursor:
            cursor.execute(sql, params)
            rows = cursor.fetchall()
        return [self._load(row) for row in rows]

    def count_by_status(self, competition_id: str, status: CompetingStatus) -> int:
        sql = """
            SELECT COUNT(*) FROM registrations
            WHERE competition_id = %s AND competing_status = %s
        """
        with self._conn.cursor() as cursor:
            cursor.execute(sql, (competition_id, status.value))
            return cursor.fetchone()[0]

    def count_with_payments(self, competition_id: str, status: CompetingStatus) -> int:
        sql = """
            SELECT COUNT(*) FROM registrations r
            WHERE r.competition_id = %s
              AND r.competing_status = %s
              AND EXISTS (SELECT 1 FROM registration_payments p WHERE p.registration_id = r.id)
        """
        with self._conn.cursor() as cursor:
            cursor.execute(sql, (competition_id, status.value))
            return cursor.fetchone()[0]

    def _load(self, row: tuple) -> Registration:
        (
            registration_id,
            competition_id,
            user_id,
            competing_status,
            is_competing,
            guests,
            comments,
            administrative_notes,
            registered_at,
            roles,
            lock_version,
        ) = row
        return Registration(
            id=registration_id,
            competition_id=competition_id,
            user_id=user_id,
            competing_status=CompetingStatus(competing_status),
            is_competing=is_competing,
            guests=guests,
            comments=comments,
            administrative_notes=administrative_notes,
            registered_at=registered_at,
            roles=decode_roles(roles),
            lock_version=lock_version,
            events=CompetingEvents(stored=self._load_event_ids(registration_id)),
            payment_ledger=PaymentLedger(self._load_payments(registration_id)),
            history=HistoryLedger(self._load_history(registration_id)),
        )

    def _load_event_ids(self, registration_id: int) -> tuple[str, ...]:
        sql = """
            SELECT event_id FROM registration_competition_events
            WHERE registration_id = %s
            ORDER BY event_id
        """
        with self._conn.cursor() as cursor:
            cursor.execute(sql, (registration_id,))
            return tuple(row[0] for row in cursor.fetchall())

    def _load_payments(self, registration_id: int) -> list[RegistrationPayment]:
        sql = """
            SELECT id, amount_lowest_denomination, currency_code, receipt_id, payment_status,
                   user_id, created_at, refunded_registration_payment_id
            FROM registration_payments
            WHERE registration_id = %s
            ORDER BY created_at, id
        """
        with self._conn.cursor() as cursor:
            cursor.execute(sql, (registration_id,))
            rows = cursor.fetchall()
        return [
            RegistrationPayment(
                id=row[0],
                amount_lowest_denomination=row[1],
                currency_code=row[2],
                receipt_id=row[3],
                payment_status=row[4],
                user_id=row[5],
                created_at=row[6],
                refunded_registration_payment_id=row[7],
            )
            for row in rows
        ]

    def _load_history(self, registration_id: int) -> list[HistoryEntry]:
        sql = """
            SELECT e.id, e.actor_type, e.actor_id, e.action, e.created_at, c.key, c.value
            FROM registration_history_entries e
            LEFT JOIN registration_history_changes c ON c.registration_history_entry_id = e.id
            WHERE e.registration_id = %s
            ORDER BY e.created_at, e.id, c.id
        """
        with self._conn.cursor() as cursor:
            cursor.execute(sql, (registration_id,))
            rows = cursor.fetchall()

        entries: dict[int, HistoryEntry] = {}
        changes: dict[int, list[HistoryChange]] = {}
        for entry_id, actor_type, actor_id, action, created_at, key, value in rows:
            if entry_id not in entries:
                entries[entry_id] = HistoryEntry(
                    id=entry_id,
                    actor_type=actor_type,
                    actor_id=actor_id,
                    action=action,
                    created_at=created_at,
                )
                changes[entry_id] = []
            if key is not None:
                changes[entry_id].append(HistoryChange(key=key, value=value))
        for entry_id, entry in entries.items():
            entry.changes = tuple(changes[entry_id])
        return list(entries.values())

    def _write_pending(self, registration: Registration) -> None:
        """Apply the staged event diff and append pending history and payments."""
        with self._conn.cursor() as cursor:
            removals = registration.events.removals
            if removals:
                cursor.execute(
                    "DELETE FROM registration_competition_events "
                    "WHERE registration_id = %s AND event_id = ANY(%s)",
                    (registration.id, removals),
                )
            additions = registration.events.additions
            if additions:
                cursor.executemany(
                    "INSERT INTO registration_competition_events (registration_id, event_id) "
                    "VALUES (%s, %s)",
                    [(registration.id, event_id) for event_id in additions],
                )

            for entry in registration.history.pending():
                cursor.execute(
                    """
                    INSERT INTO registration_history_entries
                        (registration_id, actor_type, actor_id, action, created_at)
                    VALUES (%s, %s, %s, %s, %s)
                    RETURNING id
                    """,
                    (registration.id, entry.actor_type, entry.actor_id, entry.action, entry.created_at),
                )
                entry.id = cursor.fetchone()[0]
                if entry.changes:
                    cursor.executemany(
                        """
                        INSERT INTO registration_history_changes
                            (registration_history_entry_id, key, value)
                        VALUES (%s, %s, %s)
                        """,
                        [(entry.id, change.key, change.value) for change in entry.changes],
                    )

            for payment in registration.payment_ledger.pending():
                cursor.execute(
                    """
                    INSERT INTO registration_payments (
                        registration_id, amount_lowest_denomination, currency_code, receipt_id,
                        payment_status, user_id, created_at, refunded_registration_payment_id
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING id
                    """,
                    (
                        registration.id,
                        payment.amount_lowest_denomination,
                        payment.currency_code,
                        payment.receipt_id,
                        payment.payment_status,
                        payment.user_id,
                        payment.created_at,
                        payment.refunded_registration_payment_id,
                    ),
                )
                payment.id = cursor.fetchone()[0]

        registration.mark_saved()


class PostgresRegistrationRepository:
    """
    Implements RegistrationRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    @contextmanager
    def session(self) -> Iterator[PostgresRegistrationSession]:
        """
        Open a REPEATABLE READ transaction on a pooled connection.

        Commits on clean exit, rolls back when the block raises.
        """
        with self._pool.connection() as conn, conn.transaction():
            conn.execute("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ")
            yield PostgresRegistrationSession(conn)


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: src/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning(f"Migrations directory not found: {migrations_dir}")
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info(f"Running {len(sql_files)} migration(s)")

    for sql_file in sql_files:
        logger.info(f"Executing migration: {sql_file.name}")
        try:
            with pool.connection() as conn:
                conn.execute(sql_file.read_text())
            logger.info(f"Migration complete: {sql_file.name}")
        except Exception as e:
            logger.error(f"Migration failed: {sql_file.name} - {e}")
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
