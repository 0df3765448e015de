"""
Integration tests for PostgresRegistrationRepository.

Tests repository operations against a real PostgreSQL database.
Requires PostgreSQL to be running (DATABASE_URL); skipped otherwise.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest
from psycopg_pool import ConnectionPool, PoolTimeout

from src.adapters.repository.postgres import PostgresRegistrationRepository, run_migrations
from src.config.settings import get_settings
from src.domain.exceptions import RegistrationNotFound, StaleRegistration
from src.domain.registration import CompetingLaneUpdate, RegistrationService, RegistrationSubmission
from src.domain.status import CompetingStatus

from conftest import DictDirectory, FakeReceipt, FakeUser, RecordingCache, make_registration

pytestmark = pytest.mark.integration


@pytest.fixture(scope="module")
def pool() -> ConnectionPool:
    """Create connection pool for integration tests, skipping when PostgreSQL is unreachable."""
    settings = get_settings()
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=1,
        max_size=10,
        open=False,
    )
    try:
        pool.open(wait=True, timeout=3)
    except PoolTimeout:
        pool.close()
        pytest.skip("PostgreSQL is not reachable")
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture
def repository(pool: ConnectionPool) -> PostgresRegistrationRepository:
    """Create repository instance for each test."""
    return PostgresRegistrationRepository(pool)


@pytest.fixture(autouse=True)
def clean_database(pool: ConnectionPool) -> None:
    """Clean registration tables before each test."""
    with pool.connection() as conn:
        conn.execute("TRUNCATE registrations RESTART IDENTITY CASCADE")
    yield


@pytest.fixture
def pg_service(repository, competition) -> RegistrationService:
    return RegistrationService(
        repository=repository,
        competitions=DictDirectory(competition),
        users=DictDirectory(FakeUser(), FakeUser(id=99, wca_id=None, name="Organizer")),
        cache=RecordingCache(),
    )


def insert(repository: PostgresRegistrationRepository, competition, **kwargs):
    registration = make_registration(competition, FakeUser(), **kwargs)
    registration.mark_registered_at()
    registration.add_history_entry(
        {"event_ids": registration.event_ids, "competing_status": registration.competing_status},
        "user",
        1,
        "Competitor register",
    )
    with repository.session() as session:
        session.insert(registration)
    return registration


class TestInsertAndLoad:
    """Tests for insert and get."""

    def test_round_trip(self, repository, competition) -> None:
        """Stored registration loads with events, roles and history."""
        registration = insert(
            repository,
            competition,
            event_ids=("444", "333"),
            guests=2,
            comments="hello",
            roles=("delegate", "staff-judge"),
        )

        with repository.session() as session:
            loaded = session.get(registration.id)

        assert loaded.competition_id == "SpringOpen2026"
        assert loaded.event_ids == ["333", "444"]
        assert loaded.guests == 2
        assert loaded.comments == "hello"
        assert loaded.roles == ("delegate", "staff-judge")
        assert loaded.lock_version == 0
        (entry,) = loaded.history.entries
        assert entry.is_persisted
        assert entry.changed_attributes() == {
            "event_ids": ["333", "444"],
            "competing_status": "pending",
        }

    def test_get_unknown_raises(self, repository) -> None:
        with pytest.raises(RegistrationNotFound):
            with repository.session() as session:
                session.get(123456)


class TestSave:
    """Tests for version-checked saves."""

    def test_save_applies_event_diff_and_ledgers(self, repository, competition) -> None:
        registration = insert(repository, competition, event_ids=("333", "444"))

        with repository.session() as session:
            loaded = session.get(registration.id).attach(competition, FakeUser())
            loaded.stage_events(["333", "555"])
            loaded.record_payment(1000, "USD", FakeReceipt(), 1)
            session.save(loaded)

        with repository.session() as session:
            stored = session.get(registration.id).attach(competition, FakeUser())
        assert stored.event_ids == ["333", "555"]
        assert stored.lock_version == 1
        assert stored.paid_entry_fees.cents == 1000
        assert [entry.action for entry in stored.history.ordered()] == ["Competitor register", "Payment"]

    def test_stale_save_rolls_back(self, repository, competition) -> None:
        """Saving an outdated version raises and writes nothing."""
        registration = insert(repository, competition)

        with repository.session() as session:
            outdated = session.get(registration.id)
        with repository.session() as session:
            current = session.get(registration.id)
            current.guests = 1
            session.save(current)

        outdated.guests = 5
        outdated.add_history_entry({"guests": 5}, "user", 1, "Competitor update")
        with pytest.raises(StaleRegistration):
            with repository.session() as session:
                session.save(outdated)

        with repository.session() as session:
            stored = session.get(registration.id)
        assert stored.guests == 1
        assert len(stored.history.entries) == 1

    def test_refund_stored_negative(self, repository, competition) -> None:
        registration = insert(repository, competition)
        with repository.session() as session:
            loaded = session.get(registration.id).attach(competition, FakeUser())
            payment = loaded.record_payment(1000, "USD", FakeReceipt(), 1)
            session.save(loaded)
        with repository.session() as session:
            loaded = session.get(registration.id).attach(competition, FakeUser())
            loaded.record_refund(400, "USD", FakeReceipt(id="re_1"), payment.id, 1)
            session.save(loaded)

        with repository.session() as session:
            stored = session.get(registration.id).attach(competition, FakeUser())
        amounts = [p.amount_lowest_denomination for p in stored.payment_ledger.payments]
        assert amounts == [1000, -400]
        assert stored.payment_ledger.payments[1].refunded_registration_payment_id == payment.id
        assert stored.paid_entry_fees.cents == 600


class TestQueries:
    """Tests for count and per-user queries."""

    def test_counts(self, repository, competition) -> None:
        insert(repository, competition, competing_status=CompetingStatus.ACCEPTED)
        pending = insert(repository, competition)
        insert(repository, competition)
        with repository.session() as session:
            loaded = session.get(pending.id).attach(competition, FakeUser())
            loaded.record_payment(500, "USD", FakeReceipt(), 1)
            session.save(loaded)

        with repository.session() as session:
            assert session.count_by_status("SpringOpen2026", CompetingStatus.ACCEPTED) == 1
            assert session.count_with_payments("SpringOpen2026", CompetingStatus.PENDING) == 1

    def test_registrations_for_user(self, repository, competition) -> None:
        first = insert(repository, competition, competing_status=CompetingStatus.ACCEPTED)
        insert(repository, competition)

        with repository.session() as session:
            accepted = session.registrations_for_user(1, ["SpringOpen2026"], CompetingStatus.ACCEPTED)
            other = session.registrations_for_user(1, ["AutumnOpen2026"])
        assert [r.id for r in accepted] == [first.id]
        assert other == []


class TestServiceOnPostgres:
    """End-to-end flows through RegistrationService."""

    def test_register_update_and_pay(self, pg_service, competition) -> None:
        outcome = pg_service.register("SpringOpen2026", 1, RegistrationSubmission(event_ids=["333"]))
        assert outcome.is_valid
        registration_id = outcome.registration.id

        pg_service.update_competing_lane(
            registration_id, CompetingLaneUpdate(status=CompetingStatus.ACCEPTED), acting_user_id=99
        )
        pg_service.record_payment(registration_id, 1000, "USD", FakeReceipt(), acting_user_id=1)

        stored = pg_service.get(registration_id)
        assert stored.competing_status is CompetingStatus.ACCEPTED
        assert stored.outstanding_entry_fees.is_zero()
        assert [entry["action"] for entry in stored.registration_history()] == [
            "Competitor register",
            "Admin update",
            "Payment",
        ]
        assert competition.auto_close_attempts == 1

    def test_concurrent_updates_both_apply(self, pg_service) -> None:
        """Concurrent lane updates retry instead of overwriting each other."""
        outcome = pg_service.register("SpringOpen2026", 1, RegistrationSubmission(event_ids=["333"]))
        registration_id = outcome.registration.id

        updates = [
            CompetingLaneUpdate(guests=3),
            CompetingLaneUpdate(comment="arriving late"),
        ]
        with ThreadPoolExecutor(max_workers=2) as executor:
            results = list(
                executor.map(
                    lambda update: pg_service.update_competing_lane(registration_id, update, 1),
                    updates,
                )
            )

        assert all(result.is_valid for result in results)
        stored = pg_service.get(registration_id)
        assert stored.guests == 3
        assert stored.comments == "arriving late"
        assert stored.lock_version == 2
        assert len(stored.history.entries) == 3
