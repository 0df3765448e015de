"""
In-memory repository adapter - Implements RegistrationRepository protocol.

Keeps registrations in a dict for development and tests. Sessions are
serialized by a re-entrant lock and work on a private copy of the store,
which replaces the shared state only when the session exits cleanly, so
an exception leaves the store exactly as it was.
"""

import copy
import itertools
import logging
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from src.domain.aggregate import Registration
from src.domain.exceptions import RegistrationNotFound, StaleRegistration
from src.domain.status import CompetingStatus

logger = logging.getLogger(__name__)


def _detached_copy(registration: Registration) -> Registration:
    """Deep copy without the attached competition and user."""
    memo = {id(registration.competition): None, id(registration.user): None}
    return copy.deepcopy(registration, memo)


class InMemoryRegistrationSession:
    """Implements RegistrationSession protocol over a working copy of the store."""

    def __init__(self, rows: dict[int, Registration], ids: itertools.count) -> None:
        self.rows = rows
        self._ids = ids

    def get(self, registration_id: int) -> Registration:
        row = self.rows.get(registration_id)
        if row is None:
            raise RegistrationNotFound(registration_id)
        return _detached_copy(row)

    def insert(self, registration: Registration) -> Registration:
        registration.id = next(self._ids)
        registration.lock_version = 0
        self._write_pending(registration)
        return registration

    def save(self, registration: Registration) -> Registration:
        stored = self.rows.get(registration.id)
        if stored is None:
            raise RegistrationNotFound(registration.id)
        if stored.lock_version != registration.lock_version:
            raise StaleRegistration(registration.id, registration.lock_version)
        # registered_at is immutable once set
        registration.registered_at = stored.registered_at
        registration.lock_version += 1
        self._write_pending(registration)
        return registration

    def registrations_for_user(
        self,
        user_id: int,
        competition_ids: Iterable[str],
        status: CompetingStatus | None = None,
    ) -> list[Registration]:
        wanted = set(competition_ids)
        return [
            _detached_copy(row)
            for row in self.rows.values()
            if row.user_id == user_id
            and row.competition_id in wanted
            and (status is None or row.competing_status is status)
        ]

    def count_by_status(self, competition_id: str, status: CompetingStatus) -> int:
        return sum(
            1
            for row in self.rows.values()
            if row.competition_id == competition_id and row.competing_status is status
        )

    def count_with_payments(self, competition_id: str, status: CompetingStatus) -> int:
        return sum(
            1
            for row in self.rows.values()
            if row.competition_id == competition_id
            and row.competing_status is status
            and row.payment_ledger.has_payments()
        )

    def _write_pending(self, registration: Registration) -> None:
        for entry in registration.history.pending():
            entry.id = next(self._ids)
        for payment in registration.payment_ledger.pending():
            payment.id = next(self._ids)
        registration.mark_saved()
        self.rows[registration.id] = _detached_copy(registration)


class InMemoryRegistrationRepository:
    """
    Implements RegistrationRepository protocol with process-local storage.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self) -> None:
        self._rows: dict[int, Registration] = {}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    @contextmanager
    def session(self) -> Iterator[InMemoryRegistrationSession]:
        with self._lock:
            working = dict(self._rows)
            session = InMemoryRegistrationSession(working, self._ids)
            yield session
            self._rows = working
            logger.debug("In-memory session committed (%d registrations)", len(working))

    def __len__(self) -> int:
        return len(self._rows)
