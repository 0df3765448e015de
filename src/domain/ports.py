"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from its collaborators. Adapters implement these protocols through
structural subtyping.

Collaborators fall into two groups:

- Entities owned elsewhere (Competition, User, WaitingList,
  PaymentReceipt): the registration core only reads the attributes and
  calls the methods listed here.
- Infrastructure (RegistrationRepository, ProcessingCache): persistence
  and the processing-flag cache.
"""

from collections.abc import Iterable, Sequence
from contextlib import AbstractContextManager
from datetime import date
from typing import TYPE_CHECKING, Protocol

from .status import CompetingStatus

if TYPE_CHECKING:
    from .aggregate import Registration


class WaitingList(Protocol):
    """Port interface for a competition's waiting list ordering."""

    def position(self, registration: "Registration") -> int | None:
        """1-based rank of the registration among waitlisted registrations."""
        ...

    def add(self, registration: "Registration") -> None:
        ...

    def remove(self, registration: "Registration") -> None:
        ...


class Competition(Protocol):
    """
    Attributes and behaviors of a competition read by the registration core.

    Fee amounts are integers in the lowest denomination of currency_code.
    competitor_can_cancel is one of "always", "not_accepted", "unpaid".
    """

    id: str
    start_date: date
    currency_code: str
    base_entry_fee_lowest_denomination: int
    guests_enabled: bool
    guests_per_registration_limit: int | None
    guests_per_registration_limit_enabled: bool
    guest_entry_status_restricted: bool
    events_per_registration_limit: int | None
    events_per_registration_limit_enabled: bool
    allow_registration_without_qualification: bool
    force_comment_in_registration: bool
    using_payment_integrations: bool
    competitor_can_cancel: str
    waiting_list: WaitingList

    def part_of_competition_series(self) -> bool:
        ...

    def series_sibling_competitions(self) -> Sequence["Competition"]:
        """Other competitions of the same series (excluding this one)."""
        ...

    def event_fee_lowest_denomination(self, event_id: str) -> int:
        ...

    def can_register_for_event(self, event_id: str, user: "User | None") -> bool:
        """Whether the user meets the qualification requirement of the event."""
        ...

    def attempt_auto_close(self) -> bool:
        """Close registration if the competition's auto-close threshold is reached."""
        ...


class User(Protocol):
    """Attributes and behaviors of a user read by the registration core."""

    id: int
    wca_id: str | None
    name: str
    gender: str | None
    country_iso2: str | None
    country: str | None
    dob: date | None
    email: str

    def banned_at_date(self, day: date) -> bool:
        ...

    def cannot_register_reasons(self, competition: Competition, is_competing: bool) -> list[str]:
        """Human-readable reasons preventing registration; empty when eligible."""
        ...


class PaymentReceipt(Protocol):
    """Opaque gateway receipt with a status classifier."""

    id: str

    def determine_status(self) -> str:
        ...


class CompetitionDirectory(Protocol):
    """Port interface for loading competitions."""

    def get(self, competition_id: str) -> Competition:
        ...


class UserDirectory(Protocol):
    """Port interface for loading users."""

    def get(self, user_id: int) -> User | None:
        """Return the user, or None if the user has been deleted."""
        ...


class ProcessingCache(Protocol):
    """Port interface for the registration processing-flag cache."""

    def delete(self, key: str) -> None:
        ...


class RegistrationSession(Protocol):
    """
    Transactional view of the registration store.

    All operations of one session share a single transaction and observe
    a consistent snapshot.
    """

    def get(self, registration_id: int) -> "Registration":
        """
        Load a registration with its events, payments and history.

        Raises:
            RegistrationNotFound: If no registration has this id
        """
        ...

    def insert(self, registration: "Registration") -> "Registration":
        """Persist a new registration and its pending events, history and payments."""
        ...

    def save(self, registration: "Registration") -> "Registration":
        """
        Persist changes to an existing registration.

        Updates the row guarded by lock_version, applies the staged event
        diff, and appends pending history entries and payments.

        Raises:
            StaleRegistration: If lock_version no longer matches the stored row
        """
        ...

    def registrations_for_user(
        self,
        user_id: int,
        competition_ids: Iterable[str],
        status: CompetingStatus | None = None,
    ) -> list["Registration"]:
        ...

    def count_by_status(self, competition_id: str, status: CompetingStatus) -> int:
        ...

    def count_with_payments(self, competition_id: str, status: CompetingStatus) -> int:
        """Number of registrations in the status having at least one payment record."""
        ...


class RegistrationRepository(Protocol):
    """Port interface for registration persistence."""

    def session(self) -> AbstractContextManager[RegistrationSession]:
        """
        Open a transactional session.

        Committed when the context exits cleanly, rolled back when it
        exits with an exception.
        """
        ...
