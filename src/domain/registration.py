"""
Registration domain service - write transactions over the aggregate.

This module orchestrates every registration mutation as one atomic unit:

    load aggregate -> apply change -> run validation rules
        -> append history entry (and payment record)
        -> save (version-checked) -> commit
        -> invalidate processing cache (best effort, after commit)

Validation failures are returned as a ValidationResult inside a
RegistrationOutcome and leave the store untouched. Losing an optimistic
concurrency race (StaleRegistration) reloads fresh data and reapplies the
change, up to max_write_attempts times.

Payment and refund recording bypass status validation but still append
history, and trigger the competition's auto-close check once committed.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar

from .aggregate import Registration
from .exceptions import StaleRegistration
from .payments import RegistrationPayment
from .ports import (
    CompetitionDirectory,
    PaymentReceipt,
    ProcessingCache,
    RegistrationRepository,
    RegistrationSession,
    UserDirectory,
)
from .series import series_registration_info, series_sibling_registrations
from .status import CompetingStatus
from .validation import RuleContext, ValidationResult, run_rules
from .waitlist import sync_waiting_list

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CACHE_KEY_PREFIX = "registration-processing-polling"


@dataclass(frozen=True)
class RegistrationSubmission:
    """Intent to register submitted by (or on behalf of) a user."""

    event_ids: Sequence[str]
    competing_status: CompetingStatus = CompetingStatus.PENDING
    is_competing: bool = True
    guests: int = 0
    comments: str | None = None
    administrative_notes: str | None = None
    registered_at: datetime | None = None
    roles: Sequence[str] = ()


@dataclass(frozen=True)
class CompetingLaneUpdate:
    """
    Requested changes to the competing lane of a registration.

    Fields left as None are not changed. event_ids is the desired target
    set; additions and removals are derived from it.
    """

    status: CompetingStatus | None = None
    guests: int | None = None
    comment: str | None = None
    admin_comment: str | None = None
    event_ids: Sequence[str] | None = None
    is_competing: bool | None = None


@dataclass(frozen=True)
class RegistrationOutcome:
    """Result of a validated write: the registration, or the collected failures."""

    registration: Registration
    validation: ValidationResult = field(default_factory=ValidationResult)

    @property
    def is_valid(self) -> bool:
        return self.validation.is_valid


def lane_action(registration: Registration, acting_user_id: int | None, status: CompetingStatus | None) -> str:
    """History action label for a lane update."""
    self_updating = acting_user_id is not None and acting_user_id == registration.user_id
    if status is CompetingStatus.CANCELLED:
        return "Competitor delete" if self_updating else "Admin delete"
    if status is CompetingStatus.REJECTED:
        return "Admin reject"
    return "Competitor update" if self_updating else "Admin update"


@dataclass
class RegistrationService:
    """
    Domain service for registration writes and reads.

    Wires the repository, the competition and user directories and the
    processing cache together around the Registration aggregate.
    """

    repository: RegistrationRepository
    competitions: CompetitionDirectory
    users: UserDirectory
    cache: ProcessingCache
    max_write_attempts: int = 3
    cache_key_prefix: str = DEFAULT_CACHE_KEY_PREFIX

    # -- reads ---------------------------------------------------------

    def get(self, registration_id: int) -> Registration:
        """
        Load a registration with its competition and user attached.

        Raises:
            RegistrationNotFound: If the id is unknown
        """
        with self.repository.session() as session:
            return self._attach(session.get(registration_id))

    def series_sibling_registrations(
        self, registration_id: int, status: CompetingStatus | None = None
    ) -> list[Registration]:
        with self.repository.session() as session:
            registration = self._attach(session.get(registration_id))
            return series_sibling_registrations(registration, session, status)

    def series_registration_info(self, registration_id: int) -> str:
        with self.repository.session() as session:
            registration = self._attach(session.get(registration_id))
            return series_registration_info(registration, session)

    def accepted_count(self, competition_id: str) -> int:
        with self.repository.session() as session:
            return session.count_by_status(competition_id, CompetingStatus.ACCEPTED)

    def accepted_and_paid_pending_count(self, competition_id: str) -> int:
        """Accepted registrations plus pending ones that already have a payment."""
        with self.repository.session() as session:
            return session.count_by_status(
                competition_id, CompetingStatus.ACCEPTED
            ) + session.count_with_payments(competition_id, CompetingStatus.PENDING)

    # -- writes --------------------------------------------------------

    def register(
        self,
        competition_id: str,
        user_id: int | None,
        submission: RegistrationSubmission,
        acting_user_id: int | None = None,
    ) -> RegistrationOutcome:
        """
        Create a registration.

        Args:
            competition_id: Competition to register for
            user_id: Registering user (required; a missing user fails validation)
            submission: Requested events, guests, comments and initial status
            acting_user_id: User performing the action, defaults to user_id

        Returns:
            RegistrationOutcome with the persisted registration, or the
            collected validation failures (nothing is persisted then)
        """
        competition = self.competitions.get(competition_id)
        user = self.users.get(user_id) if user_id is not None else None
        registration = Registration(
            competition_id=competition_id,
            user_id=user_id,
            competing_status=submission.competing_status,
            is_competing=submission.is_competing,
            guests=submission.guests,
            comments=submission.comments,
            administrative_notes=submission.administrative_notes,
            registered_at=submission.registered_at,
            roles=tuple(submission.roles),
        ).attach(competition, user)
        registration.stage_events(submission.event_ids)
        registration.mark_registered_at()

        with self.repository.session() as session:
            result = self._validate(session, registration, is_create=True, acting_user_id=acting_user_id)
            if not result.is_valid:
                logger.info(
                    "Registration for competition %s rejected by validation: %s",
                    competition_id,
                    [code.value for code in result.codes],
                )
                return RegistrationOutcome(registration, result)

            changes: dict[str, Any] = {
                "event_ids": registration.event_ids,
                "competing_status": registration.competing_status,
                "guests": registration.guests,
            }
            if registration.comments is not None:
                changes["comments"] = registration.comments
            registration.add_history_entry(
                changes,
                "user",
                acting_user_id if acting_user_id is not None else user_id,
                "Competitor register",
            )
            session.insert(registration)
            sync_waiting_list(registration, CompetingStatus.PENDING)

        logger.info(
            "Registration %s created for competition %s (status=%s)",
            registration.id,
            competition_id,
            registration.competing_status.value,
        )
        self._invalidate_cache(registration)
        return RegistrationOutcome(registration)

    def update_competing_lane(
        self,
        registration_id: int,
        update: CompetingLaneUpdate,
        acting_user_id: int | None,
    ) -> RegistrationOutcome:
        """
        Apply a lane update (status, guests, comments, events).

        Only keys whose value actually changed are written to history; an
        update that changes nothing writes nothing.

        Returns:
            RegistrationOutcome with the updated registration, or the
            collected validation failures (nothing is persisted then)
        """

        def apply(session: RegistrationSession, registration: Registration) -> ValidationResult:
            previous_status = registration.competing_status
            changes = self._apply_lane_update(registration, update)
            if not changes:
                return ValidationResult()

            result = self._validate(
                session,
                registration,
                is_create=False,
                status_changed=registration.competing_status is not previous_status,
                events_changed="event_ids" in changes or "is_competing" in changes,
                previous_status=previous_status,
                acting_user_id=acting_user_id,
            )
            if not result.is_valid:
                return result

            registration.add_history_entry(
                changes, "user", acting_user_id, lane_action(registration, acting_user_id, update.status)
            )
            session.save(registration)
            sync_waiting_list(registration, previous_status)
            return result

        registration, result = self._write(registration_id, apply)
        if not result.is_valid:
            logger.info(
                "Lane update for registration %s rejected by validation: %s",
                registration_id,
                [code.value for code in result.codes],
            )
            return RegistrationOutcome(registration, result)

        logger.info("Lane update committed for registration %s", registration_id)
        self._invalidate_cache(registration)
        return RegistrationOutcome(registration, result)

    def record_payment(
        self,
        registration_id: int,
        amount_lowest_denomination: int,
        currency_code: str,
        receipt: PaymentReceipt,
        acting_user_id: int | None,
    ) -> RegistrationPayment:
        """Record a payment and its history entry atomically, then consider auto-close."""

        def apply(session: RegistrationSession, registration: Registration) -> RegistrationPayment:
            payment = registration.record_payment(
                amount_lowest_denomination, currency_code, receipt, acting_user_id
            )
            session.save(registration)
            return payment

        registration, payment = self._write(registration_id, apply)
        logger.info(
            "Payment of %s %s recorded for registration %s",
            amount_lowest_denomination,
            currency_code,
            registration_id,
        )
        self._after_payment(registration)
        return payment

    def record_refund(
        self,
        registration_id: int,
        amount_lowest_denomination: int,
        currency_code: str,
        receipt: PaymentReceipt,
        refunded_registration_payment_id: int | None,
        acting_user_id: int | None,
    ) -> RegistrationPayment:
        """Record a refund and its history entry atomically, then consider auto-close."""

        def apply(session: RegistrationSession, registration: Registration) -> RegistrationPayment:
            refund = registration.record_refund(
                amount_lowest_denomination,
                currency_code,
                receipt,
                refunded_registration_payment_id,
                acting_user_id,
            )
            session.save(registration)
            return refund

        registration, refund = self._write(registration_id, apply)
        logger.info(
            "Refund of %s %s recorded for registration %s",
            abs(amount_lowest_denomination),
            currency_code,
            registration_id,
        )
        self._after_payment(registration)
        return refund

    # -- internals -----------------------------------------------------

    def _attach(self, registration: Registration) -> Registration:
        competition = self.competitions.get(registration.competition_id)
        user = self.users.get(registration.user_id) if registration.user_id is not None else None
        return registration.attach(competition, user)

    def _write(
        self,
        registration_id: int,
        mutate: Callable[[RegistrationSession, Registration], T],
    ) -> tuple[Registration, T]:
        """Run mutate in a fresh session, reloading and retrying on StaleRegistration."""
        for attempt in range(1, self.max_write_attempts + 1):
            try:
                with self.repository.session() as session:
                    registration = self._attach(session.get(registration_id))
                    result = mutate(session, registration)
                return registration, result
            except StaleRegistration:
                if attempt >= self.max_write_attempts:
                    raise
                logger.warning(
                    "Registration %s changed concurrently, retrying (attempt %d of %d)",
                    registration_id,
                    attempt + 1,
                    self.max_write_attempts,
                )
        raise RuntimeError("max_write_attempts must be at least 1")

    def _validate(
        self,
        session: RegistrationSession,
        registration: Registration,
        **context: Any,
    ) -> ValidationResult:
        ctx = RuleContext(
            registration=registration,
            sibling_lookup=lambda status: series_sibling_registrations(registration, session, status),
            **context,
        )
        return run_rules(ctx)

    @staticmethod
    def _apply_lane_update(registration: Registration, update: CompetingLaneUpdate) -> dict[str, Any]:
        """Apply requested values and return the ones that actually changed."""
        changes: dict[str, Any] = {}

        if update.status is not None and update.status is not registration.competing_status:
            registration.competing_status = update.status
            changes["competing_status"] = update.status
        if update.is_competing is not None and update.is_competing != registration.is_competing:
            registration.is_competing = update.is_competing
            changes["is_competing"] = update.is_competing
        if update.guests is not None and update.guests != registration.guests:
            registration.guests = update.guests
            changes["guests"] = update.guests
        if update.comment is not None:
            comment = update.comment.strip() or None
            if comment != registration.comments:
                registration.comments = comment
                changes["comments"] = comment or ""
        if update.admin_comment is not None:
            notes = update.admin_comment.strip() or None
            if notes != registration.administrative_notes:
                registration.administrative_notes = notes
                changes["administrative_notes"] = notes or ""
        if update.event_ids is not None:
            registration.stage_events(update.event_ids)
            if registration.events.touched:
                changes["event_ids"] = registration.event_ids

        return changes

    def _after_payment(self, registration: Registration) -> None:
        self._invalidate_cache(registration)
        if registration.consider_auto_close():
            logger.info("Auto-close triggered for competition %s", registration.competition_id)

    def processing_cache_key(self, competition_id: str, user_id: int | None) -> str:
        return f"{self.cache_key_prefix}-{competition_id}-{user_id}"

    def _invalidate_cache(self, registration: Registration) -> None:
        """Best-effort eviction; a cache failure never undoes the committed write."""
        key = self.processing_cache_key(registration.competition_id, registration.user_id)
        try:
            self.cache.delete(key)
        except Exception:
            logger.warning("Failed to invalidate processing cache key %s", key, exc_info=True)
