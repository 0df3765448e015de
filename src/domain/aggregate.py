"""
Registration aggregate - one user's registration to one competition.

The aggregate ties together the competing status, the staged event set,
the payment ledger and the history ledger. It performs no I/O: the
competition and user it reads from are attached by the service after
loading, and all persistence goes through a RegistrationSession.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from .exceptions import CompetitionNotLoaded, UserNotLoaded
from .history import HistoryEntry, HistoryLedger
from .money import Money
from .payments import PaymentLedger, RegistrationPayment
from .ports import Competition, PaymentReceipt, User
from .roles import normalize_roles
from .status import CompetingStatus, WcifStatus, wcif_status
from .waitlist import ensure_waitlist_eligibility, waiting_list_position


def strip_text(value: str | None) -> str | None:
    """Strip surrounding whitespace; blank text becomes None."""
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


@dataclass
class CompetingEvents:
    """
    Event set of a registration as a staged diff.

    ``stored`` is the set last persisted; ``staged`` is the desired target
    set submitted by a caller, or None when untouched.
    """

    stored: tuple[str, ...] = ()
    staged: tuple[str, ...] | None = None

    @property
    def current(self) -> tuple[str, ...]:
        return self.staged if self.staged is not None else self.stored

    def stage(self, event_ids: Iterable[str]) -> None:
        self.staged = tuple(dict.fromkeys(event_ids))

    @property
    def touched(self) -> bool:
        return self.staged is not None and set(self.staged) != set(self.stored)

    @property
    def additions(self) -> list[str]:
        return [event_id for event_id in self.current if event_id not in self.stored]

    @property
    def removals(self) -> list[str]:
        return [event_id for event_id in self.stored if event_id not in self.current]

    def mark_saved(self) -> None:
        self.stored = self.current
        self.staged = None


@dataclass
class Registration:
    """
    Aggregate root for a competition registration.

    User-derived fields (name, email, dob, ...) are read through the
    attached user and require one: when the user was not loaded, or has
    been deleted, reading them raises UserNotLoaded.
    """

    competition_id: str
    user_id: int | None
    competing_status: CompetingStatus = CompetingStatus.PENDING
    is_competing: bool = True
    guests: int = 0
    comments: str | None = None
    administrative_notes: str | None = None
    registered_at: datetime | None = None
    roles: tuple[str, ...] = ()
    lock_version: int = 0
    id: int | None = None
    events: CompetingEvents = field(default_factory=CompetingEvents)
    payment_ledger: PaymentLedger = field(default_factory=PaymentLedger)
    history: HistoryLedger = field(default_factory=HistoryLedger)
    competition: Competition | None = field(default=None, repr=False, compare=False)
    user: User | None = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.comments = strip_text(self.comments)
        self.administrative_notes = strip_text(self.administrative_notes)
        self.roles = normalize_roles(self.roles)

    # -- collaborators -------------------------------------------------

    def attach(self, competition: Competition, user: User | None) -> "Registration":
        self.competition = competition
        self.user = user
        return self

    @property
    def loaded_competition(self) -> Competition:
        if self.competition is None:
            raise CompetitionNotLoaded(f"Registration {self.id} has no competition loaded")
        return self.competition

    @property
    def person(self) -> User:
        if self.user is None:
            raise UserNotLoaded(f"Registration {self.id} has no user loaded")
        return self.user

    @property
    def name(self) -> str:
        return self.person.name

    @property
    def email(self) -> str:
        return self.person.email

    @property
    def dob(self) -> date | None:
        return self.person.dob

    @property
    def gender(self) -> str | None:
        return self.person.gender

    @property
    def country(self) -> str | None:
        return self.person.country

    @property
    def wca_id(self) -> str | None:
        return self.person.wca_id

    # -- status --------------------------------------------------------

    @property
    def is_new(self) -> bool:
        return self.id is None

    @property
    def might_attend(self) -> bool:
        return self.competing_status.might_attend

    @property
    def new_or_deleted(self) -> bool:
        return self.is_new or self.competing_status is CompetingStatus.CANCELLED or not self.is_competing

    @property
    def wcif_status(self) -> WcifStatus:
        return wcif_status(self.competing_status, self.is_competing)

    def mark_registered_at(self, now: datetime | None = None) -> None:
        """Stamp registered_at on a new registration unless one was supplied."""
        if self.registered_at is None:
            self.registered_at = now or datetime.now(timezone.utc)

    def permit_user_cancellation(self, status: CompetingStatus | None = None) -> bool:
        """
        Whether the competitor may cancel on their own.

        Args:
            status: Status to judge the policy against, defaults to the current one
        """
        status = status or self.competing_status
        policy = self.loaded_competition.competitor_can_cancel
        if policy == "always":
            return True
        if policy == "not_accepted":
            return status is not CompetingStatus.ACCEPTED
        if policy == "unpaid":
            return self.paid_entry_fees.is_zero()
        raise ValueError(f"Unknown competitor_can_cancel policy: {policy!r}")

    # -- events ---------------------------------------------------------

    @property
    def event_ids(self) -> list[str]:
        return sorted(self.events.current)

    def stage_events(self, event_ids: Iterable[str]) -> None:
        self.events.stage(event_ids)

    # -- fees and payments ---------------------------------------------

    @property
    def entry_fee(self) -> Money:
        competition = self.loaded_competition
        total = competition.base_entry_fee_lowest_denomination + sum(
            competition.event_fee_lowest_denomination(event_id) for event_id in self.events.current
        )
        return Money(total, competition.currency_code)

    @property
    def paid_entry_fees(self) -> Money:
        return self.payment_ledger.paid(self.loaded_competition.currency_code)

    @property
    def outstanding_entry_fees(self) -> Money:
        return self.entry_fee - self.paid_entry_fees

    @property
    def last_payment_date(self) -> datetime | None:
        return self.payment_ledger.last_payment_date()

    @property
    def to_be_paid_through_system(self) -> bool:
        return (
            not self.is_new
            and self.competing_status in (CompetingStatus.PENDING, CompetingStatus.ACCEPTED)
            and self.loaded_competition.using_payment_integrations
            and self.outstanding_entry_fees.cents > 0
        )

    def record_payment(
        self,
        amount_lowest_denomination: int,
        currency_code: str,
        receipt: PaymentReceipt,
        user_id: int | None,
    ) -> RegistrationPayment:
        """
        Record a payment: one history entry, then one positive payment record.

        No guard against recording the same receipt twice; callers own idempotency.
        """
        payment_status = receipt.determine_status()
        self.add_history_entry(
            {"payment_status": payment_status, "iso_amount": amount_lowest_denomination},
            "user",
            user_id,
            "Payment",
        )
        return self.payment_ledger.append_payment(
            amount_lowest_denomination, currency_code, receipt.id, payment_status, user_id
        )

    def record_refund(
        self,
        amount_lowest_denomination: int,
        currency_code: str,
        receipt: PaymentReceipt,
        refunded_registration_payment_id: int | None,
        user_id: int | None,
    ) -> RegistrationPayment:
        """
        Record a refund: one history entry, then one negative payment record.

        The logged iso_amount is the paid total minus the refunded amount,
        computed before the refund record is added.
        """
        self.add_history_entry(
            {
                "payment_status": "refund",
                "iso_amount": self.paid_entry_fees.cents - amount_lowest_denomination,
            },
            "user",
            user_id,
            "Refund",
        )
        return self.payment_ledger.append_refund(
            amount_lowest_denomination,
            currency_code,
            receipt.id,
            refunded_registration_payment_id,
            user_id,
        )

    def consider_auto_close(self) -> bool:
        """Ask the competition to try auto-closing once nothing is outstanding."""
        return self.outstanding_entry_fees.is_zero() and bool(
            self.loaded_competition.attempt_auto_close()
        )

    # -- history -------------------------------------------------------

    def add_history_entry(
        self,
        changes: Mapping[str, Any],
        actor_type: str,
        actor_id: int | None,
        action: str,
        timestamp: datetime | None = None,
    ) -> HistoryEntry:
        return self.history.add(changes, actor_type, actor_id, action, timestamp)

    def registration_history(self) -> list[dict[str, Any]]:
        return self.history.as_dicts()

    # -- waiting list --------------------------------------------------

    @property
    def waiting_list_position(self) -> int | None:
        return waiting_list_position(self)

    def ensure_waitlist_eligibility(self) -> None:
        ensure_waitlist_eligibility(self)

    # -- persistence bookkeeping ---------------------------------------

    def mark_saved(self) -> None:
        """Called by sessions once pending changes are written."""
        self.events.mark_saved()
