"""
Validation rule set - business rules gating create and update.

Each rule is an independent predicate over a RuleContext returning zero or
more ValidationFailure values. run_rules() evaluates every applicable rule
and merges the failures; nothing short-circuits, so callers can show all
problems at once.

Rule applicability:
- ON_CREATE rules run only when the registration is being created.
- STATUS_CHANGED rules run on create and whenever the status changed.
- EVENTS_CHANGED rules run on create and whenever the event set or the
  competing flag changed.
- ALWAYS rules run on every create and update.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from .status import CompetingStatus

if TYPE_CHECKING:
    from .aggregate import Registration

COMMENT_CHARACTER_LIMIT = 240
DEFAULT_GUEST_LIMIT = 99


class ErrorCode(str, Enum):
    """Stable machine-readable codes for rule failures."""

    USER_REQUIRED = "USER_REQUIRED"
    USER_CANNOT_COMPETE = "USER_CANNOT_COMPETE"
    USER_IS_BANNED = "USER_IS_BANNED"
    INVALID_EVENT_SELECTION = "INVALID_EVENT_SELECTION"
    EVENT_LIMIT_EXCEEDED = "EVENT_LIMIT_EXCEEDED"
    QUALIFICATION_NOT_MET = "QUALIFICATION_NOT_MET"
    INVALID_GUEST_COUNT = "INVALID_GUEST_COUNT"
    GUEST_LIMIT_EXCEEDED = "GUEST_LIMIT_EXCEEDED"
    UNREASONABLE_GUEST_COUNT = "UNREASONABLE_GUEST_COUNT"
    USER_COMMENT_TOO_LONG = "USER_COMMENT_TOO_LONG"
    REQUIRED_COMMENT_MISSING = "REQUIRED_COMMENT_MISSING"
    ALREADY_REGISTERED_IN_SERIES = "ALREADY_REGISTERED_IN_SERIES"
    ORGANIZER_MUST_CANCEL_REGISTRATION = "ORGANIZER_MUST_CANCEL_REGISTRATION"


@dataclass(frozen=True)
class ValidationFailure:
    code: ErrorCode
    field: str
    message: str


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a validated operation: valid when no failures were collected."""

    failures: tuple[ValidationFailure, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.failures

    @property
    def codes(self) -> list[ErrorCode]:
        return [failure.code for failure in self.failures]

    def for_field(self, field_name: str) -> list[ValidationFailure]:
        return [failure for failure in self.failures if failure.field == field_name]


class Trigger(Enum):
    ALWAYS = "always"
    ON_CREATE = "on_create"
    STATUS_CHANGED = "status_changed"
    EVENTS_CHANGED = "events_changed"


@dataclass
class RuleContext:
    """
    Everything a rule may look at.

    sibling_lookup returns the user's registrations in sibling series
    competitions with the given status; it runs inside the write session.
    """

    registration: "Registration"
    is_create: bool
    status_changed: bool = False
    events_changed: bool = False
    previous_status: CompetingStatus | None = None
    acting_user_id: int | None = None
    sibling_lookup: Callable[[CompetingStatus | None], list["Registration"]] = field(
        default=lambda status: []
    )


Check = Callable[[RuleContext], list[ValidationFailure]]


@dataclass(frozen=True)
class Rule:
    name: str
    trigger: Trigger
    check: Check

    def applies_to(self, ctx: RuleContext) -> bool:
        if self.trigger is Trigger.ALWAYS:
            return True
        if ctx.is_create:
            return True
        if self.trigger is Trigger.STATUS_CHANGED:
            return ctx.status_changed
        if self.trigger is Trigger.EVENTS_CHANGED:
            return ctx.events_changed
        return False


def to_sentence(parts: Sequence[str]) -> str:
    """Join parts as an English list: "a", "a and b", "a, b, and c"."""
    if len(parts) <= 2:
        return " and ".join(parts)
    return ", ".join(parts[:-1]) + ", and " + parts[-1]


def user_present(ctx: RuleContext) -> list[ValidationFailure]:
    if ctx.registration.user_id is None:
        return [ValidationFailure(ErrorCode.USER_REQUIRED, "user_id", "A user is required to register")]
    return []


def user_can_register(ctx: RuleContext) -> list[ValidationFailure]:
    registration = ctx.registration
    if registration.competing_status is CompetingStatus.REJECTED or registration.user is None:
        return []
    reasons = registration.user.cannot_register_reasons(
        registration.loaded_competition, registration.is_competing
    )
    if reasons:
        return [ValidationFailure(ErrorCode.USER_CANNOT_COMPETE, "user_id", to_sentence(reasons))]
    return []


def cannot_be_undeleted_when_banned(ctx: RuleContext) -> list[ValidationFailure]:
    registration = ctx.registration
    if registration.user is None or not registration.competing_status.might_attend:
        return []
    if registration.user.banned_at_date(registration.loaded_competition.start_date):
        return [
            ValidationFailure(
                ErrorCode.USER_IS_BANNED,
                "user_id",
                "A banned user's registration cannot be accepted or waitlisted",
            )
        ]
    return []


def must_register_for_at_least_one_event(ctx: RuleContext) -> list[ValidationFailure]:
    registration = ctx.registration
    if registration.is_competing and not registration.event_ids:
        return [
            ValidationFailure(
                ErrorCode.INVALID_EVENT_SELECTION,
                "competition_events",
                "You must register for at least one event",
            )
        ]
    return []


def must_not_exceed_event_limit(ctx: RuleContext) -> list[ValidationFailure]:
    competition = ctx.registration.loaded_competition
    limit = competition.events_per_registration_limit
    if not competition.events_per_registration_limit_enabled or limit is None:
        return []
    if len(ctx.registration.event_ids) > limit:
        return [
            ValidationFailure(
                ErrorCode.EVENT_LIMIT_EXCEEDED,
                "competition_events",
                f"This competition allows at most {limit} events per registration",
            )
        ]
    return []


def must_be_qualified_for_events(ctx: RuleContext) -> list[ValidationFailure]:
    registration = ctx.registration
    competition = registration.loaded_competition
    if competition.allow_registration_without_qualification:
        return []
    unqualified = [
        event_id
        for event_id in registration.event_ids
        if not competition.can_register_for_event(event_id, registration.user)
    ]
    if unqualified:
        return [
            ValidationFailure(
                ErrorCode.QUALIFICATION_NOT_MET,
                "competition_events",
                "You can only register for events you are qualified for: " + ", ".join(unqualified),
            )
        ]
    return []


def guests_within_bounds(ctx: RuleContext) -> list[ValidationFailure]:
    """Every guest bound is checked independently; all violated bounds are reported."""
    guests = ctx.registration.guests
    competition = ctx.registration.loaded_competition
    failures = []

    if guests < 0:
        failures.append(
            ValidationFailure(ErrorCode.INVALID_GUEST_COUNT, "guests", "Guests must be 0 or more")
        )
    limit = competition.guests_per_registration_limit
    if competition.guests_per_registration_limit_enabled and limit is not None and guests > limit:
        failures.append(
            ValidationFailure(
                ErrorCode.GUEST_LIMIT_EXCEEDED, "guests", f"Guests must be at most {limit}"
            )
        )
    if not competition.guests_enabled and guests != 0:
        failures.append(
            ValidationFailure(
                ErrorCode.GUEST_LIMIT_EXCEEDED, "guests", "This competition does not allow guests"
            )
        )
    if not competition.guest_entry_status_restricted and guests > DEFAULT_GUEST_LIMIT:
        failures.append(
            ValidationFailure(
                ErrorCode.UNREASONABLE_GUEST_COUNT,
                "guests",
                f"Guests must be at most {DEFAULT_GUEST_LIMIT}",
            )
        )
    return failures


def comments_within_limits(ctx: RuleContext) -> list[ValidationFailure]:
    registration = ctx.registration
    failures = []

    if registration.comments and len(registration.comments) > COMMENT_CHARACTER_LIMIT:
        failures.append(
            ValidationFailure(
                ErrorCode.USER_COMMENT_TOO_LONG,
                "comments",
                f"Comment must be at most {COMMENT_CHARACTER_LIMIT} characters",
            )
        )
    if registration.loaded_competition.force_comment_in_registration and not registration.comments:
        failures.append(
            ValidationFailure(
                ErrorCode.REQUIRED_COMMENT_MISSING,
                "comments",
                "You must include a comment to register for this competition",
            )
        )
    notes = registration.administrative_notes
    if notes and len(notes) > COMMENT_CHARACTER_LIMIT:
        failures.append(
            ValidationFailure(
                ErrorCode.USER_COMMENT_TOO_LONG,
                "administrative_notes",
                f"Administrative notes must be at most {COMMENT_CHARACTER_LIMIT} characters",
            )
        )
    return failures


def only_one_accepted_per_series(ctx: RuleContext) -> list[ValidationFailure]:
    registration = ctx.registration
    if registration.competing_status is not CompetingStatus.ACCEPTED:
        return []
    if not registration.loaded_competition.part_of_competition_series():
        return []
    if ctx.sibling_lookup(CompetingStatus.ACCEPTED):
        return [
            ValidationFailure(
                ErrorCode.ALREADY_REGISTERED_IN_SERIES,
                "competition_id",
                "You can only be accepted for one competition of a series",
            )
        ]
    return []


def competitor_may_cancel(ctx: RuleContext) -> list[ValidationFailure]:
    """A competitor cancelling their own registration is subject to the competition's policy."""
    registration = ctx.registration
    if (
        ctx.is_create
        or registration.competing_status is not CompetingStatus.CANCELLED
        or ctx.acting_user_id is None
        or ctx.acting_user_id != registration.user_id
    ):
        return []
    if not registration.permit_user_cancellation(ctx.previous_status):
        return [
            ValidationFailure(
                ErrorCode.ORGANIZER_MUST_CANCEL_REGISTRATION,
                "competing_status",
                "Only an organizer can cancel this registration",
            )
        ]
    return []


DEFAULT_RULES: tuple[Rule, ...] = (
    Rule("user_present", Trigger.ON_CREATE, user_present),
    Rule("user_can_register", Trigger.ON_CREATE, user_can_register),
    Rule("cannot_be_undeleted_when_banned", Trigger.STATUS_CHANGED, cannot_be_undeleted_when_banned),
    Rule("competitor_may_cancel", Trigger.STATUS_CHANGED, competitor_may_cancel),
    Rule("must_register_for_at_least_one_event", Trigger.EVENTS_CHANGED, must_register_for_at_least_one_event),
    Rule("must_not_exceed_event_limit", Trigger.EVENTS_CHANGED, must_not_exceed_event_limit),
    Rule("must_be_qualified_for_events", Trigger.EVENTS_CHANGED, must_be_qualified_for_events),
    Rule("guests_within_bounds", Trigger.ALWAYS, guests_within_bounds),
    Rule("comments_within_limits", Trigger.ALWAYS, comments_within_limits),
    Rule("only_one_accepted_per_series", Trigger.ALWAYS, only_one_accepted_per_series),
)


def run_rules(ctx: RuleContext, rules: Sequence[Rule] = DEFAULT_RULES) -> ValidationResult:
    """
    Evaluate all applicable rules and collect their failures.

    Identical failures (same code, field and message) are reported once.
    """
    failures: dict[ValidationFailure, None] = {}
    for rule in rules:
        if rule.applies_to(ctx):
            for failure in rule.check(ctx):
                failures.setdefault(failure, None)
    return ValidationResult(tuple(failures))
