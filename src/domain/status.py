"""
Registration status state machine.

Competing Status
================

States:
- PENDING: Initial state after submission, awaiting organizer decision
- ACCEPTED: Competitor has a confirmed spot
- WAITING_LIST: Competitor is queued for a spot
- CANCELLED: Withdrawn (by the competitor or an organizer)
- REJECTED: Declined by an organizer

Transitions:
    PENDING      -> ACCEPTED | WAITING_LIST | CANCELLED | REJECTED
    ACCEPTED    <-> WAITING_LIST
    any          -> CANCELLED | REJECTED
    CANCELLED    -> PENDING | ACCEPTED | WAITING_LIST   (ban rule applies)
    REJECTED     -> PENDING | ACCEPTED | WAITING_LIST   (ban rule applies)

Callers pick the target state. This module only provides the closed set
of states and the projections derived from them; unsafe transitions
(banned user, second accepted registration in a series) are rejected by
the validation rules in validation.py.
"""

from enum import Enum


class CompetingStatus(str, Enum):
    """Five-valued lifecycle state of a registration."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    WAITING_LIST = "waiting_list"

    @property
    def might_attend(self) -> bool:
        """True for statuses that hold (or may soon hold) a spot."""
        return self in (CompetingStatus.ACCEPTED, CompetingStatus.WAITING_LIST)

    @property
    def is_deleted(self) -> bool:
        return self in (CompetingStatus.CANCELLED, CompetingStatus.REJECTED)


class WcifStatus(str, Enum):
    """Three-valued status exposed in the competition interchange format."""

    ACCEPTED = "accepted"
    DELETED = "deleted"
    PENDING = "pending"


NON_COMPETING_STATUS = "non_competing"


def wcif_status(status: CompetingStatus, is_competing: bool) -> WcifStatus:
    """
    Project a competing status onto the interchange format.

    Non-competing registrations (staff) count as accepted regardless of
    their competing status.
    """
    if status is CompetingStatus.ACCEPTED or not is_competing:
        return WcifStatus.ACCEPTED
    if status.is_deleted:
        return WcifStatus.DELETED
    if status in (CompetingStatus.PENDING, CompetingStatus.WAITING_LIST):
        return WcifStatus.PENDING
    raise ValueError(f"Unhandled competing status: {status!r}")


def registration_status_label(status: CompetingStatus, is_competing: bool) -> str:
    """Status shown to administrators: the competing status, or non_competing for staff."""
    return status.value if is_competing else NON_COMPETING_STATUS
