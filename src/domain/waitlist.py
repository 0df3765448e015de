"""
Waitlist position resolver.

Positions are never stored on the registration: the competition's waiting
list collaborator owns the ordering and is asked on demand.
"""

from typing import TYPE_CHECKING

from .exceptions import NotOnWaitingList
from .status import CompetingStatus

if TYPE_CHECKING:
    from .aggregate import Registration


def ensure_waitlist_eligibility(registration: "Registration") -> None:
    """
    Raises:
        NotOnWaitingList: If the registration's status is not waiting_list
    """
    if registration.competing_status is not CompetingStatus.WAITING_LIST:
        raise NotOnWaitingList(
            "Registration must have a competing_status of 'waiting_list' to be added to the waiting list"
        )


def waiting_list_position(registration: "Registration") -> int | None:
    """1-based rank among the competition's waitlisted registrations."""
    return registration.loaded_competition.waiting_list.position(registration)


def sync_waiting_list(registration: "Registration", previous_status: CompetingStatus) -> None:
    """
    Keep the competition's waiting list in step with a status change.

    Entering waiting_list appends the registration; leaving it removes it.
    """
    current = registration.competing_status
    if current is previous_status:
        return
    waiting_list = registration.loaded_competition.waiting_list
    if current is CompetingStatus.WAITING_LIST:
        waiting_list.add(registration)
    elif previous_status is CompetingStatus.WAITING_LIST:
        waiting_list.remove(registration)
