"""
Series conflict checker.

A competition series bundles sibling competitions; a user may hold at most
one accepted registration across the whole series. The sibling query here
feeds both the exclusivity rule and the presentational summary.
"""

from typing import TYPE_CHECKING

from .status import CompetingStatus

if TYPE_CHECKING:
    from .aggregate import Registration
    from .ports import RegistrationSession

SERIES_SIBLING_DISPLAY_STATUSES = (CompetingStatus.ACCEPTED, CompetingStatus.PENDING)


def series_sibling_registrations(
    registration: "Registration",
    session: "RegistrationSession",
    status: CompetingStatus | None = None,
) -> list["Registration"]:
    """
    The same user's registrations for sibling competitions of the series.

    Args:
        registration: Registration with a loaded competition
        session: Store session to query through
        status: Restrict to this status; when None all siblings are returned,
            ordered by the sibling competitions' start dates

    Returns:
        Sibling registrations, empty when the competition is not part of a series
    """
    competition = registration.loaded_competition
    if not competition.part_of_competition_series() or registration.user_id is None:
        return []

    start_dates = {c.id: c.start_date for c in competition.series_sibling_competitions()}
    start_dates.pop(competition.id, None)
    if not start_dates:
        return []

    siblings = [
        sibling
        for sibling in session.registrations_for_user(registration.user_id, list(start_dates), status)
        if sibling.id != registration.id
    ]
    if status is None:
        siblings.sort(key=lambda sibling: start_dates[sibling.competition_id])
    return siblings


def series_registration_info(registration: "Registration", session: "RegistrationSession") -> str:
    """Accepted and pending sibling counts, rendered as ``"A + B"``."""
    counts = [
        len(series_sibling_registrations(registration, session, status))
        for status in SERIES_SIBLING_DISPLAY_STATUSES
    ]
    return " + ".join(str(count) for count in counts)
