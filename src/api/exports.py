"""
Export builders - render a Registration into its canonical shapes.

to_detailed_view() feeds the admin/API layer, to_interchange_format() the
public WCIF document; wcif_json_schema() declares the latter for external
validators. Both exports are JSON-ready dicts.
"""

from collections.abc import Iterable
from typing import Any

from src.api.models import (
    KNOWN_EVENT_IDS,
    CompetingView,
    HistoryItemView,
    PaymentView,
    RegistrationView,
    UserView,
    WcifRegistration,
)
from src.domain.aggregate import Registration
from src.domain.status import CompetingStatus, WcifStatus, registration_status_label


def _user_view(registration: Registration, pii: bool) -> UserView | None:
    # user_id outlives a deleted user
    user = registration.user
    if user is None:
        return None
    view = UserView(
        id=user.id,
        wca_id=user.wca_id,
        name=user.name,
        gender=user.gender,
        country_iso2=user.country_iso2,
        country=user.country,
    )
    if pii:
        view.dob = user.dob
        view.email = user.email
    return view


def _payment_view(registration: Registration) -> PaymentView:
    paid = registration.paid_entry_fees
    return PaymentView(
        has_paid=registration.outstanding_entry_fees.cents <= 0,
        payment_statuses=registration.payment_ledger.statuses_most_recent_first(),
        payment_amount_iso=paid.cents,
        payment_amount_human_readable=paid.human_readable(),
        updated_at=registration.last_payment_date,
    )


def to_detailed_view(
    registration: Registration,
    admin: bool = False,
    history: bool = False,
    pii: bool = False,
) -> dict[str, Any]:
    """
    Build the admin/API view of a registration.

    Args:
        registration: Registration with its competition (and user) attached
        admin: Include payment (when the competition uses integrated
            payments), guests, status, comments and waiting list position
        history: Include the ordered audit history
        pii: Include the user's date of birth and email

    Returns:
        JSON-ready dict; sections that were not requested are absent
    """
    view = RegistrationView(
        user=_user_view(registration, pii),
        user_id=registration.user_id,
        competing=CompetingView(event_ids=registration.event_ids),
    )

    if admin:
        competing = view.competing
        if registration.loaded_competition.using_payment_integrations:
            view.payment = _payment_view(registration)
        view.guests = registration.guests
        competing.registration_status = registration_status_label(
            registration.competing_status, registration.is_competing
        )
        competing.registered_on = registration.registered_at
        competing.comment = registration.comments
        competing.admin_comment = registration.administrative_notes
        if registration.competing_status is CompetingStatus.WAITING_LIST:
            competing.waiting_list_position = registration.waiting_list_position

    if history:
        view.history = [HistoryItemView(**item) for item in registration.registration_history()]

    return view.model_dump(mode="json", exclude_unset=True)


def to_interchange_format(registration: Registration, authorized: bool = False) -> dict[str, Any]:
    """
    Build the WCIF registration object.

    Args:
        registration: Persisted registration
        authorized: Include guests, comments and administrative notes

    Returns:
        JSON-ready dict with camelCase keys
    """
    wcif = WcifRegistration(
        wca_registration_id=registration.id,
        event_ids=registration.event_ids,
        status=registration.wcif_status,
        is_competing=registration.is_competing,
    )
    if authorized:
        wcif.guests = registration.guests
        wcif.comments = registration.comments or ""
        wcif.administrative_notes = registration.administrative_notes or ""
    return wcif.model_dump(mode="json", by_alias=True, exclude_unset=True)


def wcif_json_schema(event_ids: Iterable[str] = KNOWN_EVENT_IDS) -> dict[str, Any]:
    """JSON schema of the WCIF registration object, for external validators."""
    return {
        "type": ["object", "null"],
        "properties": {
            "wcaRegistrationId": {"type": "integer"},
            "eventIds": {"type": "array", "items": {"type": "string", "enum": list(event_ids)}},
            "status": {"type": "string", "enum": [status.value for status in WcifStatus]},
            "guests": {"type": "integer"},
            "comments": {"type": "string"},
            "administrativeNotes": {"type": "string"},
            "isCompeting": {"type": "boolean"},
        },
    }
