"""
Export models - the two canonical registration shapes.

Pydantic models for the admin/API detailed view (snake_case keys) and the
public competition interchange format, WCIF (camelCase keys). External
consumers depend on these field lists.
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.domain.status import WcifStatus

# Identifiers of all known events, current and retired.
KNOWN_EVENT_IDS: tuple[str, ...] = (
    "222",
    "333",
    "333bf",
    "333fm",
    "333ft",
    "333mbf",
    "333mbo",
    "333oh",
    "444",
    "444bf",
    "555",
    "555bf",
    "666",
    "777",
    "clock",
    "magic",
    "minx",
    "mmagic",
    "pyram",
    "skewb",
    "sq1",
)


class UserView(BaseModel):
    """Public user fields; dob and email only when PII is requested."""

    id: int
    wca_id: str | None
    name: str
    gender: str | None
    country_iso2: str | None
    country: str | None
    dob: date | None = None
    email: str | None = None


class PaymentView(BaseModel):
    has_paid: bool
    payment_statuses: list[str] = Field(..., description="Most recent first")
    payment_amount_iso: int
    payment_amount_human_readable: str
    updated_at: datetime | None


class CompetingView(BaseModel):
    event_ids: list[str]
    registration_status: str | None = None
    registered_on: datetime | None = None
    comment: str | None = None
    admin_comment: str | None = None
    waiting_list_position: int | None = None


class HistoryItemView(BaseModel):
    changed_attributes: dict[str, Any]
    actor_type: str
    actor_id: int | None
    timestamp: datetime
    action: str


class RegistrationView(BaseModel):
    """Admin/API detailed view; optional sections are left unset when not requested."""

    user: UserView | None
    user_id: int | None
    competing: CompetingView
    payment: PaymentView | None = None
    guests: int | None = None
    history: list[HistoryItemView] | None = None


class WcifRegistration(BaseModel):
    """Registration in the competition interchange format."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    wca_registration_id: int
    event_ids: list[str]
    status: WcifStatus
    is_competing: bool
    guests: int | None = None
    comments: str | None = None
    administrative_notes: str | None = None
