"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- Collaborator fakes (competition, user, waiting list, receipt)
- In-memory repository and recording cache
- A fully wired RegistrationService
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any

import pytest

from src.adapters.repository.memory import InMemoryRegistrationRepository
from src.domain.aggregate import Registration
from src.domain.registration import RegistrationService


@dataclass
class FakeWaitingList:
    """Waiting list ordered by insertion."""

    entries: list[int] = field(default_factory=list)

    def position(self, registration: Registration) -> int | None:
        if registration.id not in self.entries:
            return None
        return self.entries.index(registration.id) + 1

    def add(self, registration: Registration) -> None:
        if registration.id not in self.entries:
            self.entries.append(registration.id)

    def remove(self, registration: Registration) -> None:
        if registration.id in self.entries:
            self.entries.remove(registration.id)


@dataclass
class FakeCompetition:
    id: str = "SpringOpen2026"
    start_date: date = date(2026, 5, 1)
    currency_code: str = "USD"
    base_entry_fee_lowest_denomination: int = 1000
    event_fees: dict[str, int] = field(default_factory=dict)
    guests_enabled: bool = True
    guests_per_registration_limit: int | None = None
    guests_per_registration_limit_enabled: bool = False
    guest_entry_status_restricted: bool = False
    events_per_registration_limit: int | None = None
    events_per_registration_limit_enabled: bool = False
    allow_registration_without_qualification: bool = True
    unqualified_events: set[str] = field(default_factory=set)
    force_comment_in_registration: bool = False
    using_payment_integrations: bool = True
    competitor_can_cancel: str = "always"
    waiting_list: FakeWaitingList = field(default_factory=FakeWaitingList)
    series: list["FakeCompetition"] = field(default_factory=list)
    auto_close_attempts: int = 0

    def part_of_competition_series(self) -> bool:
        return bool(self.series)

    def series_sibling_competitions(self) -> list["FakeCompetition"]:
        return [competition for competition in self.series if competition.id != self.id]

    def event_fee_lowest_denomination(self, event_id: str) -> int:
        return self.event_fees.get(event_id, 0)

    def can_register_for_event(self, event_id: str, user: Any) -> bool:
        return event_id not in self.unqualified_events

    def attempt_auto_close(self) -> bool:
        self.auto_close_attempts += 1
        return True


def link_series(*competitions: FakeCompetition) -> None:
    """Bundle the competitions into one series."""
    for competition in competitions:
        competition.series = list(competitions)


@dataclass
class FakeUser:
    id: int = 1
    wca_id: str | None = "2019DOEJ01"
    name: str = "Jordan Doe"
    gender: str | None = "o"
    country_iso2: str | None = "US"
    country: str | None = "United States"
    dob: date | None = date(2000, 1, 31)
    email: str = "jordan@example.com"
    banned_until: date | None = None
    reasons: list[str] = field(default_factory=list)

    def banned_at_date(self, day: date) -> bool:
        return self.banned_until is not None and day <= self.banned_until

    def cannot_register_reasons(self, competition: Any, is_competing: bool) -> list[str]:
        return list(self.reasons)


@dataclass
class FakeReceipt:
    id: str = "pi_001"
    status: str = "succeeded"

    def determine_status(self) -> str:
        return self.status


class DictDirectory:
    """CompetitionDirectory / UserDirectory over a dict."""

    def __init__(self, *items: Any) -> None:
        self.items = {item.id: item for item in items}

    def add(self, item: Any) -> None:
        self.items[item.id] = item

    def get(self, key: Any) -> Any:
        return self.items.get(key)


class RecordingCache:
    def __init__(self) -> None:
        self.deleted: list[str] = []

    def delete(self, key: str) -> None:
        self.deleted.append(key)


def make_registration(
    competition: FakeCompetition,
    user: FakeUser | None,
    event_ids: tuple[str, ...] = ("333",),
    **kwargs: Any,
) -> Registration:
    """Build an unsaved registration with collaborators attached."""
    registration = Registration(
        competition_id=competition.id,
        user_id=user.id if user is not None else None,
        **kwargs,
    ).attach(competition, user)
    registration.stage_events(event_ids)
    return registration


@pytest.fixture
def competition() -> FakeCompetition:
    return FakeCompetition()


@pytest.fixture
def user() -> FakeUser:
    return FakeUser()


@pytest.fixture
def competitions(competition: FakeCompetition) -> DictDirectory:
    return DictDirectory(competition)


@pytest.fixture
def users(user: FakeUser) -> DictDirectory:
    return DictDirectory(user, FakeUser(id=99, wca_id=None, name="Organizer", email="org@example.com"))


@pytest.fixture
def repository() -> InMemoryRegistrationRepository:
    return InMemoryRegistrationRepository()


@pytest.fixture
def cache() -> RecordingCache:
    return RecordingCache()


@pytest.fixture
def service(
    repository: InMemoryRegistrationRepository,
    competitions: DictDirectory,
    users: DictDirectory,
    cache: RecordingCache,
) -> RegistrationService:
    return RegistrationService(
        repository=repository,
        competitions=competitions,
        users=users,
        cache=cache,
    )
