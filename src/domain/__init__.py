"""
Domain layer - Pure business logic with zero framework imports.

This package contains the registration business-rule engine: the
competing-status state machine, the validation rule set, fee/payment and
history bookkeeping, and the series and waitlist resolvers. It defines its
own port interfaces for its collaborators, ensuring true hexagonal
architecture decoupling.
"""

from .aggregate import CompetingEvents, Registration
from .exceptions import (
    CompetitionNotLoaded,
    NotOnWaitingList,
    RegistrationError,
    RegistrationNotFound,
    StaleRegistration,
    UserNotLoaded,
)
from .history import HistoryChange, HistoryEntry, HistoryLedger
from .money import Money
from .payments import PaymentLedger, RegistrationPayment
from .ports import (
    Competition,
    CompetitionDirectory,
    PaymentReceipt,
    ProcessingCache,
    RegistrationRepository,
    RegistrationSession,
    User,
    UserDirectory,
    WaitingList,
)
from .registration import (
    CompetingLaneUpdate,
    RegistrationOutcome,
    RegistrationService,
    RegistrationSubmission,
)
from .status import CompetingStatus, WcifStatus, wcif_status
from .validation import ErrorCode, ValidationFailure, ValidationResult

__all__ = [
    "CompetingEvents",
    "CompetingLaneUpdate",
    "CompetingStatus",
    "Competition",
    "CompetitionDirectory",
    "CompetitionNotLoaded",
    "ErrorCode",
    "HistoryChange",
    "HistoryEntry",
    "HistoryLedger",
    "Money",
    "NotOnWaitingList",
    "PaymentLedger",
    "PaymentReceipt",
    "ProcessingCache",
    "Registration",
    "RegistrationError",
    "RegistrationNotFound",
    "RegistrationOutcome",
    "RegistrationPayment",
    "RegistrationRepository",
    "RegistrationService",
    "RegistrationSession",
    "RegistrationSubmission",
    "StaleRegistration",
    "User",
    "UserDirectory",
    "UserNotLoaded",
    "ValidationFailure",
    "ValidationResult",
    "WaitingList",
    "WcifStatus",
    "wcif_status",
]
