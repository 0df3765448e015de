"""
Domain exceptions - Semantic error types for registration.

This module defines domain-specific exceptions that communicate
programmer errors and concurrency conflicts without leaking
infrastructure details. User-correctable rule violations are not
exceptions: they are returned as a ValidationResult.
"""


class RegistrationError(Exception):
    """Base class for registration domain errors."""

    pass


class RegistrationNotFound(RegistrationError):
    """No registration exists with the requested id."""

    def __init__(self, registration_id: int) -> None:
        super().__init__(f"Registration {registration_id} not found")
        self.registration_id = registration_id


class StaleRegistration(RegistrationError):
    """The registration was modified by another writer since it was loaded."""

    def __init__(self, registration_id: int, lock_version: int) -> None:
        super().__init__(
            f"Registration {registration_id} changed since version {lock_version} was loaded"
        )
        self.registration_id = registration_id
        self.lock_version = lock_version


class NotOnWaitingList(RegistrationError, ValueError):
    """A waiting-list operation was attempted on a registration that is not waitlisted."""

    pass


class UserNotLoaded(RegistrationError):
    """A user attribute was read from a registration without a loaded user."""

    pass


class CompetitionNotLoaded(RegistrationError):
    """A competition-dependent value was computed on a registration without a loaded competition."""

    pass
