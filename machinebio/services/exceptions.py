class DomainError(Exception):
    """Base class for all domain errors raised by the services."""


class ValidationError(DomainError):
    """Raised when required input is missing or malformed."""


class NotFoundError(DomainError):
    """Raised when a referenced entity does not exist."""


class ForbiddenError(DomainError):
    """Raised when the caller lacks the required relationship to the entity."""


class InvalidStateError(DomainError):
    """Raised when the operation is not valid for the entity's lifecycle state."""


class DuplicateError(DomainError):
    """Raised when a uniqueness rule is violated (one guess per user per spot)."""


class DatabaseQueryError(DomainError):
    """Raised when a database query fails or returns unexpected results."""


class ExternalServiceError(DomainError):
    """Raised when an upstream service keeps failing after retries."""
