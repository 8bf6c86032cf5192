"""Exceptions for django-clubs."""


class ClubsError(Exception):
    """Base exception for club errors."""
    pass


class AuthorizationError(ClubsError):
    """Raised when a principal lacks ownership, capability or moderator status."""

    def __init__(self, message: str = "You do not have permission to perform this action"):
        self.message = message
        super().__init__(message)


class BadRequestError(ClubsError):
    """Raised when an operation is structurally invalid for the current state."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(ClubsError):
    """Raised when a referenced club, tier or resource does not exist."""

    def __init__(self, kind: str, identifier=None):
        self.kind = kind
        self.identifier = identifier
        if identifier is None:
            message = f"{kind} not found"
        else:
            message = f"{kind} '{identifier}' not found"
        super().__init__(message)


class DatabaseError(ClubsError):
    """Raised when the underlying store fails inside a transaction boundary.

    The original driver error is chained as ``__cause__``.
    """
    pass


class ClubsConfigError(ClubsError):
    """Raised when django-clubs configuration is invalid."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot load '{path}': {reason}")
