# escort/errors.py

from __future__ import annotations


class EscortError(RuntimeError):
    """Base class for errors that are safe to show to the user."""


class NotFoundError(EscortError):
    pass


class ValidationError(EscortError):
    pass


class PermissionDenied(EscortError):
    pass


class AuthenticationError(EscortError):
    pass


class AccountLocked(AuthenticationError):
    pass
