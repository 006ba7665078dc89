"""Exception hierarchy shared by the credential manager modules."""

from __future__ import annotations


class CredentialError(RuntimeError):
    """Base error for credential issuance failures."""


class ConfigValidationError(CredentialError):
    """Raised when the connection configuration is missing or malformed."""


class NotInitializedError(CredentialError):
    """Raised when an operation runs before a successful initialize."""


class ConnectionBackendError(CredentialError):
    """Raised when the database cannot be opened or verified."""


class MalformedInputError(CredentialError):
    """Raised when SQL text contains a quote that never closes."""


class InvalidTemplateError(CredentialError):
    """Raised when a username template cannot be compiled."""


class StatementExecutionError(CredentialError):
    """Raised when a statement unit fails or a request carries no statements."""

    def __init__(self, message: str, *, template_index: int | None = None, unit_index: int | None = None) -> None:
        super().__init__(message)
        self.template_index = template_index
        self.unit_index = unit_index


__all__ = [
    "ConfigValidationError",
    "ConnectionBackendError",
    "CredentialError",
    "InvalidTemplateError",
    "MalformedInputError",
    "NotInitializedError",
    "StatementExecutionError",
]
