"""Dynamic database credentials for a single SQL target."""

from __future__ import annotations

__version__ = "0.1.0"

from .config import ConnectionConfig, load_config
from .connections import AsyncpgOpener, ConnectionHandle, ConnectionManager, ConnectionOpener
from .credentials import CredentialService
from .errors import (
    ConfigValidationError,
    ConnectionBackendError,
    CredentialError,
    InvalidTemplateError,
    MalformedInputError,
    NotInitializedError,
    StatementExecutionError,
)
from .executor import StatementExecutor, execute_statements, prepare_statement
from .models import UsernameMetadata
from .sqltext import BlockDelimiter, QuotedSpan, classify, scan, split_statements
from .usernames import DEFAULT_USERNAME_TEMPLATE, UsernameTemplate, compile_template, render

__all__ = [
    "AsyncpgOpener",
    "BlockDelimiter",
    "ConfigValidationError",
    "ConnectionBackendError",
    "ConnectionConfig",
    "ConnectionHandle",
    "ConnectionManager",
    "ConnectionOpener",
    "CredentialError",
    "CredentialService",
    "DEFAULT_USERNAME_TEMPLATE",
    "InvalidTemplateError",
    "MalformedInputError",
    "NotInitializedError",
    "QuotedSpan",
    "StatementExecutionError",
    "StatementExecutor",
    "UsernameMetadata",
    "UsernameTemplate",
    "__version__",
    "classify",
    "compile_template",
    "execute_statements",
    "load_config",
    "prepare_statement",
    "render",
    "scan",
    "split_statements",
]
