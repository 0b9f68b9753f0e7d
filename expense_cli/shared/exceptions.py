"""Project-wide custom exceptions."""

from __future__ import annotations

from enum import Enum


class ExpenseCLIError(Exception):
    """Base exception for the expense pipeline."""


class ConfigurationError(ExpenseCLIError):
    """Raised when configuration loading or validation fails."""


class ParseErrorKind(str, Enum):
    """Why an extraction response could not be turned into a result."""

    TRUNCATED = "truncated"
    MALFORMED = "malformed"
    UNRECOVERABLE = "unrecoverable"


class ResponseParseError(ExpenseCLIError):
    """Raised when raw extraction text cannot be parsed."""

    def __init__(self, kind: ParseErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class ImportDocumentError(ExpenseCLIError):
    """Raised when a bulk import document cannot be read as a whole."""


class DatabaseError(ExpenseCLIError):
    """Raised for store-related issues."""
