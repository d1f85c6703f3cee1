"""Error types raised by the account service and consumed by the error handlers."""
from __future__ import annotations

from typing import Dict, Sequence


class DomainError(Exception):
    """An intentional failure that carries its own HTTP status and message."""

    status_code = 500

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BadRequest(DomainError):
    status_code = 400


class Unauthenticated(DomainError):
    status_code = 401


class Forbidden(DomainError):
    status_code = 403


class NotFound(DomainError):
    status_code = 404


class StoreValidationError(Exception):
    """Raised by the user store when one or more fields fail schema validation."""

    def __init__(self, errors: Dict[str, str]) -> None:
        if not errors:
            raise ValueError("StoreValidationError requires at least one field error")
        self.errors = dict(errors)
        super().__init__(". ".join(self.errors.values()))


class DuplicateKeyError(Exception):
    """Raised by the user store when a write violates a uniqueness constraint."""

    def __init__(self, fields: Sequence[str]) -> None:
        if not fields:
            raise ValueError("DuplicateKeyError requires the conflicting field names")
        self.fields = tuple(fields)
        super().__init__(f"Duplicate value for {', '.join(self.fields)}")


class InvalidInput(ValueError):
    """Raised when the password hasher receives structurally malformed input."""


__all__ = [
    "BadRequest",
    "DomainError",
    "DuplicateKeyError",
    "Forbidden",
    "InvalidInput",
    "NotFound",
    "StoreValidationError",
    "Unauthenticated",
]
