"""Domain models for the account service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class User:
    """Represents a user account stored in the account database.

    ``password_hash`` is only populated when the store is asked to include it.
    """

    id: int
    name: str
    email: str
    role: Role
    created_at: datetime
    updated_at: datetime
    age: Optional[float] = None
    password_hash: Optional[str] = None


__all__ = ["Role", "User"]
