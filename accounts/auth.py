"""Request gating: bearer-token identity resolution and role-based access."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import FrozenSet

from fastapi import Request

from .database import Database
from .errors import Forbidden, Unauthenticated
from .models import Role, User
from .tokens import TokenService

logger = logging.getLogger("accounts.auth")

_BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class AuthContext:
    """The caller resolved for a single request."""

    user: User

    @property
    def is_admin(self) -> bool:
        return self.user.role is Role.ADMIN

    def owns(self, user_id: object) -> bool:
        return str(self.user.id) == str(user_id)


class IdentityResolver:
    """Turn an ``Authorization: Bearer <token>`` header into an :class:`AuthContext`.

    Instances are FastAPI dependencies. ``__call__`` is synchronous so FastAPI runs it
    in its threadpool, keeping token checks and the user lookup off the event loop.
    """

    def __init__(self, database: Database, tokens: TokenService) -> None:
        self._database = database
        self._tokens = tokens

    def __call__(self, request: Request) -> AuthContext:
        return self.resolve(request.headers.get("authorization"))

    def resolve(self, header: str | None) -> AuthContext:
        token = None
        if header and header.startswith(_BEARER_PREFIX):
            token = header.split(" ")[1]
        if not token:
            logger.debug("Rejected request without a bearer token")
            raise Unauthenticated("You are not logged in")

        subject_id = self._tokens.verify(token)

        user = self._database.find_by_id(subject_id)
        if user is None:
            logger.debug("Rejected token for missing user %s", subject_id)
            raise Unauthenticated("User no longer exists")
        return AuthContext(user=user)


@dataclass(frozen=True)
class AccessPolicy:
    """Allow only callers whose role is in ``allowed_roles``."""

    allowed_roles: FrozenSet[Role]

    @classmethod
    def restrict_to(cls, *roles: Role | str) -> "AccessPolicy":
        if not roles:
            raise ValueError("An access policy needs at least one allowed role")
        return cls(allowed_roles=frozenset(Role(role) for role in roles))

    def allows(self, role: Role) -> bool:
        return role in self.allowed_roles

    def check(self, context: AuthContext) -> AuthContext:
        if not self.allows(context.user.role):
            raise Forbidden("You do not have permission to perform this action.")
        return context


__all__ = ["AccessPolicy", "AuthContext", "IdentityResolver"]
