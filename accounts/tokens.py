"""Signed, short-lived bearer tokens identifying a user."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt

from .errors import Unauthenticated

TOKEN_TTL = timedelta(hours=1)
_ALGORITHM = "HS256"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """Issue and verify HS256 JWTs whose subject is a user id.

    Tokens are stateless: there is no refresh token and no revocation list, so the
    only way to renew one is to log in again.
    """

    def __init__(
        self,
        secret: str,
        *,
        ttl: timedelta = TOKEN_TTL,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not secret:
            raise ValueError("A token signing secret must be provided")
        self._secret = secret
        self._ttl = ttl
        self._clock = clock or _utc_now

    def issue(self, subject_id: int | str) -> str:
        issued_at = self._clock()
        payload = {
            "sub": str(subject_id),
            "iat": issued_at,
            "exp": issued_at + self._ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify(self, token: str) -> str:
        """Return the subject id embedded in ``token``.

        Raises:
            Unauthenticated: the token is malformed, its signature does not match, a
                required claim is missing, or it has expired.
        """

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                options={"require": ["sub", "iat", "exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise Unauthenticated("Your token has expired. Please log in again.") from exc
        except jwt.InvalidTokenError as exc:
            raise Unauthenticated("Invalid token. Please log in again.") from exc
        return str(payload["sub"])


__all__ = ["TOKEN_TTL", "TokenService"]
