"""bcrypt password hashing for stored user credentials."""
from __future__ import annotations

from passlib.context import CryptContext

from .errors import InvalidInput

BCRYPT_ROUNDS = 12
# passlib refuses longer secrets before hashing them.
MAX_PASSWORD_LENGTH = 4096


def password_problem(password: str) -> str | None:
    """Return why bcrypt cannot digest ``password``, or ``None`` when it can."""

    if len(password) > MAX_PASSWORD_LENGTH:
        return f"Password must be at most {MAX_PASSWORD_LENGTH} characters long"
    if "\x00" in password:
        return "Password must not contain null characters"
    return None


class PasswordHasher:
    """Hash and verify plaintext passwords with a salted bcrypt digest."""

    def __init__(self, *, rounds: int = BCRYPT_ROUNDS) -> None:
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, password: str) -> str:
        _check_password(password)
        return self._context.hash(password)

    def verify(self, password: str, hashed: str) -> bool:
        """Return ``True`` when ``password`` matches ``hashed``.

        A mismatch is not an error. Malformed arguments, including a stored value that
        is not a bcrypt hash, raise :class:`InvalidInput`.
        """

        _check_password(password)
        if not isinstance(hashed, str) or not hashed:
            raise InvalidInput("Password hash must be a non-empty string")
        try:
            return self._context.verify(password, hashed)
        except (ValueError, TypeError) as exc:
            raise InvalidInput("Password hash is not a valid bcrypt hash") from exc


def _check_password(password: object) -> None:
    if not isinstance(password, str) or not password:
        raise InvalidInput("Password must be a non-empty string")
    problem = password_problem(password)
    if problem is not None:
        raise InvalidInput(problem)


__all__ = ["BCRYPT_ROUNDS", "MAX_PASSWORD_LENGTH", "PasswordHasher", "password_problem"]
