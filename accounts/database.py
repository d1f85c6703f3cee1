"""SQLite-backed persistence for user accounts."""
from __future__ import annotations

import logging
import math
import re
import sqlite3
from contextlib import closing, contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, NoReturn, Optional, Tuple

from .errors import DuplicateKeyError, StoreValidationError
from .models import Role, User
from .passwords import PasswordHasher, password_problem

logger = logging.getLogger("accounts.database")

EMAIL_PATTERN = re.compile(r"^\S+@\S+\.\S+$")
MIN_PASSWORD_LENGTH = 8

# Client-writable attributes, in the order their validation messages are reported.
_SCHEMA_FIELDS = ("name", "email", "password", "age", "role")
_ROLE_VALUES = tuple(member.value for member in Role)
_FILTER_COLUMNS = {"id", "name", "email", "role"}
_UNIQUE_FAILURE = re.compile(r"UNIQUE constraint failed: (.+)")
_MAX_INTEGER = 2**63 - 1


def resolve_database_path(env_value: str) -> Path:
    """Resolve the on-disk path for the account database."""

    return Path(env_value).expanduser().resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _coerce_id(user_id: object) -> Optional[int]:
    if isinstance(user_id, bool):
        return None
    if isinstance(user_id, int):
        identifier = user_id
    elif isinstance(user_id, str) and user_id.strip().isdigit():
        identifier = int(user_id.strip())
    else:
        return None
    # Ids outside SQLite's integer range can never match a row.
    if not 0 <= identifier <= _MAX_INTEGER:
        return None
    return identifier


def _is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_age(value: object) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _is_storable_number(value: float) -> bool:
    return abs(value) <= _MAX_INTEGER and math.isfinite(value)


def _normalise_number(value: float) -> int | float:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _duplicate_fields(exc: sqlite3.IntegrityError) -> Optional[List[str]]:
    match = _UNIQUE_FAILURE.search(str(exc))
    if match is None:
        return None
    return [column.strip().split(".")[-1] for column in match.group(1).split(",")]


class Database:
    """Simple wrapper around SQLite for persisting user accounts.

    Every write is schema-validated before it reaches SQLite and passwords are hashed
    with the configured :class:`PasswordHasher` before they are stored. The ``UNIQUE``
    constraint on ``email`` is left to SQLite, which serialises concurrent writers.
    """

    def __init__(self, path: Path, *, hasher: Optional[PasswordHasher] = None) -> None:
        self._path = path
        self._hasher = hasher or PasswordHasher()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def hasher(self) -> PasswordHasher:
        return self._hasher

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with closing(self._connect()) as conn:
            with conn:
                yield conn

    def initialize(self) -> None:
        """Create the users table if it does not already exist."""

        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._transaction() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    age REAL,
                    role TEXT NOT NULL DEFAULT 'user',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                """
            )
        logger.info("Database initialised at %s", self._path)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def find_by_id(self, user_id: object, *, include_password: bool = False) -> Optional[User]:
        identifier = _coerce_id(user_id)
        if identifier is None:
            return None
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (identifier,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row, include_password=include_password)

    def find_one(self, *, include_password: bool = False, **filters: object) -> Optional[User]:
        """Return the first user matching every ``column=value`` filter."""

        if not filters:
            raise ValueError("find_one requires at least one filter")
        unknown = set(filters) - _FILTER_COLUMNS
        if unknown:
            raise ValueError(f"Unsupported filter field(s): {', '.join(sorted(unknown))}")

        clauses: List[str] = []
        values: List[object] = []
        for column, value in filters.items():
            if column == "id":
                value = _coerce_id(value)
                if value is None:
                    return None
            elif column == "email" and isinstance(value, str):
                value = value.strip().lower()
            elif isinstance(value, Role):
                value = value.value
            clauses.append(f"{column} = ?")
            values.append(value)

        query = f"SELECT * FROM users WHERE {' AND '.join(clauses)} ORDER BY id LIMIT 1"
        with self._transaction() as conn:
            row = conn.execute(query, values).fetchone()
        if row is None:
            return None
        return self._row_to_user(row, include_password=include_password)

    def count_documents(self) -> int:
        with self._transaction() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM users").fetchone()
        return int(row["total"])

    def find(self, *, skip: int = 0, limit: Optional[int] = None) -> List[User]:
        if skip < 0:
            raise ValueError("skip must not be negative")
        skip = min(skip, _MAX_INTEGER)
        if limit is not None:
            limit = min(limit, _MAX_INTEGER)
        query = "SELECT * FROM users ORDER BY id"
        params: Tuple[int, ...] = ()
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params = (limit, skip)
        elif skip:
            query += " LIMIT -1 OFFSET ?"
            params = (skip,)
        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_user(row) for row in rows]

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        """Return the user when ``password`` matches the stored hash for ``email``."""

        if isinstance(password, str) and password_problem(password) is not None:
            # No stored password can equal a candidate bcrypt refuses to digest.
            return None
        user = self.find_one(email=email, include_password=True)
        if user is None or user.password_hash is None:
            return None
        if not self._hasher.verify(password, user.password_hash):
            return None
        return replace(user, password_hash=None)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def create(self, attrs: Mapping[str, Any]) -> User:
        """Validate ``attrs``, hash the password and insert a new user."""

        values = self._clean(attrs, partial=False, validate=True)
        values.setdefault("role", Role.USER.value)
        now = _serialize_datetime(_current_timestamp())

        with self._transaction() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO users (name, email, password_hash, age, role, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        values["name"],
                        values["email"],
                        values["password_hash"],
                        values.get("age"),
                        values["role"],
                        now,
                        now,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                self._raise_integrity_error(exc)
            user_id = cursor.lastrowid

        user = self.find_by_id(user_id)
        if user is None:
            raise RuntimeError("Failed to load user after creation")
        return user

    def find_by_id_and_update(
        self,
        user_id: object,
        attrs: Mapping[str, Any],
        *,
        return_updated: bool = True,
        run_validation: bool = True,
    ) -> Optional[User]:
        """Apply ``attrs`` to an existing user.

        Only the supplied fields are validated. A supplied password is rehashed; an
        omitted one is left untouched. Returns ``None`` when the user does not exist,
        otherwise the updated record (or the previous one when ``return_updated`` is
        false).
        """

        identifier = _coerce_id(user_id)
        if identifier is None:
            return None

        values = self._clean(attrs, partial=True, validate=run_validation)
        existing = self.find_by_id(identifier)
        if existing is None:
            return None
        if not values:
            return existing

        values["updated_at"] = _serialize_datetime(_current_timestamp())
        assignments = ", ".join(f"{column} = ?" for column in values)
        query = f"UPDATE users SET {assignments} WHERE id = ?"

        with self._transaction() as conn:
            try:
                cursor = conn.execute(query, [*values.values(), identifier])
            except sqlite3.IntegrityError as exc:
                self._raise_integrity_error(exc)
            if cursor.rowcount == 0:
                return None

        if not return_updated:
            return existing
        return self.find_by_id(identifier)

    def find_by_id_and_delete(self, user_id: object) -> Optional[User]:
        """Delete a user and return the removed record, or ``None`` if absent."""

        existing = self.find_by_id(user_id)
        if existing is None:
            return None
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM users WHERE id = ?", (existing.id,))
            if cursor.rowcount == 0:
                return None
        return existing

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _clean(self, attrs: Mapping[str, Any], *, partial: bool, validate: bool) -> Dict[str, Any]:
        """Normalise client attributes into column values.

        Unknown keys are ignored. With ``partial`` only the supplied fields are
        considered; otherwise every field is checked, so missing required fields fail.
        """

        errors: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        password: Any = None
        has_password = False

        for field in _SCHEMA_FIELDS:
            if partial and field not in attrs:
                continue
            value = attrs.get(field)

            if field == "name":
                if _is_blank(value):
                    errors[field] = "Name is required"
                elif not isinstance(value, str):
                    errors[field] = "Name must be a string"
                else:
                    values["name"] = value.strip()

            elif field == "email":
                if _is_blank(value):
                    errors[field] = "Email is required"
                elif not isinstance(value, str):
                    errors[field] = "Email must be a string"
                else:
                    email = value.strip().lower()
                    if not EMAIL_PATTERN.match(email):
                        errors[field] = f"{email} is not a valid email!"
                    values["email"] = email

            elif field == "password":
                if value is None or value == "":
                    errors[field] = "Password is required"
                elif not isinstance(value, str):
                    errors[field] = "Password must be a string"
                elif len(value) < MIN_PASSWORD_LENGTH:
                    errors[field] = f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
                else:
                    problem = password_problem(value)
                    if problem is not None:
                        errors[field] = problem
                password = value
                has_password = True

            elif field == "age":
                if value is None:
                    values["age"] = None
                    continue
                age = _parse_age(value)
                if age is None or not _is_storable_number(age):
                    errors[field] = "Age must be a number"
                    continue
                if age < 0:
                    errors[field] = "Age must be positive"
                values["age"] = _normalise_number(age)

            elif field == "role":
                if value is None and not partial:
                    continue
                role = value.value if isinstance(value, Role) else value
                if role not in _ROLE_VALUES:
                    errors[field] = f"{role} is not a valid role"
                else:
                    values["role"] = role

        if errors and validate:
            raise StoreValidationError(errors)
        if has_password:
            # Plaintext never reaches a column; malformed input fails in the hasher.
            values["password_hash"] = self._hasher.hash(password)
        return values

    def _raise_integrity_error(self, exc: sqlite3.IntegrityError) -> NoReturn:
        fields = _duplicate_fields(exc)
        if fields:
            logger.debug("Rejected write violating uniqueness of %s", ", ".join(fields))
            raise DuplicateKeyError(fields) from exc
        raise exc

    def _row_to_user(self, row: sqlite3.Row, *, include_password: bool = False) -> User:
        age = row["age"]
        return User(
            id=int(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            role=Role(row["role"]),
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
            age=_normalise_number(age) if age is not None else None,
            password_hash=str(row["password_hash"]) if include_password else None,
        )


__all__ = ["Database", "resolve_database_path"]
