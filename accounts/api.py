"""FastAPI application exposing signup, login and user management endpoints."""
from __future__ import annotations

import logging
import math
import sqlite3
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from fastapi import Body, Depends, FastAPI, Response, status
from pydantic import BaseModel, ConfigDict, Field

from .auth import AccessPolicy, AuthContext, IdentityResolver
from .config import Settings, load_settings
from .database import Database
from .errors import BadRequest, Forbidden, NotFound, Unauthenticated
from .handlers import register_exception_handlers
from .models import Role, User
from .tokens import TokenService

logger = logging.getLogger("accounts.api")

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10
_SIGNUP_FIELDS = ("name", "email", "password", "age")


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    age: Optional[Union[int, float]] = None
    role: Role
    created_at: datetime
    updated_at: datetime


class UserEnvelope(BaseModel):
    user: UserResponse


class SignupResponse(BaseModel):
    status: str = "success"
    token: str
    data: UserEnvelope


class LoginResponse(BaseModel):
    status: str = "success"
    token: str


class PageMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_docs: int = Field(..., alias="totalDocs")
    total_pages: int = Field(..., alias="totalPages")
    page: int
    limit: int


class UserPage(BaseModel):
    users: List[UserResponse]
    meta: PageMeta


class UserListResponse(BaseModel):
    status: str = "success"
    data: UserPage


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        age=user.age,
        role=user.role,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def _parse_positive_int(raw: Optional[str], default: int) -> int:
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        return default
    return value if value >= 1 else default


def _initialise_database(database: Database) -> None:
    # A broken database must not stop the service from listening; requests that
    # need the store fail individually and are reported as internal errors.
    try:
        database.initialize()
    except (sqlite3.Error, OSError):
        logger.exception("Failed to open the account database at %s", database.path)


def _policy_dependency(
    resolver: IdentityResolver, policy: AccessPolicy
) -> Callable[..., AuthContext]:
    def dependency(context: AuthContext = Depends(resolver)) -> AuthContext:
        return policy.check(context)

    return dependency


def create_app(
    settings: Settings | None = None,
    *,
    database: Database | None = None,
    tokens: TokenService | None = None,
    initialize_database: bool = True,
) -> FastAPI:
    """Build the account service application.

    ``settings`` are loaded from the environment unless both ``database`` and
    ``tokens`` are supplied directly.
    """

    if database is None or tokens is None:
        settings = settings or load_settings()
    if database is None:
        database = Database(settings.database_path)
    if tokens is None:
        tokens = TokenService(settings.jwt_secret, ttl=settings.token_ttl)
    if initialize_database:
        _initialise_database(database)

    app = FastAPI(
        title="Account Service",
        description="User accounts with bearer-token authentication and role-based access",
        version="1.0.0",
    )
    app.state.database = database
    app.state.tokens = tokens

    protect = IdentityResolver(database, tokens)
    admin_only = _policy_dependency(protect, AccessPolicy.restrict_to(Role.ADMIN))

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
    def signup(payload: Optional[Dict[str, Any]] = Body(default=None)) -> SignupResponse:
        payload = payload or {}
        attrs = {field: payload[field] for field in _SIGNUP_FIELDS if field in payload}
        user = database.create(attrs)
        logger.info("Signed up user %s", user.id)
        return SignupResponse(token=tokens.issue(user.id), data=UserEnvelope(user=user_to_response(user)))

    @app.post("/login", response_model=LoginResponse)
    def login(payload: Optional[Dict[str, Any]] = Body(default=None)) -> LoginResponse:
        payload = payload or {}
        email = payload.get("email")
        password = payload.get("password")
        if not isinstance(email, str) or not isinstance(password, str) or not email or not password:
            raise BadRequest("Provide Email and Password")

        user = database.authenticate_user(email, password)
        if user is None:
            logger.info("Rejected login attempt")
            raise Unauthenticated("incorrect Email or Password")

        logger.info("User %s logged in", user.id)
        return LoginResponse(token=tokens.issue(user.id))

    @app.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
    def create_user(payload: Optional[Dict[str, Any]] = Body(default=None)) -> UserResponse:
        user = database.create(payload or {})
        logger.info("Created user %s", user.id)
        return user_to_response(user)

    @app.get("/users", response_model=UserListResponse)
    def list_users(
        page: Optional[str] = None,
        limit: Optional[str] = None,
        _: AuthContext = Depends(admin_only),
    ) -> UserListResponse:
        page_number = _parse_positive_int(page, DEFAULT_PAGE)
        page_size = _parse_positive_int(limit, DEFAULT_PAGE_SIZE)
        skip = (page_number - 1) * page_size

        total_docs = database.count_documents()
        users = database.find(skip=skip, limit=page_size)
        meta = PageMeta(
            total_docs=total_docs,
            total_pages=math.ceil(total_docs / page_size),
            page=page_number,
            limit=page_size,
        )
        return UserListResponse(data=UserPage(users=[user_to_response(user) for user in users], meta=meta))

    @app.get("/users/{user_id}", response_model=UserResponse)
    def read_user(user_id: str) -> UserResponse:
        user = database.find_by_id(user_id)
        if user is None:
            raise NotFound("User not found")
        return user_to_response(user)

    @app.patch("/users/{user_id}", response_model=UserResponse)
    def update_user(
        user_id: str,
        payload: Optional[Dict[str, Any]] = Body(default=None),
        context: AuthContext = Depends(protect),
    ) -> UserResponse:
        if not context.is_admin and not context.owns(user_id):
            raise Forbidden("Not your account")
        payload = payload or {}
        if "role" in payload and not context.is_admin:
            raise Forbidden("You do not have permission to perform this action.")

        user = database.find_by_id_and_update(user_id, payload, return_updated=True, run_validation=True)
        if user is None:
            raise NotFound("User not found")
        logger.info("User %s updated by %s", user.id, context.user.id)
        return user_to_response(user)

    @app.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_user(user_id: str, context: AuthContext = Depends(admin_only)) -> Response:
        user = database.find_by_id_and_delete(user_id)
        if user is None:
            raise NotFound("User not found")
        logger.info("User %s deleted by %s", user.id, context.user.id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    register_exception_handlers(app)

    return app


__all__ = ["create_app", "user_to_response"]
