"""Command-line interface for the account service."""

from __future__ import annotations
import argparse
import logging
import sys
from getpass import getpass
from typing import Sequence

from accounts.config import ConfigurationError, Settings, load_settings
from accounts.database import Database
from accounts.errors import DuplicateKeyError, StoreValidationError
from accounts.handlers import translate_error
from accounts.models import Role

logger = logging.getLogger("accounts.main")

KNOWN_COMMANDS = {"serve", "init-db", "create-user", "list-users"}


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Account service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the account database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP account service")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=3000,
        help="Port for the HTTP API (default: 3000)",
    )

    create_parser = subparsers.add_parser("create-user", help="Create a user account")
    create_parser.add_argument("name", help="Display name for the user")
    create_parser.add_argument("email", help="Unique email address for login")
    create_parser.add_argument(
        "--admin",
        action="store_true",
        help="Grant the admin role to the new account",
    )

    subparsers.add_parser("list-users", help="List registered user accounts")

    args_list = list(argv) if argv is not None else sys.argv[1:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in KNOWN_COMMANDS:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _load_settings() -> Settings:
    try:
        return load_settings()
    except ConfigurationError as exc:
        raise SystemExit(str(exc)) from exc


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    return database


def _serve(settings: Settings, *, host: str, port: int) -> None:
    from accounts.api import create_app
    import uvicorn

    logger.info("Starting account service on http://%s:%s", host, port)
    app = create_app(settings)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass("Password (min 8 characters): ")
        if len(password) < 8:
            print("Password is too short. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _create_user(database: Database, *, name: str, email: str, admin: bool) -> int:
    password = _prompt_for_password()
    if password is None:
        print("Aborted creating user.")
        return 1

    role = Role.ADMIN if admin else Role.USER
    try:
        user = database.create({"name": name, "email": email, "password": password, "role": role.value})
    except (StoreValidationError, DuplicateKeyError) as exc:
        _, message = translate_error(exc)
        print(f"Failed to create user: {message}", file=sys.stderr)
        return 1

    print(f"Created user #{user.id}: {user.name} <{user.email}> ({user.role.value})")
    return 0


def _list_users(database: Database) -> None:
    users = database.find()
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'Name':<24}  {'Email':<32}  {'Role':<6}  Created")
    print("-" * 88)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        print(f"{user.id:>4}  {user.name:<24}  {user.email:<32}  {user.role.value:<6}  {created}")


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = _load_settings()

    if args.command == "serve":
        _serve(settings, host=args.host, port=args.port)
        return 0

    database = _initialise_database(settings)
    if args.command == "init-db":
        print("Database initialisation complete.")
    elif args.command == "create-user":
        return _create_user(database, name=args.name, email=args.email, admin=args.admin)
    elif args.command == "list-users":
        _list_users(database)
    return 0


if __name__ == "__main__":
    sys.exit(main())
