#!/usr/bin/env python3
"""
Priorly -- accounts, one-time-code verification, and a personal to-do list.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8000 --reload
  python main.py purge
  python main.py create-user --email ada@example.com --name "Ada Lovelace"

Environment variables (see core/config.py for the full list):
  SECRET_KEY    Required unless DEBUG=true. At least 32 characters.
  DATABASE_URL  SQLAlchemy URL. Defaults to priorly.db next to this file.
  SMTP_HOST     Outgoing mail server. Unset means mail is logged, not sent.
"""

import argparse
import getpass
import logging
import sys

from pydantic import ValidationError

from auth.errors import AuthError
from auth.schemas import SignupRequest, field_errors
from core.config import get_settings
from core.database import create_db_engine
from core.mailer import LogMailer


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _build_service():
    # Imported here so `serve` does not construct the app twice under --reload.
    from api.main import build_auth_service

    settings = get_settings()
    engine = create_db_engine(settings.database_url)
    return build_auth_service(engine, settings, LogMailer()), engine


def _purge(args: argparse.Namespace) -> int:
    service, engine = _build_service()
    try:
        counts = service.purge_expired()
    finally:
        engine.dispose()
    print(f"  Purged {counts['otp_records']} expired code(s) and {counts['sessions']} expired session(s).")
    return 0


def _create_user(args: argparse.Namespace) -> int:
    """Create a verified account directly, skipping the emailed code."""
    password = args.password or getpass.getpass("  Password: ")
    confirm = args.password or getpass.getpass("  Confirm password: ")
    try:
        req = SignupRequest(name=args.name, email=args.email, password=password, confirm_password=confirm)
    except ValidationError as exc:
        for field, message in field_errors(exc.errors()).items():
            print(f"  [!] {field}: {message}")
        return 2

    service, engine = _build_service()
    try:
        user = service.create_verified_user(req)
    except AuthError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        engine.dispose()
    print(f"  Created user {user.id} <{user.email}>.")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="priorly",
        description="Priorly API server and maintenance commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --reload
  DEBUG=true python main.py serve
  python main.py purge
  python main.py create-user --email ada@example.com --name "Ada Lovelace"
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = sub.add_parser("serve", help="Run the API server with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    serve.set_defaults(func=_serve)

    purge = sub.add_parser("purge", help="Delete expired one-time codes and sessions")
    purge.set_defaults(func=_purge)

    create = sub.add_parser("create-user", help="Create a verified account without the emailed code")
    create.add_argument("--email", required=True)
    create.add_argument("--name", required=True)
    create.add_argument(
        "--password",
        help="Account password. Prompted for when omitted (preferred: keeps it out of shell history).",
    )
    create.set_defaults(func=_create_user)

    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0

    logging.basicConfig(level=logging.INFO, format="%(levelname)-5s %(name)s %(message)s")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
