"""Provision a CombiSales user (admins create accounts; Zoho logins need a pre-provisioned email)."""

from __future__ import annotations

import argparse
import getpass
import sys
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]
sys.path.append(str(BASE_DIR))

from app.core.exceptions import ConflictError  # noqa: E402
from app.core.logging import setup_logging  # noqa: E402
from app.db.session import session_scope  # noqa: E402
from app.models.enums import UserRole  # noqa: E402
from app.schemas.user import UserCreate  # noqa: E402
from app.services.users import create_user  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("email")
    parser.add_argument("name")
    parser.add_argument("--role", choices=[role.value for role in UserRole], default=UserRole.seller.value)
    parser.add_argument("--country", default=None)
    parser.add_argument(
        "--with-password",
        action="store_true",
        help="prompt for a password so the user can also sign in with credentials",
    )
    return parser.parse_args()


def main() -> int:
    setup_logging()
    args = parse_args()
    password = getpass.getpass("Password: ") if args.with_password else None
    payload = UserCreate(
        email=args.email,
        name=args.name,
        role=UserRole(args.role),
        country=args.country,
        password=password,
    )
    with session_scope() as db:
        try:
            user = create_user(db, payload)
        except ConflictError:
            print(f"User already exists: {payload.email}")
            return 1
    print(f"Created {user.role.value} {user.email} ({user.id})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
