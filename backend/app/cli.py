"""Administrative commands.

    python -m app.cli create-admin admin@example.org "Jane Admin"

Creates the user (prompting for a password) or promotes an existing one, and
makes sure the address is on the approved list.
"""

import argparse
import asyncio
import getpass
import logging
import sys

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import AsyncSessionLocal
from app.core.logging_config import configure_logging
from app.core.security import hash_password
from app.models.user import User
from app.services.approved_emails import add_approved_email, is_email_approved, is_valid_email, mark_email_used, normalize_email
from app.services.auth_service import get_user_by_email

logger = logging.getLogger(__name__)


async def create_admin(db: AsyncSession, email: str, name: str, password: str | None) -> User:
    if not await is_email_approved(db, email):
        await add_approved_email(db, email)

    user = await get_user_by_email(db, email)
    if user is None:
        if not password:
            raise ValueError("A password is required to create a new admin user")
        user = User(name=name, email=normalize_email(email), password_hash=hash_password(password), is_admin=True)
        db.add(user)
        logger.info("created admin user %s", user.email)
    else:
        user.is_admin = True
        logger.info("promoted %s to admin", user.email)

    await db.flush()
    await mark_email_used(db, email)
    await db.commit()
    return user


async def _run_create_admin(args: argparse.Namespace) -> None:
    async with AsyncSessionLocal() as db:
        password = args.password
        if password is None and await get_user_by_email(db, args.email) is None:
            password = getpass.getpass("Password: ")
            if password != getpass.getpass("Confirm password: "):
                raise ValueError("Passwords do not match")
        await create_admin(db, args.email, args.name, password)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="python -m app.cli")
    subcommands = parser.add_subparsers(dest="command", required=True)

    admin_parser = subcommands.add_parser("create-admin", help="create or promote an administrator")
    admin_parser.add_argument("email")
    admin_parser.add_argument("name")
    admin_parser.add_argument("--password", default=None, help="omit to be prompted")

    args = parser.parse_args(argv)
    configure_logging()

    if not is_valid_email(args.email):
        parser.error(f"invalid email address: {args.email}")

    try:
        asyncio.run(_run_create_admin(args))
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(f"{normalize_email(args.email)} is an administrator")
    return 0


if __name__ == "__main__":
    sys.exit(main())
