#!/usr/bin/env python3
"""
Issue an admin console token.

Creates the admin record on first use (bootstrap emails get the admin role,
everyone else starts as viewer) and prints a signed bearer token.

Usage:
    python3 scripts/create_admin_token.py ops@example.com --name "Ops"
"""

import argparse
import asyncio
import sys

from storefront.config import settings
from storefront.db.session import close_engines, create_document_store
from storefront.exceptions import AuthenticationError
from storefront.services.admin_auth import AdminAuthService


async def issue_token(email: str, name: str | None) -> str:
    service = AdminAuthService(
        store=create_document_store(),
        jwt_secret=settings.ADMIN_JWT_SECRET,
        jwt_expire_hours=settings.admin_jwt_expire_hours,
        bootstrap_emails=settings.admin_bootstrap_emails,
    )
    try:
        admin = await service.get_or_create_admin(email, name)
        print(f"{admin.email} ({admin.role.value})", file=sys.stderr)
        return service.create_token(admin)
    finally:
        await close_engines()


def main() -> None:
    parser = argparse.ArgumentParser(description="Issue an admin console token")
    parser.add_argument("email")
    parser.add_argument("--name", default=None)
    args = parser.parse_args()

    if not settings.ADMIN_JWT_SECRET:
        print("ADMIN_JWT_SECRET is not set", file=sys.stderr)
        sys.exit(1)

    try:
        print(asyncio.run(issue_token(args.email, args.name)))
    except (AuthenticationError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
