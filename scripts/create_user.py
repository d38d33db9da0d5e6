#!/usr/bin/env python3
"""CLI script to create (or reset the password of) a CRM staff account.

Usage:
    python scripts/create_user.py --email owner@purrify.ca --password changeme
    python scripts/create_user.py --email ops@purrify.ca --password s3cret --name "Ops" --role admin

Connects directly to the database using DATABASE_URL from environment or .env file.
Tables are created first if they don't exist.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Ensure project root is on sys.path so we can import src.crm
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


async def create_user(email: str, password: str, name: str | None, role: str) -> None:
    from sqlalchemy import select

    from src.crm.core.database import close_db, get_session, init_db
    from src.crm.core.security import hash_password
    from src.crm.models.user import User

    await init_db()

    async for session in get_session():
        result = await session.execute(select(User).where(User.email == email.lower()))
        user = result.scalar_one_or_none()
        if user is None:
            user = User(email=email.lower(), name=name, role=role, is_active=True)
            session.add(user)
            action = "created"
        else:
            action = "updated"
            if name:
                user.name = name
            user.role = role
            user.is_active = True
        user.hashed_password = hash_password(password)
        await session.commit()
        print(f"User {action}: {user.email} (role={user.role}, id={user.id})")

    await close_db()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create or update a CRM staff account")
    parser.add_argument("--email", required=True, help="Login email")
    parser.add_argument("--password", required=True, help="Login password")
    parser.add_argument("--name", default=None, help="Display name")
    parser.add_argument("--role", default="admin", choices=["admin", "member"], help="Account role")
    args = parser.parse_args()

    if len(args.password) < 8:
        parser.error("--password must be at least 8 characters")

    asyncio.run(create_user(args.email, args.password, args.name, args.role))


if __name__ == "__main__":
    main()
