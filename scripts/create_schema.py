"""
Standalone script that creates the database schema and, optionally, a first admin.

Usage:
    python scripts/create_schema.py
    python scripts/create_schema.py --admin-email admin@example.com --admin-password 'secret'

Tables that already exist are left untouched.
"""

import argparse
import asyncio
import os
import sys

# --- Path Setup ---
# This allows the script to import modules from the 'src' directory
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from sqlalchemy import select

from src.tutorapp_backend.common.config import settings
from src.tutorapp_backend.common.logger import log
from src.tutorapp_backend.common.security_utils import HashedPassword
from src.tutorapp_backend.database import engine as db_engine
from src.tutorapp_backend.database import models as db_models
from src.tutorapp_backend.database.db_enums import UserRole


async def create_admin(email: str, password: str, first_name: str, last_name: str):
    async with db_engine.get_session_factory()() as session:
        result = await session.execute(select(db_models.Users).filter(db_models.Users.email == email))
        if result.scalars().first() is not None:
            log.info(f"User {email} already exists; skipping admin creation.")
            return
        session.add(db_models.Admins(
            email=email,
            password=HashedPassword.get_hash(password),
            role=UserRole.ADMIN.value,
            first_name=first_name,
            last_name=last_name
        ))
        await session.commit()
        log.info(f"Created admin {email}.")


async def main(args):
    log.info(f"Creating schema (TEST_MODE={settings.TEST_MODE})...")
    db_engine.create_db_engine_and_session_factory()
    try:
        await db_engine.create_all_tables()
        if args.admin_email:
            if not args.admin_password:
                raise SystemExit("--admin-password is required with --admin-email")
            await create_admin(args.admin_email, args.admin_password, args.first_name, args.last_name)
    finally:
        await db_engine.dispose_db_engine()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the TutorApp database schema.")
    parser.add_argument("--admin-email")
    parser.add_argument("--admin-password")
    parser.add_argument("--first-name", default="Admin")
    parser.add_argument("--last-name", default="User")
    asyncio.run(main(parser.parse_args()))
