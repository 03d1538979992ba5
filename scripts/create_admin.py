"""
Create (or promote) an admin account.

Reads the database from DATABASE_URL like the API does. The password can be
passed with --password or the LIFECRAFT_ADMIN_PASSWORD environment variable.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy import select

from lifecraft.auth import AccountService
from lifecraft.config import get_settings
from lifecraft.db import ProfileRow
from lifecraft.dependencies import get_database
from lifecraft.errors import LifeCraftError
from lifecraft.logging_config import configure_logging

logger = logging.getLogger(__name__)


def create_admin(email: str, password: str, full_name: str | None = None) -> str:
    """Return the admin's user id, promoting an existing account if needed."""
    db = get_database()
    with db.Session() as session:
        profile = session.execute(
            select(ProfileRow).where(ProfileRow.email == email.strip().lower())
        ).scalar_one_or_none()
        if profile is not None:
            if profile.role != "admin":
                profile.role = "admin"
                session.commit()
                logger.info("Promoted %s to admin", profile.email)
            else:
                logger.info("Admin %s already exists", profile.email)
            return profile.id

    profile = AccountService(db).register(email, password, full_name=full_name, role="admin")
    logger.info("Created admin %s", profile.email)
    return profile.id


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("email")
    parser.add_argument("--password", default=os.environ.get("LIFECRAFT_ADMIN_PASSWORD"))
    parser.add_argument("--full-name", default=None)
    args = parser.parse_args()

    configure_logging(get_settings().log_level)
    if not args.password:
        parser.error("a password is required (--password or LIFECRAFT_ADMIN_PASSWORD)")
    try:
        create_admin(args.email, args.password, args.full_name)
    except LifeCraftError as exc:
        logger.error("Could not create admin: %s", exc.message)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
