#!/usr/bin/env python3
"""
Create the super administrator account, or reset its password.

The email and password default to ``ADMIN_EMAIL`` and ``ADMIN_PASSWORD``
from the environment.  The database is migrated first so the script can
run against a fresh file.

Usage:
    python seed_admin.py
    python seed_admin.py --email root@sharplook.com --password "NewStrongPass234"
"""

import argparse
import getpass
import logging
import sys

from sharplook_api.app.core.config import settings
from sharplook_api.app.core.db import dump_json, get_cursor, init_db
from sharplook_api.app.core.helpers import generate_referral_code, now_iso
from sharplook_api.app.core.logging_config import setup_logging
from sharplook_api.app.core.security import hash_password
from sharplook_api.app.services.user_service import DEFAULT_PREFERENCES


logger = logging.getLogger("seed_admin")


def seed_admin(email: str, password: str, phone: str) -> bool:
    """Create or update the super admin; returns ``True`` when a row was created."""
    init_db()
    now = now_iso()
    with get_cursor() as cursor:
        row = cursor.execute("SELECT id FROM users WHERE email = ?", (email,)).fetchone()
        if row:
            cursor.execute(
                """
                UPDATE users SET password = ?, role = 'super_admin', status = 'active', is_email_verified = 1,
                    is_deleted = 0, login_attempts = 0, lock_until = NULL, updated_at = ?
                WHERE id = ?
                """,
                (hash_password(password), now, row["id"]),
            )
            return False
        cursor.execute(
            """
            INSERT INTO users (first_name, last_name, email, phone, password, role, status, is_email_verified,
                preferences, referral_code, created_at, updated_at)
            VALUES ('Super', 'Admin', ?, ?, ?, 'super_admin', 'active', 1, ?, ?, ?, ?)
            """,
            (email, phone, hash_password(password), dump_json(DEFAULT_PREFERENCES), generate_referral_code(), now, now),
        )
        return True


def main() -> None:
    ap = argparse.ArgumentParser(description="Create or reset the SharpLook super admin.")
    ap.add_argument("--email", default=settings.admin_email, help="Admin email address")
    ap.add_argument("--password", help="Admin password; defaults to ADMIN_PASSWORD, prompts when empty")
    ap.add_argument("--phone", default="+2340000000000", help="Phone number for a newly created admin")
    args = ap.parse_args()

    setup_logging(settings.log_level)
    password = args.password or settings.admin_password or getpass.getpass("Admin password: ")
    if not password:
        print("[!] Empty password is not allowed.", file=sys.stderr)
        sys.exit(1)

    created = seed_admin(args.email.lower(), password, args.phone)
    if created:
        logger.info("Super admin created: %s", args.email)
    else:
        logger.info("Super admin password reset: %s", args.email)


if __name__ == "__main__":
    main()
