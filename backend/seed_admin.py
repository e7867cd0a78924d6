from __future__ import annotations

import argparse
import logging
import sys

from bootstrap import create_schema, ensure_admin_account

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create the database schema and seed the platform admin account.")
    parser.add_argument("--email", help="Admin email (defaults to ADMIN_EMAIL).")
    parser.add_argument("--password", help="Admin password (defaults to ADMIN_PASSWORD).")
    parser.add_argument("--name", help="Admin display name (defaults to ADMIN_NAME or `Admin`).")
    parser.add_argument(
        "--reset-password",
        action="store_true",
        help="Overwrite the password when the admin account already exists.",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    create_schema()
    try:
        user = ensure_admin_account(args.email, args.password, args.name, reset_password=args.reset_password)
    except RuntimeError as exc:
        logger.error("%s", exc)
        return 1
    if user is None:
        logger.error("No admin credentials supplied; pass --email/--password or set ADMIN_EMAIL/ADMIN_PASSWORD.")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
