"""CLI script to create the first admin user.

Usage:
    python -m isahub.scripts.create_admin --username admin --email admin@example.com --password 'YourP@ss1'

Only creates an admin if no admin user exists yet.
"""

from __future__ import annotations

import argparse
import sys

from isahub.auth.bootstrap import create_admin_user
from isahub.auth.password import validate_password_complexity
from isahub.db.database import get_session_local


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the first ISA Hub admin user")
    parser.add_argument("--username", required=True, help="Admin username")
    parser.add_argument("--email", required=True, help="Admin email")
    parser.add_argument("--password", required=True, help="Admin password")
    args = parser.parse_args()

    pw_err = validate_password_complexity(args.password)
    if pw_err:
        print(f"Error: {pw_err}", file=sys.stderr)
        sys.exit(1)

    db = get_session_local()()
    try:
        admin = create_admin_user(db, username=args.username, email=args.email, password=args.password)
    finally:
        db.close()

    if admin is None:
        print(
            "An admin already exists, or the username/email is taken. Aborting.",
            file=sys.stderr,
        )
        sys.exit(1)
    print(f"Admin user '{args.username}' created successfully.")


if __name__ == "__main__":
    main()
