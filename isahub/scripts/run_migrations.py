#!/usr/bin/env python3
"""Run database migrations against the configured database.

Usage:
    python -m isahub.scripts.run_migrations [upgrade|downgrade|current|history] [--revision REV]
"""

import argparse
from pathlib import Path

from alembic import command
from alembic.config import Config

ALEMBIC_INI = Path(__file__).resolve().parent.parent / "alembic.ini"


def _config() -> Config:
    cfg = Config(str(ALEMBIC_INI))
    cfg.set_main_option("script_location", str(ALEMBIC_INI.parent / "migrations"))
    return cfg


def upgrade(revision: str = "head"):
    command.upgrade(_config(), revision)
    print("Migrations completed successfully")


def downgrade(revision: str = "-1"):
    command.downgrade(_config(), revision)
    print(f"Downgraded to {revision}")


def current():
    command.current(_config(), verbose=True)


def history():
    command.history(_config(), verbose=True)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run database migrations")
    parser.add_argument(
        "command",
        choices=["upgrade", "downgrade", "current", "history"],
        default="upgrade",
        nargs="?",
        help="Migration command to run",
    )
    parser.add_argument("--revision", default=None, help="Target revision")
    args = parser.parse_args()

    if args.command == "upgrade":
        upgrade(args.revision or "head")
    elif args.command == "downgrade":
        downgrade(args.revision or "-1")
    elif args.command == "current":
        current()
    elif args.command == "history":
        history()


if __name__ == "__main__":
    main()
