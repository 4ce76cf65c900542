#!/usr/bin/env python3
"""
Seed the database with the demo company.

Creates the schema (optionally dropping it first) and provisions the
company, users and approval policies of a seed YAML file, then commits.

Usage:
    python3 scripts/seed_data.py
    python3 scripts/seed_data.py --reset --seed path/to/company.yaml
    python3 scripts/seed_data.py --database-url postgresql://...
"""

import argparse
import logging
import sys
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from expense_config import get_settings, load_seed_definition
from expense_config.seed import seed_company
from expense_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    session_scope,
)
from expense_kernel.exceptions import ExpenseKernelError


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Create tables and seed a demo company.",
    )
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy URL (default: settings / EXPENSE_DATABASE_URL)",
    )
    parser.add_argument(
        "--seed",
        type=Path,
        help="Seed YAML file (default: bundled demo company)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Settings YAML overriding defaults.yaml",
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Drop all tables before seeding",
    )
    args = parser.parse_args()

    settings = get_settings(args.config)
    url = args.database_url or settings.database_url
    logging.getLogger("expense_kernel").setLevel(settings.log_level)

    try:
        definition = load_seed_definition(args.seed, settings.default_currency)
    except (OSError, ValueError, KeyError) as exc:
        print(f"  ERROR: cannot load seed file: {exc}", file=sys.stderr)
        return 1

    print()
    print(f"  [1/3] Connecting to {url} ...")
    init_engine_from_url(url, echo=settings.echo_sql)

    print("  [2/3] Creating schema...")
    if args.reset:
        drop_tables()
    create_tables()

    print(f"  [3/3] Seeding {definition.company.name}...")
    try:
        with session_scope() as session:
            result = seed_company(session, definition)
    except (ExpenseKernelError, SQLAlchemyError) as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    print()
    print("  === Demo Data Created Successfully ===")
    for email, user_id in result.user_ids.items():
        print(f"  {email:<24} {user_id}")
    active = result.active_policy
    if active is not None:
        print(f"  Active policy: {active.name} (v{active.version})")
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
