#!/usr/bin/env python3
"""
Initialize the library lending database.

This script:
1. Creates all database tables
2. Optionally seeds demo books, readers and circulation history
3. Verifies the database is ready for the server

Usage:
    python scripts/init_database.py [--drop-existing] [--sample-data] [--database-url URL]
"""

import argparse
import logging
import sys

from sqlalchemy import inspect

from library_lending.config import get_config
from library_lending.database.seed import seed_database
from library_lending.database.session import DatabaseManager

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

EXPECTED_TABLES = {"books", "reader_accounts", "loan_records", "reservations", "sys_config"}


def main():
    """Main entry point for database initialization."""
    parser = argparse.ArgumentParser(description="Initialize the library lending database")
    parser.add_argument(
        "--drop-existing",
        action="store_true",
        help="Drop existing tables before creating new ones",
    )
    parser.add_argument(
        "--sample-data",
        action="store_true",
        help="Seed demo data after creating tables",
    )
    parser.add_argument(
        "--database-url",
        help="Override the configured database URL",
    )
    args = parser.parse_args()

    config = get_config()
    if not args.database_url and not config.database_url:
        config.database_path.parent.mkdir(parents=True, exist_ok=True)
    db_manager = DatabaseManager(args.database_url or config.get_database_url())

    if not db_manager.verify_connection():
        logger.error("Failed to connect to database")
        sys.exit(1)

    try:
        db_manager.init_database(drop_existing=args.drop_existing)

        tables = set(inspect(db_manager.engine).get_table_names())
        logger.info("Tables: %s", ", ".join(sorted(tables)))
        missing_tables = EXPECTED_TABLES - tables
        if missing_tables:
            logger.error("Missing expected tables: %s", sorted(missing_tables))
            sys.exit(1)

        if args.sample_data:
            logger.info("Seeding demo data...")
            counts = seed_database(db_manager)
            for name, value in counts.items():
                logger.info("  %-14s %d", name, value)

        logger.info("Database initialization complete")

    except Exception:
        logger.exception("Database initialization failed")
        sys.exit(1)
    finally:
        db_manager.close()


if __name__ == "__main__":
    main()
