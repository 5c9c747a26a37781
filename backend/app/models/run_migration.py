#!/usr/bin/env python3
"""
Create the MoodPulse tables (idempotent, every statement is IF NOT EXISTS).

Usage: python -m app.models.run_migration
"""
import sys
import logging
from pathlib import Path

import psycopg2

from app.config import settings

logger = logging.getLogger(__name__)

SCHEMA_FILE = Path(__file__).parent / "schema.sql"


def run_migration(database_url: str = None) -> bool:
    """Execute schema.sql against the configured database."""
    if not SCHEMA_FILE.exists():
        logger.error(f"❌ Migration file not found: {SCHEMA_FILE}")
        return False

    migration_sql = SCHEMA_FILE.read_text()
    logger.info("🚀 Running migration...")

    conn = None
    try:
        conn = psycopg2.connect(database_url or settings.DATABASE_URL)
        with conn.cursor() as cursor:
            cursor.execute(migration_sql)
        conn.commit()
        logger.info("✅ Migration completed successfully")
        return True
    except psycopg2.Error as e:
        logger.error(f"❌ Migration failed: {e}")
        if conn:
            conn.rollback()
        return False
    finally:
        if conn:
            conn.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    sys.exit(0 if run_migration() else 1)
