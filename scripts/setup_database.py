# scripts/setup_database.py
"""
Database setup script for the task snapshot store.
Creates the task_snapshots table and its index, then verifies an upsert round trip.
"""

import asyncio
import json
import os
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import asyncpg
from infrastructure.storage.task_snapshot_store import SCHEMA_STATEMENTS
from shared.config import load_settings
from shared.logging import logger, setup_logging

async def create_database_if_not_exists(admin_url: str, database_name: str):
    """Create database if it doesn't exist"""
    admin_conn = await asyncpg.connect(admin_url)
    try:
        db_exists = await admin_conn.fetchval(
            "SELECT 1 FROM pg_database WHERE datname = $1", database_name
        )

        if not db_exists:
            await admin_conn.execute(f'CREATE DATABASE "{database_name}"')
            logger.info("Created database", database=database_name)
        else:
            logger.info("Database already exists", database=database_name)
    finally:
        await admin_conn.close()

async def setup_tables(database_url: str):
    """Create the snapshot table and indexes"""
    conn = await asyncpg.connect(database_url)
    try:
        logger.info("Creating database tables...")
        for statement in SCHEMA_STATEMENTS:
            await conn.execute(statement)
        logger.info("Created task_snapshots table")
    except Exception as e:
        logger.error("Failed to setup tables", error=str(e))
        raise
    finally:
        await conn.close()

async def verify_setup(database_url: str):
    """Verify the snapshot table accepts an upsert and a read back"""
    conn = await asyncpg.connect(database_url)
    owner_id = "setup-verification"
    snapshot = {"name": "verify", "state": {"name": "Unstarted", "kind": "UNSTARTED"}, "attempts": 0}

    try:
        logger.info("Verifying database setup...")
        for _ in range(2):
            await conn.execute("""
                INSERT INTO task_snapshots (owner_id, task_name, snapshot)
                VALUES ($1, $2, $3)
                ON CONFLICT (owner_id, task_name) DO UPDATE SET snapshot = EXCLUDED.snapshot
            """, owner_id, snapshot["name"], json.dumps(snapshot))

        count = await conn.fetchval(
            "SELECT COUNT(*) FROM task_snapshots WHERE owner_id = $1", owner_id)
        if count != 1:
            raise RuntimeError(f"Expected exactly one verification snapshot, found {count}")

        await conn.execute("DELETE FROM task_snapshots WHERE owner_id = $1", owner_id)
        logger.info("Database verification completed successfully")
    except Exception as e:
        logger.error("Database verification failed", error=str(e))
        raise
    finally:
        await conn.close()

async def main():
    """Main setup function"""
    settings = load_settings()
    setup_logging(level=settings.log_level, json_logs=False)

    logger.info("Starting task snapshot store database setup")

    database_url = settings.database_url

    if not database_url:
        # Default local development setup
        host = os.getenv("DB_HOST", "localhost")
        port = os.getenv("DB_PORT", "5432")
        user = os.getenv("DB_USER", "postgres")
        password = os.getenv("DB_PASSWORD", "postgres")
        database = os.getenv("DB_NAME", "task_snapshots")

        database_url = f"postgresql://{user}:{password}@{host}:{port}/{database}"
        admin_url = f"postgresql://{user}:{password}@{host}:{port}/postgres"

        logger.info("Using database", host=host, port=port, database=database)

        try:
            await create_database_if_not_exists(admin_url, database)
        except Exception as e:
            logger.warning("Could not create database (may already exist)", error=str(e))

    try:
        await setup_tables(database_url)
        await verify_setup(database_url)
        logger.info("Database setup completed successfully")
    except Exception as e:
        logger.error("Database setup failed", error=str(e))
        sys.exit(1)

if __name__ == "__main__":
    asyncio.run(main())
