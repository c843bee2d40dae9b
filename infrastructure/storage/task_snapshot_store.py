# infrastructure/storage/task_snapshot_store.py
import json
from typing import Any, Dict, Iterable, List, Tuple

import asyncpg

from application.services.task_revival import revive_tasks
from domain.models.task import Task
from domain.models.task_definition import TaskDefinition
from domain.models.task_like import TaskLike, to_task_like
from shared.logging import logger

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS task_snapshots (
        owner_id VARCHAR(255) NOT NULL,
        task_name VARCHAR(255) NOT NULL,
        snapshot JSONB NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (owner_id, task_name)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_task_snapshots_updated ON task_snapshots(updated_at)",
)

class PersistentTaskStore:
    """Persists task snapshots per owner (e.g. the message or invocation being retried)"""

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    @classmethod
    async def create(cls, database_url: str) -> "PersistentTaskStore":
        """Create a store with its own connection pool and ensure its table exists"""
        db_pool = await asyncpg.create_pool(
            database_url,
            min_size=1,
            max_size=10,
            command_timeout=60
        )
        store = cls(db_pool)
        await store.initialize()
        return store

    async def initialize(self):
        """Create the snapshot table and its index"""
        async with self.db_pool.acquire() as conn:
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)

    async def load_tasks_by_name(self, owner_id: str) -> Dict[str, TaskLike]:
        """Load the owner's task snapshots, skipping rows that are not task-like"""
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT task_name, snapshot FROM task_snapshots
                WHERE owner_id = $1
                ORDER BY task_name
            """, owner_id)

        tasks_by_name: Dict[str, TaskLike] = {}
        for row in rows:
            snapshot = row["snapshot"]
            if isinstance(snapshot, str):
                snapshot = json.loads(snapshot)
            task_like = to_task_like(snapshot)
            if task_like is None or task_like.name != row["task_name"]:
                logger.warning("Skipped malformed task snapshot", owner_id=owner_id, task_name=row["task_name"])
                continue
            tasks_by_name[task_like.name] = task_like

        logger.info("Task snapshots loaded", owner_id=owner_id, task_names=list(tasks_by_name))
        return tasks_by_name

    async def save_tasks(self, owner_id: str, tasks: Iterable[Any]) -> int:
        """Upsert a snapshot of each task (or task-like) under its name"""
        records = []
        for task in tasks:
            task_like = to_task_like(task)
            if task_like is None:
                raise ValueError(f"Cannot save a non-task-like value ({task!r})")
            records.append((owner_id, task_like.name, json.dumps(task_like.to_dict())))

        if not records:
            return 0

        async with self.db_pool.acquire() as conn:
            async with conn.transaction():
                await conn.executemany("""
                    INSERT INTO task_snapshots (owner_id, task_name, snapshot, updated_at)
                    VALUES ($1, $2, $3, CURRENT_TIMESTAMP)
                    ON CONFLICT (owner_id, task_name) DO UPDATE SET
                        snapshot = EXCLUDED.snapshot,
                        updated_at = CURRENT_TIMESTAMP
                """, records)

        logger.info("Task snapshots saved", owner_id=owner_id, task_names=[r[1] for r in records])
        return len(records)

    async def revive_tasks(self, owner_id: str, definitions: Iterable[TaskDefinition], factory,
                           only_recreate_existing: bool = False) -> Tuple[List[Task], List[Task]]:
        """Load the owner's snapshots, revive them and save both the active and abandoned tasks"""
        prior_tasks = await self.load_tasks_by_name(owner_id)
        active_tasks, abandoned_tasks = revive_tasks(factory, definitions, prior_tasks, only_recreate_existing)
        await self.save_tasks(owner_id, active_tasks + abandoned_tasks)
        return active_tasks, abandoned_tasks

    async def delete_tasks(self, owner_id: str) -> int:
        async with self.db_pool.acquire() as conn:
            result = await conn.execute("DELETE FROM task_snapshots WHERE owner_id = $1", owner_id)

        # asyncpg returns the command status, e.g. "DELETE 3"
        deleted = int(result.split()[-1]) if result else 0
        logger.info("Task snapshots deleted", owner_id=owner_id, deleted=deleted)
        return deleted

    async def close(self):
        """Close database connections"""
        if self.db_pool:
            await self.db_pool.close()
