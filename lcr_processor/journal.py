"""
SQLite journal of completed workflow steps.

A multi-step workflow (registration) records each step once it has
committed, keyed by (workflow, challenge, user). Re-running the workflow
after a partial failure skips the recorded steps. The entries are cleared
once the workflow completes or is undone.
"""

from __future__ import annotations

import os
from datetime import datetime, timezone

import aiosqlite

_SCHEMA = """
CREATE TABLE IF NOT EXISTS workflow_steps (
    workflow     TEXT NOT NULL,
    challenge_id INTEGER NOT NULL,
    user_id      INTEGER NOT NULL,
    step         TEXT NOT NULL,
    completed_at TEXT NOT NULL,
    PRIMARY KEY (workflow, challenge_id, user_id, step)
);
"""


class WorkflowJournal:
    """Async SQLite step log for resumable workflows."""

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def open(self) -> None:
        if self._db_path != ":memory:":
            os.makedirs(os.path.dirname(self._db_path) or ".", exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(_SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    async def mark_done(self, workflow: str, challenge_id: int, user_id: int, step: str) -> None:
        assert self._db
        now = datetime.now(timezone.utc).isoformat()
        await self._db.execute(
            """INSERT OR IGNORE INTO workflow_steps
               (workflow, challenge_id, user_id, step, completed_at)
               VALUES (?, ?, ?, ?, ?)""",
            (workflow, challenge_id, user_id, step, now),
        )
        await self._db.commit()

    async def completed_steps(self, workflow: str, challenge_id: int, user_id: int) -> list[str]:
        assert self._db
        cursor = await self._db.execute(
            """SELECT step FROM workflow_steps
               WHERE workflow = ? AND challenge_id = ? AND user_id = ?
               ORDER BY completed_at, step""",
            (workflow, challenge_id, user_id),
        )
        rows = await cursor.fetchall()
        return [r["step"] for r in rows]

    async def clear(self, workflow: str, challenge_id: int, user_id: int) -> None:
        assert self._db
        await self._db.execute(
            "DELETE FROM workflow_steps WHERE workflow = ? AND challenge_id = ? AND user_id = ?",
            (workflow, challenge_id, user_id),
        )
        await self._db.commit()
