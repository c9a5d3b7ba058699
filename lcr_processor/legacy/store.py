"""
Legacy store gateway.

Parameterized reads and writes against the legacy relational store through a
SQLAlchemy async engine (connection pool shared by all handlers of the
process). Every multi-statement write goes through `transaction()`: committed
when the block exits cleanly, rolled back on any error, and the connection is
returned to the pool either way.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from ..errors import LegacyStoreError

log = structlog.get_logger()

Row = dict[str, Any]


class Transaction:
    """Statement execution bound to one connection and one transaction."""

    def __init__(self, conn: AsyncConnection, timeout: float):
        self._conn = conn
        self._timeout = timeout

    async def _run(self, sql: str, params: dict[str, Any] | None):
        try:
            return await asyncio.wait_for(
                self._conn.execute(text(sql), params or {}), timeout=self._timeout
            )
        except asyncio.TimeoutError as exc:
            log.error("legacy_store.timeout", sql=sql.split()[0], timeout=self._timeout)
            raise LegacyStoreError(f"Statement timed out after {self._timeout}s") from exc

    async def ping(self) -> bool:
        if not self._engine:
            return False
        try:
            async with self.transaction() as tx:
                await tx.scalar("SELECT 1")
            return True
        except Exception:
            return False
