"""Member lookups in the legacy store."""

from __future__ import annotations

from .store import Transaction

_GET_HANDLE = "SELECT handle FROM user WHERE user_id = :user_id"


async def get_handle(tx: Transaction, user_id: int) -> str | None:
    row = await tx.query_one(_GET_HANDLE, {"user_id": user_id})
    return row["handle"] if row else None
