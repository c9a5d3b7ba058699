"""
Id allocation in the legacy store.

`resource` and `component_inquiry` ids come from the `id_sequences` table,
bumped inside the caller's transaction. Audit and payment ids are not
sequence backed: they are `MAX(id) + 1` at insert time, so concurrent writers
can leave gaps and readers must not assume contiguous ids.
"""

from __future__ import annotations

from .store import Transaction

_BUMP_SEQUENCE = """
UPDATE id_sequences SET next_block_start = next_block_start + 1 WHERE name = :name
"""

_READ_SEQUENCE = "SELECT next_block_start - 1 AS next_id FROM id_sequences WHERE name = :name"

# Table and column names are fixed identifiers, never user input.
_MAX_ID = "SELECT COALESCE(MAX({column}), 0) + 1 AS next_id FROM {table}"


async def next_sequence_id(tx: Transaction, name: str) -> int:
    updated = await tx.execute(_BUMP_SEQUENCE, {"name": name})
    if not updated:
        raise LookupError(f"Sequence {name} is not defined in id_sequences")
    return int(await tx.scalar(_READ_SEQUENCE, {"name": name}))


async def next_max_id(tx: Transaction, table: str, column: str) -> int:
    return int(await tx.scalar(_MAX_ID.format(table=table, column=column)))
