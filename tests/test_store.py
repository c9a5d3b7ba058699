"""Tests for the legacy store gateway and id allocation."""

import pytest

from lcr_processor.legacy import resources as resource_dao
from lcr_processor.legacy.sequences import next_max_id, next_sequence_id
from lcr_processor.legacy.store import LegacyStore


@pytest.fixture
async def store(legacy_db_path):
    s = LegacyStore(f"sqlite+aiosqlite:///{legacy_db_path}", statement_timeout=5)
    await s.open()
    yield s
    await s.close()


async def test_ping(store: LegacyStore):
    assert await store.ping()


async def test_ping_before_open(legacy_db_path):
    s = LegacyStore(f"sqlite+aiosqlite:///{legacy_db_path}")
    assert not await s.ping()


async def test_query_returns_lowercased_dicts(store: LegacyStore):
    async with store.transaction() as tx:
        rows = await tx.query(
            "SELECT resource_role_id AS Role_Id, name FROM resource_role_lu WHERE resource_role_id = :id",
            {"id": 4},
        )
    assert rows == [{"role_id": 4, "name": "Reviewer"}]


async def test_sequence_ids_increase(store: LegacyStore):
    async with store.transaction() as tx:
        first = await next_sequence_id(tx, "resource_id_seq")
        second = await next_sequence_id(tx, "resource_id_seq")
    assert (first, second) == (1000, 1001)

    async with store.transaction() as tx:
        assert await next_sequence_id(tx, "component_inquiry_seq") == 5000


async def test_unknown_sequence(store: LegacyStore):
    with pytest.raises(LookupError):
        async with store.transaction() as tx:
            await next_sequence_id(tx, "missing_seq")


async def test_max_id_allocation(store: LegacyStore, legacy):
    async with store.transaction() as tx:
        assert await next_max_id(tx, "project_user_audit", "project_user_audit_id") == 1

    await legacy.execute(
        """INSERT INTO project_user_audit VALUES (41, 1, 2, 4, 1, CURRENT_TIMESTAMP, '2')"""
    )
    async with store.transaction() as tx:
        assert await next_max_id(tx, "project_user_audit", "project_user_audit_id") == 42


async def test_transaction_rolls_back_on_error(store: LegacyStore, legacy):
    await legacy.add_challenge(30000001)

    with pytest.raises(RuntimeError):
        async with store.transaction() as tx:
            await resource_dao.insert_resource(tx, 30000001, 4, 123, 123)
            raise RuntimeError("boom")

    assert await legacy.count("resource") == 0
    # The sequence bump is rolled back with the insert
    rows = await legacy.rows("SELECT next_block_start FROM id_sequences WHERE name = 'resource_id_seq'")
    assert rows[0]["next_block_start"] == 1000


async def test_cascade_delete(store: LegacyStore, legacy):
    await legacy.add_challenge(30000002)
    await legacy.add_resource(77, 30000002, 1, 123)
    await legacy.execute("INSERT INTO upload VALUES (5, 30000002, 77)")
    await legacy.execute("INSERT INTO submission VALUES (9, 5)")
    await legacy.execute("INSERT INTO resource_submission VALUES (77, 9)")

    async with store.transaction() as tx:
        await resource_dao.insert_resource_info(tx, 77, 2, "handle", 123)
        await resource_dao.delete_resource_cascade(tx, 77)

    for table in ("resource", "resource_info", "resource_submission", "upload", "submission"):
        assert await legacy.count(table) == 0, table


def test_registration_timestamp_format():
    value = resource_dao.registration_timestamp()
    # MM.dd.yyyy hh:mm AM
    date, time_, meridiem = value.split(" ")
    assert len(date.split(".")) == 3
    assert len(time_.split(":")) == 2
    assert meridiem in ("AM", "PM")
