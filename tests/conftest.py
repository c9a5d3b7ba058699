"""
Shared fixtures: a SQLite legacy store built from legacy_schema.sql, the mock
upstream APIs over ASGI transport, and a processor wired to an in-memory bus.
"""

from pathlib import Path

import aiosqlite
import httpx
import pytest

from lcr_processor.config import ProcessorConfig
from lcr_processor.processor import LegacyProcessor

from .helpers import (
    COPILOT_ROLE,
    MANAGER_ROLE,
    OBSERVER_ROLE,
    REVIEWER_ROLE,
    SPEC_SUBMITTER_ROLE,
    SUBMITTER_ROLE,
    InMemoryBus,
    LegacyDB,
    RecordingForum,
)
from .mock_servers import UpstreamState, create_upstream_app

SCHEMA = Path(__file__).with_name("legacy_schema.sql")


@pytest.fixture
async def legacy_db_path(tmp_path):
    path = tmp_path / "legacy.db"
    async with aiosqlite.connect(path) as db:
        await db.executescript(SCHEMA.read_text())
        await db.commit()
    return path


@pytest.fixture
async def legacy(legacy_db_path):
    db = await aiosqlite.connect(legacy_db_path)
    db.row_factory = aiosqlite.Row
    yield LegacyDB(db)
    await db.close()


@pytest.fixture
def upstream():
    state = UpstreamState()
    state.add_role(SUBMITTER_ROLE, "Submitter", 1)
    state.add_role(SPEC_SUBMITTER_ROLE, "Specification Submitter", 17)
    state.add_role(REVIEWER_ROLE, "Reviewer", 4)
    state.add_role(OBSERVER_ROLE, "Observer", 12)
    state.add_role(COPILOT_ROLE, "Copilot", 14)
    state.add_role(MANAGER_ROLE, "Manager", 13)
    return state


@pytest.fixture
def config_dict(tmp_path, legacy_db_path):
    return {
        "challenge_api": {
            "challenge_url": "http://upstream/v5/challenges",
            "resource_role_url": "http://upstream/v5/resource-roles",
            "projects_url": "http://upstream/v5/projects",
            "request_timeout_seconds": 5,
        },
        "auth": {"url": "http://upstream/oauth/token", "client_id": "test-client"},
        "legacy_store": {
            "url": f"sqlite+aiosqlite:///{legacy_db_path}",
            "url_env": "LCR_TEST_LEGACY_STORE_URL",
            "statement_timeout_seconds": 5,
        },
        "retry": {
            "delay_seconds": 0.05,
            "multiplier": 1,
            "max_delay_seconds": 0.05,
            "max_attempts": 5,
        },
        "state": {"db_path": str(tmp_path / "state" / "journal.db")},
        "logging": {"level": "debug", "format": "text"},
        "metrics": {"enabled": False},
    }


@pytest.fixture
def config(config_dict):
    return ProcessorConfig.model_validate(config_dict)


@pytest.fixture
def bus():
    return InMemoryBus()


@pytest.fixture
def forum():
    return RecordingForum()


@pytest.fixture
def transport(upstream):
    return httpx.ASGITransport(app=create_upstream_app(upstream))


@pytest.fixture
async def processor(config, bus, forum, transport):
    """Processor with every collaborator open but no consume loop running."""
    p = LegacyProcessor(config, bus=bus, forum=forum, transport=transport)
    await p.open()
    yield p
    await p.dispatcher.flush_pending()
    await p.close()
