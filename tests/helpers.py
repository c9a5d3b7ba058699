"""
Test doubles and helpers: in-memory bus, recording forum, legacy DB seeding.
"""

import asyncio
import json
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Optional

import aiosqlite

from lcr_processor.bus import BusMessage, MessageBus
from lcr_processor.forum import ForumGateway

SUBMITTER_ROLE = "732339e7-8e30-49d7-9198-cccf9451e221"
SPEC_SUBMITTER_ROLE = "5cac51cc-6386-4ff8-9cd2-caca6424e5fe"
REVIEWER_ROLE = "50906190-747b-4c82-9706-7a5b11999dfb"
OBSERVER_ROLE = "2a4dc376-a31c-4d00-b173-13934d89e286"
COPILOT_ROLE = "cfe12b3f-2a24-4639-9d8b-ec86726f76bd"
MANAGER_ROLE = "0e9c6879-39e4-4eb6-b8df-92407890faf1"

CREATE_TOPIC = "challenge.action.resource.create"
DELETE_TOPIC = "challenge.action.resource.delete"
PAYMENT_TOPIC = "challenge.notification.update"
UNREGISTRATION_TOPIC = "challenge.notification.events"
DEAD_LETTER_TOPIC = "common.error.reporting"


def envelope(topic: str, payload: dict[str, Any], **extra: Any) -> dict[str, Any]:
    body = {
        "topic": topic,
        "originator": "challenge-api",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "mime-type": "application/json",
        "payload": payload,
    }
    body.update(extra)
    return body


def resource_payload(challenge_id: str, role_id: str, member_id: int, handle: Optional[str] = None):
    payload: dict[str, Any] = {"challengeId": challenge_id, "roleId": role_id, "memberId": member_id}
    if handle:
        payload["memberHandle"] = handle
    return payload


async def wait_until(predicate, timeout: float = 3.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        result = predicate()
        if asyncio.iscoroutine(result):
            result = await result
        if result:
            return True
        await asyncio.sleep(interval)
    return False


class InMemoryBus(MessageBus):
    """Bus double. Publishes to a subscribed topic loop back as new deliveries."""

    def __init__(self, loopback: bool = True):
        self.loopback = loopback
        self.topics: list[str] = []
        self.published: list[tuple[str, str]] = []
        self.committed: list[BusMessage] = []
        self._queue: deque[BusMessage] = deque()
        self._offset = 0

    async def open(self, topics: list[str]) -> None:
        self.topics = list(topics)

    async def close(self) -> None:
        pass

    def deliver(self, topic: str, value: Any) -> BusMessage:
        self._offset += 1
        if not isinstance(value, str):
            value = json.dumps(value)
        message = BusMessage(topic=topic, partition=topic, offset=f"{self._offset}-0", value=value)
        self._queue.append(message)
        return message

    async def poll(self) -> list[BusMessage]:
        if not self._queue:
            await asyncio.sleep(0.01)
            return []
        batch = list(self._queue)
        self._queue.clear()
        return batch

    async def commit(self, message: BusMessage) -> None:
        self.committed.append(message)

    async def publish(self, topic: str, value: str) -> None:
        self.published.append((topic, value))
        if self.loopback and topic in self.topics:
            self.deliver(topic, value)

    def published_on(self, topic: str) -> list[dict[str, Any]]:
        return [json.loads(v) for t, v in self.published if t == topic]


class RecordingForum(ForumGateway):
    def __init__(self):
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise RuntimeError(f"forum {name} failed")

    async def assign_role(self, user_id: int, role_name: str) -> None:
        self._record("assign_role", user_id, role_name)

    async def remove_role(self, user_id: int, role_name: str) -> None:
        self._record("remove_role", user_id, role_name)

    async def remove_user_permission(self, user_id: int, category_id: int) -> None:
        self._record("remove_user_permission", user_id, category_id)

    async def create_category_watch(self, user_id: int, category_id: int) -> None:
        self._record("create_category_watch", user_id, category_id)

    async def delete_category_watch(self, user_id: int, category_id: int) -> None:
        self._record("delete_category_watch", user_id, category_id)


class LegacyDB:
    """Direct access to the test legacy database for seeding and assertions."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def execute(self, sql: str, params: tuple = ()) -> None:
        await self.db.execute(sql, params)
        await self.db.commit()

    async def rows(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        cursor = await self.db.execute(sql, params)
        return [dict(r) for r in await cursor.fetchall()]

    async def count(self, table: str, **where: Any) -> int:
        clause = " AND ".join(f"{k} = ?" for k in where) or "1 = 1"
        rows = await self.rows(f"SELECT COUNT(*) AS n FROM {table} WHERE {clause}", tuple(where.values()))
        return rows[0]["n"]

    async def add_user(
        self,
        user_id: int,
        handle: str,
        status: str = "A",
        comp_country: Optional[str] = "840",
        home_country: Optional[str] = "840",
    ) -> None:
        await self.execute(
            "INSERT INTO user (user_id, handle, status) VALUES (?, ?, ?)",
            (user_id, handle, status),
        )
        await self.execute(
            "INSERT INTO coder (coder_id, comp_country_code, home_country_code) VALUES (?, ?, ?)",
            (user_id, comp_country, home_country),
        )

    async def add_challenge(
        self,
        legacy_id: int,
        category: int = 2,
        studio: bool = False,
        reg_open: bool = True,
        component_id: Optional[int] = 700,
        phase_id: Optional[int] = None,
        forum_category: Optional[int] = None,
        developer_forum_id: Optional[int] = None,
    ) -> None:
        await self.execute(
            "INSERT INTO project (project_id, project_category_id, project_studio_spec_id) VALUES (?, ?, ?)",
            (legacy_id, category, 1 if studio else None),
        )
        await self.execute(
            "INSERT INTO project_phase (project_phase_id, project_id, phase_type_id, phase_status_id) VALUES (?, ?, 1, ?)",
            (legacy_id * 10 + 1, legacy_id, 2 if reg_open else 3),
        )
        if component_id:
            if phase_id is None:
                phase_id = 112 if category == 1 else 113
            comp_vers_id = component_id * 10 + legacy_id
            await self.execute(
                "INSERT INTO project_info (project_id, project_info_type_id, value) VALUES (?, 2, ?)",
                (legacy_id, str(component_id)),
            )
            await self.execute(
                "INSERT INTO comp_versions (comp_vers_id, component_id, phase_id, version, comments) VALUES (?, ?, ?, 1, 'component')",
                (comp_vers_id, component_id, phase_id),
            )
            if forum_category:
                await self.execute(
                    "INSERT INTO comp_jive_category_xref (comp_vers_id, jive_category_id) VALUES (?, ?)",
                    (comp_vers_id, forum_category),
                )
        if developer_forum_id:
            await self.execute(
                "INSERT INTO project_info (project_id, project_info_type_id, value) VALUES (?, 4, ?)",
                (legacy_id, str(developer_forum_id)),
            )

    async def add_resource(self, resource_id: int, legacy_id: int, role_id: int, user_id: int) -> None:
        await self.execute(
            """INSERT INTO resource (resource_id, resource_role_id, project_id, user_id,
               create_user, create_date, modify_user, modify_date)
               VALUES (?, ?, ?, ?, 'seed', CURRENT_TIMESTAMP, 'seed', CURRENT_TIMESTAMP)""",
            (resource_id, role_id, legacy_id, user_id),
        )

    async def add_rating(self, user_id: int, phase_id: int, rating: int) -> None:
        await self.execute(
            "INSERT INTO user_rating (user_id, phase_id, rating) VALUES (?, ?, ?)",
            (user_id, phase_id, rating),
        )

    async def add_reliability(self, user_id: int, phase_id: int, rating: float) -> None:
        await self.execute(
            "INSERT INTO user_reliability (user_id, phase_id, rating) VALUES (?, ?, ?)",
            (user_id, phase_id, rating),
        )

    async def resource_info(self, resource_id: int) -> dict[int, str]:
        rows = await self.rows(
            "SELECT resource_info_type_id, value FROM resource_info WHERE resource_id = ?",
            (resource_id,),
        )
        return {r["resource_info_type_id"]: r["value"] for r in rows}
