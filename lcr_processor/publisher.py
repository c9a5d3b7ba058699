"""
Outbound events: wraps payloads in the standard bus envelope and publishes them.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import structlog

from .bus import MessageBus
from .config import EventConfig

log = structlog.get_logger()


def build_envelope(
    topic: str,
    payload: dict[str, Any],
    originator: str,
    mime_type: str,
    attempt: int = 0,
) -> dict[str, Any]:
    envelope: dict[str, Any] = {
        "topic": topic,
        "originator": originator,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "mime-type": mime_type,
        "payload": payload,
    }
    if attempt:
        envelope["attempt"] = attempt
    return envelope


class EventPublisher:
    def __init__(self, bus: MessageBus, events: EventConfig):
        self._bus = bus
        self._events = events

    async def publish(self, topic: str, payload: dict[str, Any], attempt: int = 0) -> None:
        envelope = build_envelope(
            topic,
            payload,
            self._events.originator,
            self._events.mime_type,
            attempt=attempt,
        )
        await self._bus.publish(topic, json.dumps(envelope, default=str))
        log.debug("publisher.published", topic=topic, attempt=attempt)
