"""
Message bus adapter over Redis Streams.

Each topic is a stream; the processor reads through a consumer group so that
every message is delivered to one consumer of the group. "Committing" an
offset is XACK. On start the consumer first re-reads its own pending entries
(delivered earlier but never acknowledged), which gives at-least-once
delivery across restarts.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

import redis.asyncio as redis
import structlog
from redis.exceptions import ResponseError

log = structlog.get_logger()

VALUE_FIELD = "value"


@dataclass(frozen=True)
class BusMessage:
    """A raw message as delivered by the bus."""
    topic: str
    partition: str
    offset: str
    value: str


class MessageBus(ABC):
    """Subscribe / commit / publish primitives the dispatcher relies on."""

    @abstractmethod
    async def open(self, topics: list[str]) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...

    @abstractmethod
    async def poll(self) -> list[BusMessage]:
        """Return the next batch of messages, possibly empty."""

    @abstractmethod
    async def commit(self, message: BusMessage) -> None: ...

    @abstractmethod
    async def publish(self, topic: str, value: str) -> None: ...

    async def ping(self) -> bool:
        return True


class RedisStreamBus(MessageBus):
    def __init__(
        self,
        redis_url: str,
        group_id: str,
        consumer_name: str,
        block_ms: int = 5000,
        stream_maxlen: int = 100_000,
        client: redis.Redis | None = None,
    ):
        self._redis_url = redis_url
        self._group_id = group_id
        self._consumer_name = consumer_name
        self._block_ms = block_ms
        self._stream_maxlen = stream_maxlen
        self._client = client
        self._topics: list[str] = []
        self._recovering = True

    async def open(self, topics: list[str]) -> None:
        if self._client is None:
            self._client = redis.from_url(self._redis_url, decode_responses=True)
        self._topics = list(topics)
        for topic in self._topics:
            try:
                await self._client.xgroup_create(topic, self._group_id, id="0", mkstream=True)
                log.info("bus.group_created", topic=topic, group=self._group_id)
            except ResponseError as exc:
                if "BUSYGROUP" not in str(exc):
                    raise
        self._recovering = True
        log.info("bus.subscribed", topics=self._topics, consumer=self._consumer_name)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def poll(self) -> list[BusMessage]:
        assert self._client
        start_id = "0" if self._recovering else ">"
        response = await self._client.xreadgroup(
            self._group_id,
            self._consumer_name,
            {topic: start_id for topic in self._topics},
            count=1 if self._recovering else 10,
            block=None if self._recovering else self._block_ms,
        )

        messages: list[BusMessage] = []
        for stream, entries in response or []:
            for entry_id, fields in entries:
                if fields is None:
                    # Pending entry whose stream data was trimmed; nothing to replay.
                    await self._client.xack(stream, self._group_id, entry_id)
                    continue
                messages.append(
                    BusMessage(
                        topic=stream,
                        partition=stream,
                        offset=entry_id,
                        value=fields.get(VALUE_FIELD, ""),
                    )
                )

        if self._recovering and not messages:
            self._recovering = False
            log.info("bus.pending_replayed", consumer=self._consumer_name)
        return messages

    async def commit(self, message: BusMessage) -> None:
        assert self._client
        await self._client.xack(message.topic, self._group_id, message.offset)

    async def publish(self, topic: str, value: str) -> None:
        assert self._client
        await self._client.xadd(
            topic,
            {VALUE_FIELD: value},
            maxlen=self._stream_maxlen,
            approximate=True,
        )

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            return bool(await self._client.ping())
        except Exception:
            return False
