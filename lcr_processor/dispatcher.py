"""
Message dispatcher.

Turns one bus message into at most one orchestrator or ledger call:

- invalid JSON, a topic mismatch or a schema violation drops the message;
- a challenge that is not resolvable yet (no legacy id upstream, or no
  `project` row in the legacy store) is republished to the same topic after a
  backoff delay, or dead-lettered once its attempts run out;
- otherwise the message is routed by topic.

The offset is committed after every message, whatever the outcome.
Republishes run as background tasks so a waiting message never blocks the
partition.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError

from .bus import BusMessage, MessageBus
from .catalog import RoleCatalog
from .challenge_api import ChallengeApiClient
from .config import ProcessorConfig
from .errors import BusinessRuleError, ChallengeNotReadyError, MalformedMessageError
from .legacy import resources as resource_dao
from .legacy.store import LegacyStore
from .metrics import MetricsCollector
from .publisher import EventPublisher
from .schemas import Challenge, Envelope, PaymentUpdatePayload, ResourcePayload
from .services.payments import PaymentLedger
from .services.resources import ResourceRoleOrchestrator

log = structlog.get_logger()


class Dispatcher:
    def __init__(
        self,
        config: ProcessorConfig,
        bus: MessageBus,
        publisher: EventPublisher,
        api: ChallengeApiClient,
        store: LegacyStore,
        catalog: RoleCatalog,
        ledger: PaymentLedger,
        orchestrator: ResourceRoleOrchestrator,
        metrics: MetricsCollector | None = None,
    ):
        self._topics = config.topics
        self._retry = config.retry
        self._bus = bus
        self._publisher = publisher
        self._api = api
        self._store = store
        self._catalog = catalog
        self._ledger = ledger
        self._orchestrator = orchestrator
        self._metrics = metrics or MetricsCollector()
        self._payload_models: dict[str, type[BaseModel]] = {
            self._topics.create_resource: ResourcePayload,
            self._topics.delete_resource: ResourcePayload,
            self._topics.payment_update: PaymentUpdatePayload,
        }
        self._pending: dict[asyncio.Task, tuple[str, dict[str, Any], int]] = {}

    @property
    def pending_requeues(self) -> int:
        return len(self._pending)

    async def handle(self, message: BusMessage) -> None:
        """Process one message and commit its offset."""
        start = time.monotonic()
        self._metrics.inc("messages_received_total", topic=message.topic)
        try:
            await self._process(message)
        except MalformedMessageError as exc:
            log.warning(
                "dispatcher.dropped",
                topic=message.topic,
                offset=message.offset,
                reason=str(exc),
            )
            self._metrics.inc("messages_dropped_total", topic=message.topic)
        except ChallengeNotReadyError as exc:
            log.info("dispatcher.not_ready", topic=message.topic, reason=exc.reason)
        except BusinessRuleError as exc:
            log.error(
                "dispatcher.rejected",
                topic=message.topic,
                offset=message.offset,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            self._metrics.inc("messages_failed_total", topic=message.topic)
        except Exception:
            log.exception("dispatcher.failed", topic=message.topic, offset=message.offset)
            self._metrics.inc("messages_failed_total", topic=message.topic)
        finally:
            await self._bus.commit(message)
            self._metrics.observe("handler_duration_seconds", time.monotonic() - start)

    # --- Parsing ---

    def parse(self, message: BusMessage) -> tuple[Envelope, BaseModel]:
        try:
            raw = json.loads(message.value)
        except (TypeError, ValueError) as exc:
            raise MalformedMessageError(f"Invalid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise MalformedMessageError("Message is not a JSON object")
        if raw.get("topic") != message.topic:
            raise MalformedMessageError(
                f"Envelope topic {raw.get('topic')!r} does not match bus topic {message.topic!r}"
            )
        model = self._payload_models.get(message.topic)
        if model is None:
            raise MalformedMessageError(f"No handler for topic {message.topic}")
        try:
            envelope = Envelope.model_validate(raw)
            payload = model.model_validate(envelope.payload)
        except ValidationError as exc:
            raise MalformedMessageError(
                f"Schema violation: {exc.error_count()} error(s): {exc.errors()[0]['msg']}"
            ) from exc
        return envelope, payload

    async def _process(self, message: BusMessage) -> None:
        envelope, payload = self.parse(message)
        challenge_ref = payload.challenge_ref

        challenge = await self.resolve_ready(challenge_ref)
        if challenge is None:
            await self.requeue(message.topic, envelope, challenge_ref)
            raise ChallengeNotReadyError(challenge_ref, "challenge not resolvable yet")

        if message.topic == self._topics.payment_update:
            await self._reconcile_payments(challenge, payload)
        else:
            await self._update_resource(message.topic, challenge, payload)
        self._metrics.inc("messages_processed_total", topic=message.topic)

    # --- Readiness ---

    async def resolve_ready(self, challenge_ref: str) -> Challenge | None:
        """The challenge when it has a legacy id with a legacy store row, else None."""
        try:
            challenge = await self._api.get_challenge(challenge_ref)
            if not challenge.legacyId:
                log.warning("dispatcher.no_legacy_id", challenge_id=challenge_ref)
                return None
            async with self._store.transaction() as tx:
                exists = await resource_dao.challenge_exists(tx, challenge.legacyId)
        except Exception as exc:
            log.warning("dispatcher.readiness_error", challenge_id=challenge_ref, error=str(exc))
            return None
        if not exists:
            log.info(
                "dispatcher.legacy_missing",
                challenge_id=challenge_ref,
                legacy_id=challenge.legacyId,
            )
            return None
        return challenge

    async def requeue(self, topic: str, envelope: Envelope, challenge_ref: str) -> None:
        attempt = envelope.attempt
        if self._retry.max_attempts and attempt >= self._retry.max_attempts:
            await self._publisher.publish(
                self._topics.dead_letter,
                {
                    "topic": topic,
                    "challengeId": challenge_ref,
                    "attempts": attempt,
                    "reason": "challenge not ready",
                    "payload": envelope.payload,
                },
            )
            self._metrics.inc("messages_dead_lettered_total", topic=topic)
            log.error(
                "dispatcher.dead_lettered",
                topic=topic,
                challenge_id=challenge_ref,
                attempts=attempt,
            )
            return

        delay = self._retry.delay_for(attempt)
        task = asyncio.create_task(
            self._republish_later(topic, envelope.payload, attempt + 1, delay)
        )
        self._pending[task] = (topic, envelope.payload, attempt + 1)
        task.add_done_callback(lambda t: self._pending.pop(t, None))
        self._metrics.inc("messages_requeued_total", topic=topic)
        log.info(
            "dispatcher.requeued",
            topic=topic,
            challenge_id=challenge_ref,
            attempt=attempt + 1,
            delay=delay,
        )

    async def _republish_later(
        self, topic: str, payload: dict[str, Any], attempt: int, delay: float
    ) -> None:
        await asyncio.sleep(delay)
        try:
            await self._publisher.publish(topic, payload, attempt=attempt)
        except Exception as exc:
            log.error("dispatcher.republish_failed", topic=topic, attempt=attempt, error=str(exc))

    async def flush_pending(self) -> int:
        """Publish every waiting republish now. Returns the number published."""
        waiting = list(self._pending.items())
        for task, _ in waiting:
            task.cancel()
        await asyncio.gather(*(t for t, _ in waiting), return_exceptions=True)

        flushed = 0
        for task, (topic, payload, attempt) in waiting:
            if not task.cancelled():
                continue
            try:
                await self._publisher.publish(topic, payload, attempt=attempt)
                flushed += 1
            except Exception as exc:
                log.error("dispatcher.flush_failed", topic=topic, error=str(exc))
        return flushed

    # --- Routing ---

    async def _update_resource(
        self, topic: str, challenge: Challenge, payload: ResourcePayload
    ) -> None:
        role = self._catalog.resolve(await self._api.get_resource_role(str(payload.roleId)))
        if topic == self._topics.create_resource:
            context = self._ledger.payment_context(challenge)
            await self._orchestrator.assign(
                challenge, role, payload.memberId, payload.memberHandle, context
            )
        else:
            await self._orchestrator.remove(challenge, role, payload.memberId)

    async def _reconcile_payments(
        self, challenge: Challenge, payload: PaymentUpdatePayload
    ) -> None:
        if payload.prizeSets is not None:
            challenge = challenge.model_copy(update={"prizeSets": payload.prizeSets})
        legacy_id = payload.legacyId or challenge.legacyId
        await self._ledger.reconcile(legacy_id, challenge, payload.metadata, payload.updatedBy)
