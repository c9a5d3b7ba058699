"""
Processor lifecycle.

Wires the legacy store, workflow journal, upstream client, bus and health
server together, runs the consume loop and handles shutdown: stop polling,
publish any waiting readiness retries, close connections.
"""

from __future__ import annotations

import asyncio
import signal

import httpx
import structlog

from .bus import MessageBus, RedisStreamBus
from .catalog import RoleCatalog
from .challenge_api import ChallengeApiClient
from .config import ProcessorConfig
from .dispatcher import Dispatcher
from .forum import ForumGateway
from .health import HealthServer
from .journal import WorkflowJournal
from .legacy.store import LegacyStore
from .metrics import MetricsCollector
from .publisher import EventPublisher
from .services.notifications import NotificationService
from .services.payments import PaymentLedger
from .services.registration import RegistrationWorkflow
from .services.resources import ResourceRoleOrchestrator
from .services.unregistration import UnregistrationWorkflow

log = structlog.get_logger()

SHUTDOWN_TIMEOUT = 15.0
HEALTH_INTERVAL = 30.0
POLL_ERROR_BACKOFF = 1.0


class LegacyProcessor:
    """Main process: owns every collaborator and the consume loop."""

    def __init__(
        self,
        config: ProcessorConfig,
        bus: MessageBus | None = None,
        forum: ForumGateway | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._config = config
        self.metrics = MetricsCollector()
        self.store = LegacyStore(
            config.legacy_store.resolved_url,
            pool_size=config.legacy_store.pool_size,
            statement_timeout=config.legacy_store.statement_timeout_seconds,
            echo=config.legacy_store.echo,
        )
        self.journal = WorkflowJournal(config.state.db_path)
        self.api = ChallengeApiClient(config.challenge_api, config.auth, transport=transport)
        self.bus = bus or RedisStreamBus(
            config.bus.redis_url,
            config.bus.group_id,
            config.bus.consumer_name,
            block_ms=config.bus.block_ms,
            stream_maxlen=config.bus.stream_maxlen,
        )
        self._health = HealthServer(
            host=config.metrics.host,
            port=config.metrics.port,
            metrics=self.metrics,
        )

        self.catalog = catalog = RoleCatalog(config.roles, config.challenge_types)
        self.publisher = publisher = EventPublisher(self.bus, config.events)
        self.forum = forum = forum or ForumGateway()
        self.notifications = notifications = NotificationService(self.api, catalog)
        self.ledger = ledger = PaymentLedger(self.store, config.payments, config.roles, self.metrics)
        self.registration = registration = RegistrationWorkflow(
            self.store,
            self.journal,
            forum,
            notifications,
            catalog,
            config.registration,
            self.metrics,
        )
        self.unregistration = unregistration = UnregistrationWorkflow(
            self.store,
            self.journal,
            forum,
            publisher,
            catalog,
            config.topics.user_unregistration,
            self.metrics,
        )
        self.orchestrator = orchestrator = ResourceRoleOrchestrator(
            self.store,
            catalog,
            ledger,
            notifications,
            registration,
            unregistration,
            self.metrics,
        )
        self.dispatcher = Dispatcher(
            config,
            self.bus,
            publisher,
            self.api,
            self.store,
            catalog,
            ledger,
            orchestrator,
            self.metrics,
        )

        self._consumer: asyncio.Task | None = None
        self._running = False
        self._shutdown_event = asyncio.Event()

    async def open(self) -> None:
        """Open store, journal, upstream client and bus subscriptions."""
        await self.store.open()
        await self.journal.open()
        await self.api.open()
        await self.bus.open(self._config.topics.inbound)

    async def close(self) -> None:
        await self.bus.close()
        await self.api.close()
        await self.journal.close()
        await self.store.close()

    async def start(self) -> None:
        log.info("processor.starting", topics=self._config.topics.inbound)

        await self.open()

        if self._config.metrics.enabled:
            try:
                await self._health.start()
                log.info(
                    "processor.health_started",
                    host=self._config.metrics.host,
                    port=self._config.metrics.port,
                )
            except Exception as exc:
                log.warning("processor.health_start_failed", error=str(exc))

        self._running = True
        self._consumer = asyncio.create_task(self._consume())
        log.info("processor.started")

    async def stop(self) -> None:
        """Graceful shutdown: stop consuming, flush waiting retries, close connections."""
        if not self._running:
            return
        self._running = False
        log.info("processor.stopping")

        # 1. Stop the consume loop
        if self._consumer:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None

        # 2. Publish waiting readiness retries now rather than losing them
        flushed = await self.dispatcher.flush_pending()
        if flushed:
            log.info("processor.flushed_requeues", count=flushed)

        # 3. Close connections
        await self._health.stop()
        await self.close()

        log.info("processor.stopped")

    async def run_forever(self) -> None:
        """Run until shutdown signal."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._shutdown_event.set)

        await self.start()

        try:
            while not self._shutdown_event.is_set():
                await self._update_health()
                try:
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=HEALTH_INTERVAL)
                except asyncio.TimeoutError:
                    pass
        finally:
            await asyncio.wait_for(self.stop(), timeout=SHUTDOWN_TIMEOUT)

    async def _consume(self) -> None:
        while self._running:
            try:
                messages = await self.bus.poll()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                log.error("processor.poll_failed", error=str(exc))
                await asyncio.sleep(POLL_ERROR_BACKOFF)
                continue
            for message in messages:
                await self.dispatcher.handle(message)

    async def _update_health(self) -> None:
        bus_ok = await self.bus.ping()
        store_ok = await self.store.ping()
        api_ok = await self.api.check_health()
        self.metrics.set_gauge("pending_requeues", self.dispatcher.pending_requeues)
        self._health.update_status(
            bus_ok,
            store_ok,
            challenge_api_reachable=api_ok,
            pending_requeues=self.dispatcher.pending_requeues,
        )
