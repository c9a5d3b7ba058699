"""
Health and metrics HTTP server.

Exposes:
- GET /health: JSON status with bus and legacy store reachability, pending requeues
- GET /metrics: Prometheus-compatible metrics
"""

from __future__ import annotations

from typing import Any

from aiohttp import web

from .metrics import MetricsCollector


class HealthServer:
    """Lightweight HTTP server for health checks and metrics."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 9090,
        metrics: MetricsCollector | None = None,
    ):
        self._host = host
        self._port = port
        self._metrics = metrics or MetricsCollector()
        self._bus_reachable = False
        self._store_reachable = False
        self._details: dict[str, Any] = {}
        self._runner: web.AppRunner | None = None

    def update_status(
        self,
        bus_reachable: bool,
        store_reachable: bool,
        **details: Any,
    ) -> None:
        self._bus_reachable = bus_reachable
        self._store_reachable = store_reachable
        self._details = details

    def status(self) -> dict[str, Any]:
        healthy = self._bus_reachable and self._store_reachable
        return {
            "status": "healthy" if healthy else "degraded",
            "bus_reachable": self._bus_reachable,
            "legacy_store_reachable": self._store_reachable,
            **self._details,
        }

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._health_handler)
        app.router.add_get("/metrics", self._metrics_handler)
        return app

    async def start(self) -> None:
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    async def _health_handler(self, request: web.Request) -> web.Response:
        body = self.status()
        return web.json_response(body, status=200 if body["status"] == "healthy" else 503)

    async def _metrics_handler(self, request: web.Request) -> web.Response:
        return web.Response(
            text=self._metrics.to_prometheus(),
            content_type="text/plain",
        )
