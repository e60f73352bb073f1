#!/usr/bin/env python3
"""
Prometheus integration module
Geofence enforcement metrics served over a small aiohttp endpoint
"""

from datetime import datetime
from typing import Optional

from aiohttp import web
from prometheus_client import (
    Counter, Gauge, CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
)

from ..config_loader import MetricsConfig
from ..logging_setup import get_logger


class GeofenceMetrics:
    """Geofence dedicated Prometheus metrics class"""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize Prometheus metrics

        Args:
            registry: Custom registry (a private one is created if None)
        """
        self.registry = registry or CollectorRegistry()

        self.players_online = Gauge(
            'hll_geofences_players_online',
            'Players in the last fetched roster',
            ['server'],
            registry=self.registry
        )

        self.players_outside = Gauge(
            'hll_geofences_players_outside',
            'Players currently flagged outside their fences',
            ['server'],
            registry=self.registry
        )

        self.warnings_total = Counter(
            'hll_geofences_warnings_total',
            'Warning messages sent to players who left their fence',
            ['server', 'result'],  # success, failure
            registry=self.registry
        )

        self.punishments_total = Counter(
            'hll_geofences_punishments_total',
            'Punish actions issued',
            ['server', 'result'],  # success, failure
            registry=self.registry
        )

        self.map_changes_total = Counter(
            'hll_geofences_map_changes_total',
            'Map changes detected by the session poller',
            ['server'],
            registry=self.registry
        )

        self.restart_requests_total = Counter(
            'hll_geofences_restart_requests_total',
            'Restart requests raised by workers',
            ['server', 'reason', 'outcome'],  # outcome: accepted, dropped
            registry=self.registry
        )

        self.rcon_errors_total = Counter(
            'hll_geofences_rcon_errors_total',
            'Failed RCON operations',
            ['server', 'operation'],
            registry=self.registry
        )

    def record_warning(self, server: str, success: bool) -> None:
        self.warnings_total.labels(server=server, result="success" if success else "failure").inc()

    def record_punishment(self, server: str, success: bool) -> None:
        self.punishments_total.labels(server=server, result="success" if success else "failure").inc()

    def record_map_change(self, server: str) -> None:
        self.map_changes_total.labels(server=server).inc()

    def record_restart_request(self, server: str, reason: str, accepted: bool) -> None:
        self.restart_requests_total.labels(
            server=server,
            reason=reason,
            outcome="accepted" if accepted else "dropped"
        ).inc()

    def record_rcon_error(self, server: str, operation: str) -> None:
        self.rcon_errors_total.labels(server=server, operation=operation).inc()

    def update_player_counts(self, server: str, online: Optional[int] = None,
                             outside: Optional[int] = None) -> None:
        if online is not None:
            self.players_online.labels(server=server).set(online)
        if outside is not None:
            self.players_outside.labels(server=server).set(outside)


class MetricsServer:
    """Standalone aiohttp app exposing /metrics and /health"""

    def __init__(self, config: MetricsConfig, metrics: GeofenceMetrics):
        self.config = config
        self.metrics = metrics
        self.logger = get_logger("geofences.prometheus")
        self.app: Optional[web.Application] = None
        self.runner: Optional[web.AppRunner] = None

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/metrics", self._metrics_handler)
        app.router.add_get("/health", self._health_check_handler)
        return app

    async def _metrics_handler(self, request: web.Request) -> web.Response:
        """Metrics endpoint handler"""
        try:
            output = generate_latest(self.metrics.registry)
            # aiohttp rejects charset inside content_type, so set the header directly
            return web.Response(body=output, headers={"Content-Type": CONTENT_TYPE_LATEST})
        except Exception as e:
            self.logger.error("Metrics generation failed", error=str(e))
            return web.Response(text=f"Metrics generation error: {e}", status=500)

    async def _health_check_handler(self, request: web.Request) -> web.Response:
        """Health check handler"""
        return web.json_response({
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
        })

    async def start(self) -> None:
        """Start metrics server"""
        self.app = self.create_app()
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        site = web.TCPSite(self.runner, self.config.host, self.config.port)
        await site.start()

        self.logger.info(
            "Prometheus metrics server started",
            event_type="metrics",
            host=self.config.host,
            port=self.config.port,
            endpoints=["/metrics", "/health"]
        )

    async def stop(self) -> None:
        """Stop metrics server"""
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
            self.logger.info("Prometheus metrics server stopped", event_type="metrics")


# Global metrics instance
_metrics: Optional[GeofenceMetrics] = None


def get_metrics() -> GeofenceMetrics:
    """Return global metrics instance"""
    global _metrics

    if _metrics is None:
        _metrics = GeofenceMetrics()

    return _metrics
