#!/usr/bin/env python3
"""
Geofence worker for one server
Owns the shared tracking state and runs the four polling loops
"""

import asyncio
import time
from typing import Optional, Set

from ..clients.rcon_client import RconError
from ..config_loader import MonitoringConfig, ServerConfig
from ..logging_setup import get_logger
from .idle_restart_manager import IdleRestartManager
from .player_evaluator import PlayerEvaluator
from .prometheus_integration import GeofenceMetrics, get_metrics
from .punishment_scheduler import PunishmentScheduler
from .restart_signal import RestartSignal
from .session_poller import SessionPoller
from .tracking import WorkerState


class GeofenceWorker:
    """Monitoring engine for a single server"""

    def __init__(self, server: ServerConfig, monitoring: MonitoringConfig, pool,
                 metrics: Optional[GeofenceMetrics] = None):
        """Initialize worker and its polling components"""
        self.server = server
        self.pool = pool
        self.logger = get_logger("geofences.monitoring.worker").bind(server=server.display_name)
        self.metrics = metrics or get_metrics()

        self.state = WorkerState()
        self.restart_signal = RestartSignal()

        self.session_poller = SessionPoller(
            server, monitoring, pool, self.state, self.restart_signal, self.metrics
        )
        self.player_evaluator = PlayerEvaluator(
            server, monitoring, pool, self.state, self.metrics
        )
        self.punishment_scheduler = PunishmentScheduler(
            server, monitoring, pool, self.state, self.metrics
        )
        self.idle_restart_manager = IdleRestartManager(
            server, monitoring.idle_restart, pool, self.state, self.restart_signal, self.metrics
        )

        self._background_tasks: Set[asyncio.Task] = set()
        self._monitoring_active = False

    @property
    def host(self) -> str:
        return self.server.host

    async def run(self, stop_event: asyncio.Event) -> bool:
        """
        Fetch the initial session, then run every loop until ``stop_event`` fires

        Returns:
            False when the initial session could not be fetched
        """
        self.state.started_at = self.state.last_map_change = time.time()

        try:
            await self.session_poller.populate_session()
        except RconError as e:
            self.logger.error("Failed to fetch initial session, worker not started", error=str(e))
            return False

        self._monitoring_active = True
        self.logger.info("Starting geofence monitoring",
                         map=self.state.session.map_name if self.state.session else None)

        loops = (
            ("session", self.session_poller.run(stop_event)),
            ("players", self.player_evaluator.run(stop_event)),
            ("punish", self.punishment_scheduler.run(stop_event)),
            ("idle", self.idle_restart_manager.run(stop_event)),
        )
        for name, coro in loops:
            task = asyncio.create_task(coro, name=f"{self.server.display_name}:{name}")
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)

        try:
            await asyncio.gather(*list(self._background_tasks))
        finally:
            await self.stop()

        return True

    async def stop(self) -> None:
        """Cancel loops that are still running"""
        if self._background_tasks:
            self.logger.info(f"Cancelling {len(self._background_tasks)} background tasks")
            for task in list(self._background_tasks):
                task.cancel()
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)
            self._background_tasks.clear()

        if self._monitoring_active:
            self._monitoring_active = False
            self.logger.info("Geofence monitoring stopped")

    def is_monitoring_active(self) -> bool:
        return self._monitoring_active

    def get_monitoring_status(self) -> dict:
        """Get worker status for diagnostics"""
        session = self.state.session
        return {
            "server": self.server.display_name,
            "monitoring_active": self._monitoring_active,
            "map": session.map_name if session else None,
            "has_fences": self.state.has_fences(),
            "players_outside": len(self.state.outside_players),
            "players_tracked": len(self.state.entered_fence),
            "punishments_in_flight": len(self.punishment_scheduler.in_flight()),
            "restart_pending": self.restart_signal.is_pending(),
            "idle_restart_status": self.idle_restart_manager.get_idle_status(),
        }
