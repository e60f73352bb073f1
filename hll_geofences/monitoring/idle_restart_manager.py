#!/usr/bin/env python3
"""
Idle-based restart manager
Requests a restart when the map has not changed for a while and nobody is online
"""

import asyncio
import time
from typing import Optional
from dataclasses import dataclass

from ..clients.rcon_client import RconError
from ..config_loader import IdleRestartConfig, ServerConfig
from ..logging_setup import get_logger, log_server_event
from ..utils.helpers import format_duration, wait_for_stop
from .prometheus_integration import GeofenceMetrics
from .restart_signal import RestartSignal
from .tracking import WorkerState


@dataclass
class IdleRestartStats:
    """Idle restart statistics"""
    total_requests: int = 0
    last_request_time: Optional[float] = None
    last_player_count: Optional[int] = None


class IdleRestartManager:
    """
    Monitors time since the last map change and requests a restart once the
    threshold is exceeded with an empty server
    """

    def __init__(self, server: ServerConfig, config: IdleRestartConfig, pool,
                 state: WorkerState, restart_signal: RestartSignal, metrics: GeofenceMetrics):
        """Initialize idle restart manager with configuration"""
        self.server = server
        self.pool = pool
        self.state = state
        self.restart_signal = restart_signal
        self.metrics = metrics
        self.logger = get_logger("geofences.idle_restart").bind(server=server.display_name)

        self.enabled = config.enabled
        self.idle_minutes = config.idle_minutes
        self.idle_seconds = config.idle_minutes * 60
        self.check_interval = config.check_interval
        self.stats = IdleRestartStats()

    async def run(self, stop_event: asyncio.Event) -> None:
        """Main monitoring loop for idle detection"""
        if not self.enabled:
            self.logger.info("Idle restart manager disabled by configuration")
            return

        while not await wait_for_stop(stop_event, self.check_interval):
            try:
                await self.check_idle_status()
            except RconError as e:
                self.metrics.record_rcon_error(self.server.display_name, "fetch_players")
                self.logger.error("Idle check failed", error=str(e))
            except Exception as e:
                self.logger.error("Idle monitoring loop error", error=str(e), exc_info=True)

    async def check_idle_status(self) -> bool:
        """
        Check idle time and request a restart when the server is empty

        Returns:
            True when a restart was requested

        Raises:
            RconError: When the roster cannot be fetched
        """
        idle_duration = time.time() - self.state.last_map_change
        if idle_duration < self.idle_seconds:
            return False

        async with self.pool.connection() as conn:
            players = await conn.fetch_players()

        self.stats.last_player_count = len(players)
        if players:
            self.logger.debug(
                f"Map unchanged for {format_duration(idle_duration)} but players are online",
                player_count=len(players)
            )
            return False

        self.logger.warning(
            f"No map change for {format_duration(idle_duration)} and no players online"
        )

        accepted = self.restart_signal.request("idle")
        self.metrics.record_restart_request(self.server.display_name, "idle", accepted)
        # Reset so the request is not repeated before the process restarts
        self.state.last_map_change = time.time()

        if not accepted:
            self.logger.warning("Restart already pending, request dropped", reason="idle")
            return False

        self.stats.total_requests += 1
        self.stats.last_request_time = time.time()
        log_server_event(
            self.logger, "idle_restart",
            "Signaled restart due to inactivity",
            idle_minutes=self.idle_minutes,
            total_requests=self.stats.total_requests
        )
        return True

    def get_idle_status(self) -> dict:
        """Get current idle status information"""
        idle_duration = time.time() - self.state.last_map_change

        return {
            "enabled": self.enabled,
            "idle_threshold_minutes": self.idle_minutes,
            "seconds_since_map_change": idle_duration,
            "remaining_seconds_until_check": max(0.0, self.idle_seconds - idle_duration),
            "statistics": {
                "total_requests": self.stats.total_requests,
                "last_request_time": self.stats.last_request_time,
                "last_player_count": self.stats.last_player_count,
            }
        }
