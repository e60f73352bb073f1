#!/usr/bin/env python3
"""
Punishment scheduler
Punishes players who stay outside their fence past the grace period
"""

import asyncio
import time
from typing import Optional, Set

from ..clients.rcon_client import RconError
from ..config_loader import MonitoringConfig, ServerConfig
from ..logging_setup import get_logger, log_player_event
from ..utils.helpers import render_message, wait_for_stop
from .prometheus_integration import GeofenceMetrics
from .tracking import OutsidePlayer, WorkerState


class PunishmentScheduler:
    """
    Scan outside entries and punish each episode once

    An entry is a candidate while its age lies in
    ``[punish_after, punish_after + window)``. Older entries belong to an
    episode that was already punished or abandoned.
    """

    def __init__(self, server: ServerConfig, monitoring: MonitoringConfig, pool,
                 state: WorkerState, metrics: GeofenceMetrics):
        self.server = server
        self.pool = pool
        self.state = state
        self.metrics = metrics
        self.logger = get_logger("geofences.monitoring.punish").bind(server=server.display_name)
        self._check_interval = monitoring.punish_interval
        self._punish_after = float(server.punish_after_seconds)
        self._window = monitoring.punish_window_seconds
        self._settle_delay = monitoring.punish_settle_seconds
        self._in_flight: Set[str] = set()
        self._stop_event: Optional[asyncio.Event] = None
        self._background_tasks: Set[asyncio.Task] = set()

    def is_due(self, entry: OutsidePlayer, now: Optional[float] = None) -> bool:
        elapsed = entry.elapsed(now)
        return self._punish_after <= elapsed < self._punish_after + self._window

    async def run(self, stop_event: asyncio.Event) -> None:
        """Scan until the stop event fires"""
        self._stop_event = stop_event
        try:
            while not await wait_for_stop(stop_event, self._check_interval):
                try:
                    self.scan_once()
                except Exception as e:
                    self.logger.error("Punishment scan error", error=str(e), exc_info=True)
        finally:
            await self.drain()

    def scan_once(self, now: Optional[float] = None) -> int:
        """Dispatch punishments for due entries; returns how many were dispatched"""
        now = now if now is not None else time.time()
        dispatched = 0

        for player_id, entry in self.state.outside_players.items():
            if player_id in self._in_flight or not self.is_due(entry, now):
                continue

            self._in_flight.add(player_id)
            task = asyncio.create_task(self.punish_player(player_id, entry))
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)
            dispatched += 1

        return dispatched

    async def punish_player(self, player_id: str, entry: OutsidePlayer) -> bool:
        """Issue the punish action; on success remove the entry after the settle delay"""
        try:
            message = render_message(
                self.server.punish_message,
                player=entry.name,
                grid=str(entry.last_grid),
                seconds=self.server.punish_after_seconds
            )
            self.logger.debug("Punish message rendered", message=message)

            try:
                async with self.pool.connection() as conn:
                    await conn.punish_player(player_id, message)
            except RconError as e:
                self.metrics.record_punishment(self.server.display_name, success=False)
                self.logger.error("Failed to punish player", player_id=player_id,
                                  player_name=entry.name, error=str(e))
                return False

            self.metrics.record_punishment(self.server.display_name, success=True)
            log_player_event(self.logger, "player_punished", entry.name,
                             player_id=player_id, grid=str(entry.last_grid))

            # Let the punish land before the player is re-evaluated
            await self._settle()
            if self.state.outside_players.delete_if(player_id, entry.same_episode):
                self.logger.debug("Punished player removed from outside list", player_id=player_id)
            return True
        except Exception as e:
            self.logger.error("Punishment task error", player_id=player_id,
                              error=str(e), exc_info=True)
            return False
        finally:
            self._in_flight.discard(player_id)

    async def _settle(self) -> None:
        """Wait the settle delay, cut short once the scan loop is stopping"""
        if self._stop_event is None:
            await asyncio.sleep(self._settle_delay)
        else:
            await wait_for_stop(self._stop_event, self._settle_delay)

    async def drain(self) -> None:
        """Wait for dispatched punishments; cancelling the caller cancels them too"""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def in_flight(self) -> Set[str]:
        return set(self._in_flight)
