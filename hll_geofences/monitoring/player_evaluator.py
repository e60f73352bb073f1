#!/usr/bin/env python3
"""
Player evaluator
Polls the roster and advances each player's inside/outside tracking state
"""

import asyncio
import time
from typing import List

from ..clients.rcon_client import RconError
from ..config_loader import MonitoringConfig, ServerConfig
from ..game.models import Player
from ..logging_setup import get_logger, log_player_event
from ..utils.helpers import render_message, wait_for_stop
from .prometheus_integration import GeofenceMetrics
from .tracking import OutsidePlayer, WorkerState


class PlayerEvaluator:
    """
    Enforce fences for every spawned, non-whitelisted player

    A player only becomes eligible for a warning after they have been seen
    inside an applicable fence at least once, so players spawning outside
    every fence are left alone until they reach one.
    """

    def __init__(self, server: ServerConfig, monitoring: MonitoringConfig, pool,
                 state: WorkerState, metrics: GeofenceMetrics):
        self.server = server
        self.pool = pool
        self.state = state
        self.metrics = metrics
        self.logger = get_logger("geofences.monitoring.players").bind(server=server.display_name)
        self._check_interval = monitoring.player_interval
        self._startup_grace = monitoring.startup_grace_seconds
        self._semaphore = asyncio.Semaphore(monitoring.max_concurrent_evaluations)

    async def run(self, stop_event: asyncio.Event) -> None:
        """Poll until the stop event fires"""
        while not await wait_for_stop(stop_event, self._check_interval):
            if time.time() - self.state.started_at < self._startup_grace:
                self.logger.debug("Skipping player poll during startup grace")
                continue
            try:
                await self.poll_once()
            except RconError as e:
                self.metrics.record_rcon_error(self.server.display_name, "fetch_players")
                self.logger.error("Player poll failed", error=str(e))
            except Exception as e:
                self.logger.error("Player poll error", error=str(e), exc_info=True)

    async def poll_once(self) -> None:
        """
        Fetch the roster, evaluate every player and purge departed ones

        Raises:
            RconError: When the roster cannot be fetched
        """
        if not self.state.has_fences():
            return

        async with self.pool.connection() as conn:
            players = await conn.fetch_players()

        await self.evaluate_roster(players)

    async def evaluate_roster(self, players: List[Player]) -> None:
        if players:
            await asyncio.gather(*(self._bounded_check(p) for p in players))

        present = {p.id for p in players}
        departed = set(self.state.outside_players.delete_missing(present))
        departed.update(self.state.entered_fence.delete_missing(present))
        for player_id in departed:
            self.logger.debug("Player left, tracking cleared", player_id=player_id)

        self.metrics.update_player_counts(
            self.server.display_name,
            online=len(players),
            outside=len(self.state.outside_players)
        )

    async def _bounded_check(self, player: Player) -> None:
        async with self._semaphore:
            try:
                await self.check_player(player)
            except Exception as e:
                self.logger.error("Player evaluation error", player_id=player.id,
                                  error=str(e), exc_info=True)

    async def check_player(self, player: Player) -> None:
        if self.server.is_whitelisted(player.id):
            self.state.forget_player(player.id)
            return

        if not player.position.is_spawned():
            self.logger.debug("Player not spawned", player_id=player.id, player_name=player.name)
            return

        fences = self.state.fences_for(player.side)
        if not fences:
            return

        session = self.state.session
        if session is None:
            return

        grid = session.grid(player.position)
        if any(fence.includes(grid) for fence in fences):
            _, entered_before = self.state.entered_fence.load_or_store(player.id, time.time())
            if not entered_before:
                self.logger.debug("Player entered fence", player_id=player.id,
                                  player_name=player.name, grid=str(grid))
            if self.state.outside_players.delete(player.id):
                log_player_event(self.logger, "player_returned", player.name, grid=str(grid))
            return

        if player.id not in self.state.entered_fence:
            return

        updated = self.state.outside_players.update(
            player.id,
            lambda o: OutsidePlayer(name=o.name, last_grid=grid, first_outside=o.first_outside)
        )
        if updated:
            return

        entry = OutsidePlayer(name=player.name, last_grid=grid, first_outside=time.time())
        _, existed = self.state.outside_players.load_or_store(player.id, entry)
        if existed:
            return

        log_player_event(self.logger, "player_outside", player.name,
                         player_id=player.id, grid=str(grid))
        await self._send_warning(player, str(grid))

    async def _send_warning(self, player: Player, grid: str) -> None:
        message = render_message(
            self.server.warning_message,
            player=player.name,
            grid=grid,
            seconds=self.server.punish_after_seconds
        )
        self.logger.debug("Warning message rendered", message=message)

        try:
            async with self.pool.connection() as conn:
                await conn.message_player(player.name, message)
        except RconError as e:
            self.metrics.record_warning(self.server.display_name, success=False)
            self.logger.error("Failed to warn player outside fence",
                              player_name=player.name, grid=grid, error=str(e))
            return

        self.metrics.record_warning(self.server.display_name, success=True)
        log_player_event(self.logger, "player_warned", player.name, grid=grid)
