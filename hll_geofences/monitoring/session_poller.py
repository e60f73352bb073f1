#!/usr/bin/env python3
"""
Session poller
Refreshes the current match, resolves applicable fences and detects map changes
"""

import asyncio
import time

from ..clients.rcon_client import RconError
from ..config_loader import MonitoringConfig, ServerConfig
from ..game.fence import applicable_fences
from ..game.models import Session, Side
from ..logging_setup import get_logger, log_server_event
from ..utils.helpers import wait_for_stop
from .prometheus_integration import GeofenceMetrics
from .restart_signal import RestartSignal
from .tracking import WorkerState


class SessionPoller:
    """Poll session info on a fixed interval and react to map changes"""

    def __init__(self, server: ServerConfig, monitoring: MonitoringConfig, pool,
                 state: WorkerState, restart_signal: RestartSignal, metrics: GeofenceMetrics):
        self.server = server
        self.pool = pool
        self.state = state
        self.restart_signal = restart_signal
        self.metrics = metrics
        self.logger = get_logger("geofences.monitoring.session").bind(server=server.display_name)
        self._check_interval = monitoring.session_interval

    async def populate_session(self) -> Session:
        """
        Fetch the session once and apply it

        Raises:
            RconError: When the session cannot be fetched
        """
        async with self.pool.connection() as conn:
            session = await conn.fetch_session()

        self.apply_session(session)
        return session

    def apply_session(self, session: Session) -> None:
        previous = self.state.session

        if previous is not None and previous.map_name != session.map_name:
            log_server_event(
                self.logger, "map_changed",
                "Map changed",
                old_map=previous.map_name,
                new_map=session.map_name
            )
            self.state.last_map_change = time.time()
            self.state.clear_tracking()
            self.metrics.record_map_change(self.server.display_name)
            self._resolve_fences(session)
            self.request_restart("map_change")
            return

        self._resolve_fences(session)
        if previous is None:
            self.logger.info(
                "Initial session loaded",
                event_type="fences_resolved",
                map=session.map_name,
                axis_fences=[f.describe() for f in self.state.fences_for(Side.AXIS)],
                allies_fences=[f.describe() for f in self.state.fences_for(Side.ALLIES)]
            )

    def _resolve_fences(self, session: Session) -> None:
        self.state.session = session
        self.state.set_fences(
            applicable_fences(self.server.axis_fence, session),
            applicable_fences(self.server.allies_fence, session),
        )

    def request_restart(self, reason: str) -> bool:
        accepted = self.restart_signal.request(reason)
        self.metrics.record_restart_request(self.server.display_name, reason, accepted)
        if accepted:
            log_server_event(self.logger, "restart_requested",
                             "Signaled restart", reason=reason)
        else:
            self.logger.warning("Restart already pending, request dropped", reason=reason)
        return accepted

    async def run(self, stop_event: asyncio.Event) -> None:
        """Poll until the stop event fires"""
        while not await wait_for_stop(stop_event, self._check_interval):
            try:
                await self.populate_session()
            except RconError as e:
                self.metrics.record_rcon_error(self.server.display_name, "fetch_session")
                self.logger.error("Session poll failed", error=str(e))
            except Exception as e:
                self.logger.error("Session poll error", error=str(e), exc_info=True)
