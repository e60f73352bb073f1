"""Shared fixtures: an in-memory RCON connection and pool"""

from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import pytest

from hll_geofences.config_loader import MonitoringConfig, ServerConfig
from hll_geofences.game.fence import Fence, FenceCondition
from hll_geofences.game.models import (
    GRID_CELL_SIZE, GRID_COLUMNS, MAP_HALF_EXTENT, Faction, Player, Session, Side, WorldPosition
)
from hll_geofences.monitoring.prometheus_integration import GeofenceMetrics
from hll_geofences.monitoring.restart_signal import RestartSignal
from hll_geofences.monitoring.tracking import WorkerState


def cell_center(column: str, row: int) -> WorldPosition:
    """World position in the middle (numpad 5) of a grid cell"""
    x = -MAP_HALF_EXTENT + GRID_COLUMNS.index(column) * GRID_CELL_SIZE + GRID_CELL_SIZE / 2
    y = -MAP_HALF_EXTENT + (row - 1) * GRID_CELL_SIZE + GRID_CELL_SIZE / 2
    return WorldPosition(x=x, y=y, z=100.0)


def make_player(player_id: str, column: str = "A", row: int = 5,
                faction: Faction = Faction.US, name: Optional[str] = None) -> Player:
    return Player(id=player_id, name=name or f"player-{player_id}",
                  faction=faction, position=cell_center(column, row))


class FakeConnection:
    """Records commands and serves canned responses"""

    def __init__(self) -> None:
        self.session = Session(map_name="foy_warfare", player_count=10)
        self.players: List[Player] = []
        self.messages: List[tuple] = []
        self.punished: List[tuple] = []
        self.failures: Dict[str, Exception] = {}

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.failures:
            raise self.failures[operation]

    async def fetch_session(self) -> Session:
        self._maybe_fail("fetch_session")
        return self.session

    async def fetch_players(self) -> List[Player]:
        self._maybe_fail("fetch_players")
        return list(self.players)

    async def message_player(self, player: str, message: str) -> None:
        self._maybe_fail("message_player")
        self.messages.append((player, message))

    async def punish_player(self, player_id: str, reason: str) -> None:
        self._maybe_fail("punish_player")
        self.punished.append((player_id, reason))


class FakePool:
    """Pool stand-in that hands out one FakeConnection"""

    def __init__(self, conn: FakeConnection) -> None:
        self.conn = conn
        self.leases = 0
        self.closed = False

    @asynccontextmanager
    async def connection(self):
        self.leases += 1
        yield self.conn

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def conn():
    return FakeConnection()


@pytest.fixture
def pool(conn):
    return FakePool(conn)


@pytest.fixture
def seeding_condition():
    return FenceCondition(less_than={"player_count": 50.0})


@pytest.fixture
def server(seeding_condition):
    return ServerConfig(
        host="127.0.0.1",
        port=7779,
        password="secret",
        name="test-server",
        punish_after_seconds=10,
        warning_message="{player} left the area at {grid}, {seconds}s to return",
        punish_message="{player} punished at {grid}",
        whitelist=["whitelisted"],
        axis_fence=[Fence(Side.AXIS, columns=("I", "J"), condition=seeding_condition)],
        allies_fence=[Fence(Side.ALLIES, columns=("A", "B"), condition=seeding_condition)],
    )


@pytest.fixture
def monitoring():
    return MonitoringConfig(
        session_interval=0.01,
        player_interval=0.01,
        punish_interval=0.01,
        punish_window_seconds=5.0,
        punish_settle_seconds=0.0,
        startup_grace_seconds=0.0,
        restart_grace_seconds=0.1,
    )


@pytest.fixture
def metrics():
    return GeofenceMetrics()


@pytest.fixture
def state():
    return WorkerState()


@pytest.fixture
def restart_signal():
    return RestartSignal()
