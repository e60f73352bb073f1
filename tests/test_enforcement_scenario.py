"""Evaluator and scheduler driven together through a full leave-and-punish episode"""

import pytest

from hll_geofences.game.fence import Fence
from hll_geofences.game.models import Session, Side
from hll_geofences.monitoring.player_evaluator import PlayerEvaluator
from hll_geofences.monitoring.punishment_scheduler import PunishmentScheduler

from conftest import make_player


@pytest.mark.asyncio
async def test_leave_warn_punish_then_window_closes(server, monitoring, pool, conn, state, metrics):
    server.allies_fence = [Fence(Side.ALLIES, columns=("A",), rows=(1, 2, 3, 4))]
    state.session = Session(map_name="M1")
    state.set_fences((), tuple(server.allies_fence))

    evaluator = PlayerEvaluator(server, monitoring, pool, state, metrics)
    scheduler = PunishmentScheduler(server, monitoring, pool, state, metrics)

    await evaluator.evaluate_roster([make_player("P", "A", 2, name="P")])
    assert conn.messages == []

    await evaluator.evaluate_roster([make_player("P", "B", 1, name="P")])
    assert len(conn.messages) == 1
    entry = state.outside_players.load("P")
    t0 = entry.first_outside

    # Repeated ticks while still outside change nothing but the grid
    await evaluator.evaluate_roster([make_player("P", "B", 1, name="P")])
    assert len(conn.messages) == 1
    assert state.outside_players.load("P").first_outside == t0

    assert scheduler.scan_once(now=t0 + 5) == 0
    assert scheduler.scan_once(now=t0 + 12) == 1
    await scheduler.drain()
    assert [p[0] for p in conn.punished] == ["P"]
    assert "P" not in state.outside_players

    assert scheduler.scan_once(now=t0 + 20) == 0
    assert len(conn.punished) == 1
