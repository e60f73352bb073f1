import asyncio
import sys

import pytest

from hll_geofences import config_loader, geofence_manager
from hll_geofences.clients.rcon_client import RconConnectionError
from hll_geofences.config_loader import GeofenceConfig
from hll_geofences.game.models import Session
from hll_geofences.geofence_manager import (
    SHUTDOWN, WORKERS_EXITED, GeofenceManager, main, restart_application, should_restart
)
from hll_geofences.monitoring.geofence_worker import GeofenceWorker


@pytest.fixture
def config(server, monitoring):
    return GeofenceConfig(monitoring=monitoring, servers=[server])


@pytest.fixture
def worker(server, monitoring, pool, metrics):
    return GeofenceWorker(server, monitoring, pool, metrics)


@pytest.mark.asyncio
async def test_worker_returns_false_when_initial_fetch_fails(worker, conn):
    conn.failures["fetch_session"] = RconConnectionError("refused")

    assert await worker.run(asyncio.Event()) is False
    assert not worker.is_monitoring_active()
    assert worker.state.session is None


@pytest.mark.asyncio
async def test_worker_runs_until_stopped(worker):
    stop_event = asyncio.Event()
    task = asyncio.create_task(worker.run(stop_event))
    await asyncio.sleep(0.05)

    assert worker.is_monitoring_active()
    status = worker.get_monitoring_status()
    assert status["map"] == "foy_warfare"
    assert status["has_fences"] is True
    assert status["restart_pending"] is False

    stop_event.set()
    assert await asyncio.wait_for(task, timeout=1) is True
    assert not worker.is_monitoring_active()


@pytest.mark.asyncio
async def test_map_change_triggers_restart(config, worker, conn):
    manager = GeofenceManager(config)
    manager.workers = [worker]
    manager.start_workers()
    try:
        await asyncio.sleep(0.05)
        conn.session = Session(map_name="carentan_warfare", player_count=10)

        reason = await asyncio.wait_for(manager.wait_for_trigger(), timeout=2)
    finally:
        await manager.stop_workers()

    assert reason == "map_change"


@pytest.mark.asyncio
async def test_shutdown_request_wins(config, worker):
    manager = GeofenceManager(config)
    manager.workers = [worker]
    manager.start_workers()
    manager.request_shutdown()
    try:
        reason = await asyncio.wait_for(manager.wait_for_trigger(), timeout=2)
    finally:
        await manager.stop_workers()

    assert reason == SHUTDOWN


@pytest.mark.asyncio
async def test_all_workers_exiting_is_reported(config, worker, conn):
    conn.failures["fetch_session"] = RconConnectionError("refused")
    manager = GeofenceManager(config)
    manager.workers = [worker]
    manager.start_workers()
    try:
        reason = await asyncio.wait_for(manager.wait_for_trigger(), timeout=2)
    finally:
        await manager.stop_workers()

    assert reason == WORKERS_EXITED


@pytest.mark.asyncio
async def test_context_manager_builds_and_closes_pools(config):
    async with GeofenceManager(config) as manager:
        assert len(manager.workers) == 1
        assert len(manager.pools) == 1
        assert manager.metrics_server is None
        pool = manager.pools[0]

    with pytest.raises(RconConnectionError):
        async with pool.connection():
            pass


def test_should_restart(config):
    assert should_restart("map_change", config)
    assert should_restart("idle", config)
    assert should_restart(SHUTDOWN, config)
    assert not should_restart(WORKERS_EXITED, config)

    config.monitoring.restart_on_shutdown = False
    assert not should_restart(SHUTDOWN, config)


def test_restart_application_spawns_same_interpreter(monkeypatch):
    calls = []
    monkeypatch.setattr(geofence_manager.subprocess, "Popen", lambda args, env=None: calls.append(args))
    monkeypatch.setattr(sys, "orig_argv", ["python", "-m", "hll_geofences.geofence_manager", "--config", "x.yaml"],
                        raising=False)

    restart_application()

    assert calls == [[sys.executable, "-m", "hll_geofences.geofence_manager", "--config", "x.yaml"]]


@pytest.mark.asyncio
async def test_main_fails_on_missing_config(tmp_path, monkeypatch):
    monkeypatch.setattr(config_loader, "_config_instance", None)
    monkeypatch.setattr(geofence_manager, "load_dotenv", lambda: False)

    assert await main(["--config", str(tmp_path / "missing.yaml")]) == 1
