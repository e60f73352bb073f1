#!/usr/bin/env python3
"""
Geofence manager - Main orchestrator
Runs one worker per configured server and restarts the process on request
"""

import argparse
import asyncio
import os
import signal
import subprocess
import sys
from typing import Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .config_loader import GeofenceConfig, get_config
from .logging_setup import get_logger, log_server_event, setup_logging
from .clients import ConnectionPool
from .monitoring import GeofenceWorker, MetricsServer, get_metrics


SHUTDOWN = "shutdown"
WORKERS_EXITED = "workers_exited"


class GeofenceManager:
    """Process-level supervisor multiplexing worker restart requests and OS signals"""

    def __init__(self, config: GeofenceConfig):
        """Initialize manager"""
        self.config = config
        self.logger = get_logger("geofences.manager")
        self.metrics = get_metrics()

        self.pools: List[ConnectionPool] = []
        self.workers: List[GeofenceWorker] = []
        self.metrics_server: Optional[MetricsServer] = None

        self._stop_event = asyncio.Event()
        self._shutdown_requested = asyncio.Event()
        self._worker_tasks: Dict[asyncio.Task, GeofenceWorker] = {}

    async def __aenter__(self):
        """Create pools, workers and the metrics endpoint"""
        for server in self.config.servers:
            try:
                pool = ConnectionPool(server)
            except Exception as e:
                self.logger.error("Failed to create connection pool", server=server.display_name, error=str(e))
                continue
            self.pools.append(pool)
            self.workers.append(GeofenceWorker(server, self.config.monitoring, pool, self.metrics))

        if self.config.monitoring.metrics.enabled:
            self.metrics_server = MetricsServer(self.config.monitoring.metrics, self.metrics)
            await self.metrics_server.start()

        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Cleanup all components"""
        await self.stop_workers()

        for pool in self.pools:
            try:
                await pool.close()
            except Exception as e:
                self.logger.warning("Failed to close connection pool", error=str(e))

        if self.metrics_server:
            await self.metrics_server.stop()

    def request_shutdown(self) -> None:
        """Signal handler target: stop everything at the next opportunity"""
        self._shutdown_requested.set()

    def install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except (NotImplementedError, RuntimeError):
                self.logger.debug("Signal handlers not supported on this platform", signal=sig.name)

    def start_workers(self) -> None:
        for worker in self.workers:
            task = asyncio.create_task(worker.run(self._stop_event), name=f"worker:{worker.host}")
            self._worker_tasks[task] = worker

    async def wait_for_trigger(self) -> str:
        """
        Block until a worker requests a restart, a shutdown is requested, or
        every worker has exited

        Returns:
            ``shutdown``, ``workers_exited`` or the restart reason
        """
        waiters: Dict[asyncio.Task, Optional[GeofenceWorker]] = {
            asyncio.create_task(self._shutdown_requested.wait()): None
        }
        for worker in self.workers:
            waiters[asyncio.create_task(worker.restart_signal.wait())] = worker

        pending_workers = set(self._worker_tasks)
        try:
            while True:
                wait_set = set(waiters) | pending_workers
                done, _ = await asyncio.wait(wait_set, return_when=asyncio.FIRST_COMPLETED)

                for task in done:
                    if task in waiters:
                        worker = waiters[task]
                        if worker is None:
                            log_server_event(self.logger, "shutdown", "Received shutdown signal")
                            return SHUTDOWN
                        reason = task.result()
                        log_server_event(self.logger, "restart_requested",
                                         "Worker requested restart",
                                         server=worker.server.display_name, reason=reason)
                        return reason

                pending_workers -= done
                if not pending_workers:
                    self.logger.error("All workers have exited")
                    return WORKERS_EXITED
        finally:
            for task in waiters:
                task.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)

    async def run(self) -> str:
        """Start workers and wait for the first restart or shutdown trigger"""
        if not self.workers:
            self.logger.error("No workers could be created")
            return WORKERS_EXITED

        self.install_signal_handlers()
        self.start_workers()
        log_server_event(self.logger, "startup", f"Monitoring {len(self.workers)} server(s)")

        return await self.wait_for_trigger()

    async def stop_workers(self) -> None:
        """Fire the cancellation event, allow a short grace period, then cancel stragglers"""
        self._stop_event.set()
        if not self._worker_tasks:
            return

        log_server_event(self.logger, "shutdown", "Initiating graceful shutdown")
        tasks = list(self._worker_tasks)
        _, pending = await asyncio.wait(tasks, timeout=self.config.monitoring.restart_grace_seconds)
        for task in pending:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._worker_tasks.clear()


def restart_application() -> None:
    """Start a fresh copy of this process with the same interpreter and arguments"""
    args = getattr(sys, "orig_argv", None) or [sys.executable, *sys.argv]
    subprocess.Popen([sys.executable, *args[1:]], env=os.environ.copy())


def should_restart(reason: str, config: GeofenceConfig) -> bool:
    if reason == WORKERS_EXITED:
        return False
    if reason == SHUTDOWN:
        return config.monitoring.restart_on_shutdown
    return True


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="hll-geofences",
        description="Enforce per-team map fences on Hell Let Loose servers over RCON"
    )
    parser.add_argument("--config", help="Path to the YAML configuration (default: $CONFIG_PATH or config/default.yaml)")
    parser.add_argument("--log-level", help="Override the configured log level")
    parser.add_argument("--no-restart", action="store_true",
                        help="Exit instead of restarting when a restart is requested")
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = parse_args(argv)

    if not load_dotenv():
        print("ℹ️ No .env file loaded")

    try:
        config = get_config(args.config)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        print(f"❌ Configuration load failed: {e}")
        return 1

    setup_logging(
        log_level=args.log_level or config.logging.level,
        log_dir=config.logging.log_dir,
        enable_console=True,
        enable_file=config.logging.enable_file,
        enable_json=config.logging.format_style == "json",
        log_format_style=config.logging.format_style,
    )
    logger = get_logger("geofences.main")
    log_server_event(logger, "config_load", "Configuration loaded",
                     servers=[s.display_name for s in config.servers])

    async with GeofenceManager(config) as manager:
        reason = await manager.run()

    if reason == WORKERS_EXITED:
        return 1

    if args.no_restart or not should_restart(reason, config):
        log_server_event(logger, "shutdown", "Geofence manager stopped", reason=reason)
        return 0

    log_server_event(logger, "restart_requested", "Restarting application", reason=reason)
    try:
        restart_application()
    except OSError as e:
        logger.error("Failed to restart application", error=str(e))
        return 1
    return 0


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
