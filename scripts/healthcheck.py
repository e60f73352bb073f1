#!/usr/bin/env python3
"""
Health check script for the geofence container
Checks the metrics endpoint and that every configured RCON port accepts connections
"""

import sys
import asyncio
import aiohttp
import time
import json
import os
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, asdict
from enum import Enum

from hll_geofences.config_loader import get_config


class HealthStatus(Enum):
    """Health check status levels"""
    HEALTHY = "healthy"
    WARNING = "warning"
    UNHEALTHY = "unhealthy"


@dataclass
class HealthCheckResult:
    """Health check result data structure"""
    component: str
    status: HealthStatus
    message: str
    details: Dict[str, Any]
    response_time_ms: float


class HealthChecker:
    """Health checker for the geofence manager"""

    def __init__(self, timeout: float = 5.0, url: Optional[str] = None):
        config = get_config()
        self.metrics = config.monitoring.metrics
        self.servers = config.servers
        self.timeout = timeout
        self.url = url
        self.results: List[HealthCheckResult] = []

    async def check_metrics_endpoint(self) -> HealthCheckResult:
        """Query /health on the metrics server"""
        start_time = time.time()
        host = "127.0.0.1" if self.metrics.host in ("0.0.0.0", "") else self.metrics.host
        url = self.url or f"http://{host}:{self.metrics.port}/health"

        if not self.metrics.enabled and not self.url:
            return HealthCheckResult("metrics", HealthStatus.WARNING,
                                     "Metrics endpoint disabled", {"url": url}, 0.0)

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as resp:
                    response_time = (time.time() - start_time) * 1000
                    if resp.status == 200:
                        data = await resp.json()
                        return HealthCheckResult("metrics", HealthStatus.HEALTHY,
                                                 "Metrics endpoint responding", data, response_time)
                    return HealthCheckResult("metrics", HealthStatus.UNHEALTHY,
                                             f"Metrics endpoint returned HTTP {resp.status}",
                                             {"url": url}, response_time)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            return HealthCheckResult("metrics", HealthStatus.UNHEALTHY,
                                     f"Metrics endpoint unreachable: {e}", {"url": url},
                                     (time.time() - start_time) * 1000)

    async def check_rcon_port(self, host: str, port: int) -> HealthCheckResult:
        """Open and close a TCP connection to an RCON port"""
        start_time = time.time()
        component = f"rcon:{host}:{port}"
        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=self.timeout)
            writer.close()
            await writer.wait_closed()
            return HealthCheckResult(component, HealthStatus.HEALTHY, "RCON port reachable",
                                     {}, (time.time() - start_time) * 1000)
        except (OSError, asyncio.TimeoutError) as e:
            return HealthCheckResult(component, HealthStatus.UNHEALTHY,
                                     f"RCON port unreachable: {e}", {},
                                     (time.time() - start_time) * 1000)

    async def run_all_checks(self) -> List[HealthCheckResult]:
        checks = [self.check_metrics_endpoint()]
        checks.extend(self.check_rcon_port(s.host, s.port) for s in self.servers)
        self.results = list(await asyncio.gather(*checks))
        return self.results

    def get_overall_status(self) -> HealthStatus:
        statuses = [r.status for r in self.results]
        if HealthStatus.UNHEALTHY in statuses:
            return HealthStatus.UNHEALTHY
        if HealthStatus.WARNING in statuses:
            return HealthStatus.WARNING
        return HealthStatus.HEALTHY

    def generate_report(self, format_type: str = "text") -> str:
        if format_type == "json":
            return json.dumps({
                "status": self.get_overall_status().value,
                "checks": [dict(asdict(r), status=r.status.value) for r in self.results],
            }, indent=2)

        lines = [f"Overall: {self.get_overall_status().value}"]
        for r in self.results:
            lines.append(f"  {r.component}: {r.status.value} - {r.message} ({r.response_time_ms:.0f}ms)")
        return "\n".join(lines)


async def main():
    """Main health check function"""
    format_json = "--json" in sys.argv
    url = os.getenv("HEALTHCHECK_URL")
    if "--url" in sys.argv:
        index = sys.argv.index("--url")
        if index + 1 < len(sys.argv):
            url = sys.argv[index + 1]

    checker = HealthChecker(url=url)
    await checker.run_all_checks()

    print(checker.generate_report("json" if format_json else "text"))

    if checker.get_overall_status() in (HealthStatus.HEALTHY, HealthStatus.WARNING):
        return 0
    return 1


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except Exception as e:
        print(f"❌ Health check critical failure: {e}")
        sys.exit(1)
