#!/usr/bin/env python3
"""
RCON connection pool
Leases one shared RCON session per server and serializes every call through it
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

from ..config_loader import ServerConfig
from ..logging_setup import get_logger
from ..utils.helpers import retry_async
from .rcon_client import RconConnection, RconConnectionError


T = TypeVar('T')


class ConnectionPool:
    """
    Lazily connected, lock-guarded RCON session for one server

    Callers hold the lease for a single logical operation only; a transport
    failure discards the session so the next lease reconnects.
    """

    def __init__(self, server: ServerConfig, timeout: float = 10.0,
                 connect_retries: int = 2, connect_retry_delay: float = 1.0):
        self.server = server
        self.logger = get_logger("geofences.clients.pool").bind(server=server.display_name)
        self._timeout = timeout
        self._lock = asyncio.Lock()
        self._connection: Optional[RconConnection] = None
        self._closed = False
        self._connect = retry_async(
            max_retries=connect_retries,
            delay=connect_retry_delay,
            exceptions=(RconConnectionError,)
        )(self._open_connection)

    def _create_connection(self) -> RconConnection:
        return RconConnection(
            self.server.host,
            self.server.port,
            self.server.password,
            self.logger,
            timeout=self._timeout
        )

    async def _open_connection(self) -> RconConnection:
        connection = self._create_connection()
        await connection.connect()
        return connection

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[RconConnection]:
        """Lease the server's RCON session for the duration of the block"""
        async with self._lock:
            if self._closed:
                raise RconConnectionError("Connection pool is closed")

            if self._connection is None or not self._connection.is_connected:
                self._connection = await self._connect()

            try:
                yield self._connection
            except RconConnectionError:
                await self._discard()
                raise

    async def with_connection(self, fn: Callable[[RconConnection], Awaitable[T]]) -> T:
        """Run ``fn`` with a leased session and return its result"""
        async with self.connection() as conn:
            return await fn(conn)

    async def _discard(self) -> None:
        if self._connection is not None:
            connection, self._connection = self._connection, None
            await connection.close()

    async def close(self) -> None:
        """Close the pooled session; further leases fail"""
        async with self._lock:
            self._closed = True
            await self._discard()
