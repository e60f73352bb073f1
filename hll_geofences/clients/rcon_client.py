#!/usr/bin/env python3
"""
RCON client for Hell Let Loose server management
Speaks the RCON v2 protocol (length-prefixed, XOR-obfuscated JSON over TCP)
"""

import asyncio
import base64
import json
import struct
import time
from typing import Any, Dict, List, Optional

from ..game.models import Player, Session
from ..logging_setup import log_server_event, log_api_call


HEADER = struct.Struct("<II")
PROTOCOL_VERSION = 2
MAX_BODY_SIZE = 16 * 1024 * 1024


class RconError(Exception):
    """Base class for RCON failures"""


class RconConnectionError(RconError):
    """Connect, handshake or transport failure; the connection is unusable"""


class RconCommandError(RconError):
    """Server answered a command with a non-200 status"""

    def __init__(self, command: str, status_code: int, status_message: str = ""):
        self.command = command
        self.status_code = status_code
        self.status_message = status_message
        super().__init__(f"{command} failed with status {status_code}: {status_message}")


class RconConnection:
    """Single authenticated RCON v2 session"""

    def __init__(self, host: str, port: int, password: str, logger, timeout: float = 10.0):
        self.host = host
        self.port = port
        self.password = password
        self.logger = logger
        self.timeout = timeout
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._xor_key = b""
        self._auth_token = ""
        self._request_id = 0

    @property
    def is_connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    async def connect(self) -> None:
        """Open the socket, fetch the XOR key and log in"""
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise RconConnectionError(f"Could not connect to {self.host}:{self.port}: {e}") from e

        self._xor_key = b""
        self._auth_token = ""

        try:
            key = await self.execute("ServerConnect", "")
            self._xor_key = base64.b64decode(key)
        except RconCommandError as e:
            await self.close()
            raise RconConnectionError(f"Handshake rejected by {self.host}:{self.port}: {e.status_message}") from e
        except (ValueError, TypeError) as e:
            await self.close()
            raise RconConnectionError(f"Invalid XOR key from {self.host}:{self.port}") from e

        try:
            self._auth_token = await self.execute("Login", self.password)
        except RconCommandError as e:
            await self.close()
            raise RconConnectionError(f"Login rejected by {self.host}:{self.port}: {e.status_message}") from e

        log_server_event(self.logger, "rcon_connect",
                         "RCON session established",
                         host=self.host, port=self.port)

    async def close(self) -> None:
        if self._writer is None:
            return
        writer, self._writer, self._reader = self._writer, None, None
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        log_server_event(self.logger, "rcon_disconnect",
                         "RCON session closed",
                         host=self.host, port=self.port)

    def _xor(self, data: bytes) -> bytes:
        if not self._xor_key:
            return data
        key = self._xor_key
        return bytes(b ^ key[i % len(key)] for i, b in enumerate(data))

    async def execute(self, command: str, content: Any = "") -> str:
        """
        Send one command and return the response's content body

        Args:
            command: RCON v2 command name
            content: String body, or a mapping sent as a JSON string

        Raises:
            RconConnectionError: Transport failure
            RconCommandError: Non-200 response status
        """
        if self._writer is None or self._reader is None:
            raise RconConnectionError("RCON connection is not open")

        if not isinstance(content, str):
            content = json.dumps(content)

        self._request_id += 1
        request_id = self._request_id
        body = self._xor(json.dumps({
            "authToken": self._auth_token,
            "version": PROTOCOL_VERSION,
            "name": command,
            "contentBody": content,
        }).encode("utf-8"))

        start_time = time.time()
        try:
            self._writer.write(HEADER.pack(request_id, len(body)) + body)
            await asyncio.wait_for(self._writer.drain(), timeout=self.timeout)

            header = await asyncio.wait_for(self._reader.readexactly(HEADER.size), timeout=self.timeout)
            _, length = HEADER.unpack(header)
            if length > MAX_BODY_SIZE:
                raise RconConnectionError(f"Response body too large: {length} bytes")
            payload = await asyncio.wait_for(self._reader.readexactly(length), timeout=self.timeout)
            response = json.loads(self._xor(payload).decode("utf-8"))
        except (OSError, asyncio.IncompleteReadError, asyncio.TimeoutError, ValueError) as e:
            await self.close()
            raise RconConnectionError(f"{command} transport failure: {e}") from e

        duration_ms = (time.time() - start_time) * 1000
        status_code = int(response.get("statusCode", 0) or 0)
        log_api_call(self.logger, command, status_code, duration_ms)

        if status_code != 200:
            raise RconCommandError(command, status_code, response.get("statusMessage", ""))

        return response.get("contentBody", "") or ""

    async def _server_information(self, name: str) -> Dict[str, Any]:
        body = await self.execute("GetServerInformation", {"Name": name, "Value": ""})
        if not body:
            return {}
        try:
            return json.loads(body)
        except ValueError as e:
            raise RconCommandError("GetServerInformation", 200, f"Malformed {name} payload") from e

    # RCON command methods
    async def fetch_session(self) -> Session:
        """Get current match information"""
        return Session.from_dict(await self._server_information("session"))

    async def fetch_players(self) -> List[Player]:
        """Get the full online roster with positions"""
        data = await self._server_information("players")
        return [Player.from_dict(p) for p in data.get("players", []) or []]

    async def message_player(self, player: str, message: str) -> None:
        """Send a private message to a player (name or id)"""
        await self.execute("MessagePlayer", {"Message": message, "PlayerId": player})

    async def punish_player(self, player_id: str, reason: str) -> None:
        """Kill a player with a reason shown to them"""
        await self.execute("PunishPlayer", {"PlayerId": player_id, "Reason": reason})
