import asyncio
import base64
import json

import pytest
import pytest_asyncio
import structlog

from hll_geofences.clients.connection_pool import ConnectionPool
from hll_geofences.clients.rcon_client import (
    HEADER, RconCommandError, RconConnection, RconConnectionError
)
from hll_geofences.config_loader import ServerConfig
from hll_geofences.game.models import Faction, Side


XOR_KEY = b"\x13\x37\x42"
PASSWORD = "hunter2"
TOKEN = "token-123"


class FakeRconServer:
    """Minimal RCON v2 endpoint: ServerConnect, Login and a few commands"""

    def __init__(self):
        self.server = None
        self.port = None
        self.commands = []
        self.connections = 0

    @staticmethod
    def _xor(data: bytes, key: bytes) -> bytes:
        if not key:
            return data
        return bytes(b ^ key[i % len(key)] for i, b in enumerate(data))

    async def start(self):
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self.server.sockets[0].getsockname()[1]

    async def stop(self):
        self.server.close()
        await self.server.wait_closed()

    async def _handle(self, reader, writer):
        self.connections += 1
        key = b""
        try:
            while True:
                header = await reader.readexactly(HEADER.size)
                request_id, length = HEADER.unpack(header)
                request = json.loads(self._xor(await reader.readexactly(length), key))
                self.commands.append((request["name"], request["contentBody"], request["authToken"]))

                status, body = self._respond(request)
                payload = self._xor(json.dumps({
                    "requestId": request_id,
                    "statusCode": status,
                    "statusMessage": "OK" if status == 200 else "Rejected",
                    "version": 2,
                    "name": request["name"],
                    "contentBody": body,
                }).encode("utf-8"), key)
                writer.write(HEADER.pack(request_id, len(payload)) + payload)
                await writer.drain()

                if request["name"] == "ServerConnect":
                    key = XOR_KEY
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            writer.close()

    def _respond(self, request):
        name = request["name"]
        if name == "ServerConnect":
            return 200, base64.b64encode(XOR_KEY).decode()
        if name == "Login":
            return (200, TOKEN) if request["contentBody"] == PASSWORD else (401, "")
        if request["authToken"] != TOKEN:
            return 401, ""
        if name == "GetServerInformation":
            query = json.loads(request["contentBody"])["Name"]
            if query == "session":
                return 200, json.dumps({"mapName": "Foy", "playerCount": 12, "maxPlayerCount": 100})
            if query == "players":
                return 200, json.dumps({"players": [{
                    "iD": "76561198000000001",
                    "name": "Able",
                    "team": 0,
                    "worldPosition": {"x": 100.0, "y": 200.0, "z": 10.0},
                }]})
        if name in ("MessagePlayer", "PunishPlayer"):
            return 200, ""
        return 400, ""


@pytest_asyncio.fixture
async def rcon_server():
    server = FakeRconServer()
    await server.start()
    yield server
    await server.stop()


def connection_for(server: FakeRconServer, password: str = PASSWORD) -> RconConnection:
    return RconConnection("127.0.0.1", server.port, password, structlog.get_logger("test"), timeout=2.0)


@pytest.mark.asyncio
async def test_connect_and_fetch_session(rcon_server):
    conn = connection_for(rcon_server)
    await conn.connect()
    try:
        assert conn.is_connected
        session = await conn.fetch_session()
    finally:
        await conn.close()

    assert session.map_name == "Foy"
    assert session.player_count == 12
    assert [c[0] for c in rcon_server.commands] == ["ServerConnect", "Login", "GetServerInformation"]
    assert rcon_server.commands[-1][2] == TOKEN
    assert not conn.is_connected


@pytest.mark.asyncio
async def test_fetch_players(rcon_server):
    conn = connection_for(rcon_server)
    await conn.connect()
    try:
        players = await conn.fetch_players()
    finally:
        await conn.close()

    assert len(players) == 1
    assert players[0].name == "Able"
    assert players[0].faction is Faction.GER
    assert players[0].side is Side.AXIS


@pytest.mark.asyncio
async def test_message_and_punish_payloads(rcon_server):
    conn = connection_for(rcon_server)
    await conn.connect()
    try:
        await conn.message_player("Able", "Go back")
        await conn.punish_player("76561198000000001", "Left the area")
    finally:
        await conn.close()

    message, punish = rcon_server.commands[-2:]
    assert message[0] == "MessagePlayer"
    assert json.loads(message[1]) == {"Message": "Go back", "PlayerId": "Able"}
    assert punish[0] == "PunishPlayer"
    assert json.loads(punish[1]) == {"PlayerId": "76561198000000001", "Reason": "Left the area"}


@pytest.mark.asyncio
async def test_unknown_command_raises_command_error(rcon_server):
    conn = connection_for(rcon_server)
    await conn.connect()
    try:
        with pytest.raises(RconCommandError) as excinfo:
            await conn.execute("NoSuchCommand", "")
        assert excinfo.value.status_code == 400
        assert conn.is_connected
    finally:
        await conn.close()


@pytest.mark.asyncio
async def test_wrong_password_is_a_connection_error(rcon_server):
    conn = connection_for(rcon_server, password="wrong")
    with pytest.raises(RconConnectionError):
        await conn.connect()
    assert not conn.is_connected


@pytest.mark.asyncio
async def test_unreachable_server_is_a_connection_error(rcon_server):
    port = rcon_server.port
    await rcon_server.stop()

    conn = RconConnection("127.0.0.1", port, PASSWORD, structlog.get_logger("test"), timeout=1.0)
    with pytest.raises(RconConnectionError):
        await conn.connect()


@pytest.mark.asyncio
async def test_execute_without_connect_fails():
    conn = RconConnection("127.0.0.1", 1, PASSWORD, structlog.get_logger("test"))
    with pytest.raises(RconConnectionError):
        await conn.execute("GetServerInformation", {"Name": "session", "Value": ""})


@pytest.mark.asyncio
async def test_pool_reuses_one_session(rcon_server):
    pool = ConnectionPool(ServerConfig(host="127.0.0.1", port=rcon_server.port, password=PASSWORD),
                          timeout=2.0, connect_retries=0)
    try:
        async with pool.connection() as conn:
            await conn.fetch_session()
        players = await pool.with_connection(lambda c: c.fetch_players())
    finally:
        await pool.close()

    assert len(players) == 1
    assert rcon_server.connections == 1


@pytest.mark.asyncio
async def test_pool_reconnects_after_transport_failure(rcon_server):
    pool = ConnectionPool(ServerConfig(host="127.0.0.1", port=rcon_server.port, password=PASSWORD),
                          timeout=2.0, connect_retries=0)
    try:
        with pytest.raises(RconConnectionError):
            async with pool.connection():
                raise RconConnectionError("simulated reset")

        async with pool.connection() as conn:
            await conn.fetch_session()
    finally:
        await pool.close()

    assert rcon_server.connections == 2


@pytest.mark.asyncio
async def test_closed_pool_refuses_leases(rcon_server):
    pool = ConnectionPool(ServerConfig(host="127.0.0.1", port=rcon_server.port, password=PASSWORD),
                          connect_retries=0)
    await pool.close()

    with pytest.raises(RconConnectionError):
        async with pool.connection():
            pass
