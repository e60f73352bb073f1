import asyncio

import pytest

from hll_geofences.utils.helpers import (
    format_duration, render_message, retry_async, validate_port, wait_for_stop
)


def test_render_message_fills_known_placeholders():
    assert render_message("{player} at {grid}", player="Able", grid="E5-5") == "Able at E5-5"


def test_render_message_keeps_unknown_placeholders():
    assert render_message("{player} {unknown}", player="Able") == "Able {unknown}"


def test_render_message_tolerates_stray_braces():
    assert render_message("oops {", player="Able") == "oops {"


def test_format_duration():
    assert format_duration(12.34) == "12.3s"
    assert format_duration(125) == "2m 5s"
    assert format_duration(3725) == "1h 2m 5s"


def test_validate_port():
    assert validate_port(7779)
    assert not validate_port(0)
    assert not validate_port(65536)


@pytest.mark.asyncio
async def test_retry_async_retries_listed_exceptions():
    attempts = []

    @retry_async(max_retries=2, delay=0, exceptions=(ConnectionError,))
    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("not yet")
        return "ok"

    assert await flaky() == "ok"
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_retry_async_gives_up():
    @retry_async(max_retries=1, delay=0, exceptions=(ConnectionError,))
    async def broken():
        raise ConnectionError("down")

    with pytest.raises(ConnectionError):
        await broken()


@pytest.mark.asyncio
async def test_wait_for_stop():
    stop_event = asyncio.Event()
    assert await wait_for_stop(stop_event, 0.01) is False

    stop_event.set()
    assert await wait_for_stop(stop_event, 10) is True


@pytest.mark.parametrize("template", [
    "{player} {foo.bar}",
    "{player.name} left",
    "{player} {foo[key]}",
])
def test_render_message_falls_back_on_field_lookups(template):
    assert render_message(template, player="Able") == template
