"""Tests for the file and command transports."""

import asyncio
import os
import struct
import time

import pytest

from whitelist_bot.adapters import LocalFileAccess, PipeCommandChannel, RconCommandChannel, RconPool
from whitelist_bot.adapters.base import resolve_beneath
from whitelist_bot.errors import CommandTimeout, TransportError


def test_resolve_beneath():
    assert resolve_beneath("/srv/mc", "whitelist.json") == "/srv/mc/whitelist.json"
    assert resolve_beneath("srv/mc/", "/whitelist.json") == "/srv/mc/whitelist.json"
    assert resolve_beneath("", "whitelist.json") == "/whitelist.json"
    with pytest.raises(TransportError):
        resolve_beneath("/srv/mc", "../etc/passwd")
    with pytest.raises(TransportError):
        resolve_beneath("/srv/mc", "../mc2/whitelist.json")


def test_local_file_access_round_trip(tmp_path):
    files = LocalFileAccess(str(tmp_path))
    asyncio.run(files.write_file("whitelist.json", b"[]"))
    assert (tmp_path / "whitelist.json").read_bytes() == b"[]"
    assert asyncio.run(files.read_file("whitelist.json")) == b"[]"


def test_local_file_access_errors(tmp_path):
    files = LocalFileAccess(str(tmp_path / "server"))
    with pytest.raises(TransportError):
        asyncio.run(files.read_file("whitelist.json"))
    with pytest.raises(TransportError):
        asyncio.run(files.read_file("../outside.json"))


def test_pipe_appends_one_line_per_command(tmp_path):
    pipe = tmp_path / "console"
    pipe.write_text("say hi\n")
    channel = PipeCommandChannel(str(pipe))

    assert asyncio.run(channel.run_commands("kick Steve", "whitelist reload")) == []
    assert pipe.read_text() == "say hi\nkick Steve\nwhitelist reload\n"


needs_fifo = pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="needs named pipes")


@needs_fifo
def test_pipe_without_reader_times_out_and_leaves_nothing_behind(tmp_path):
    fifo = tmp_path / "console"
    os.mkfifo(fifo)
    channel = PipeCommandChannel(str(fifo), timeout=0.1)

    async def scenario():
        for command in ("first", "second"):
            with pytest.raises(CommandTimeout):
                await channel.run_commands(command)
        # Other blocking work still gets a worker thread.
        await asyncio.wait_for(asyncio.to_thread(time.sleep, 0), 1)

        reader = os.open(fifo, os.O_RDONLY | os.O_NONBLOCK)
        try:
            await channel.run_commands("third", "whitelist reload")
            return os.read(reader, 1024)
        finally:
            os.close(reader)

    assert asyncio.run(scenario()) == b"third\nwhitelist reload\n"


@needs_fifo
def test_pipe_waits_for_a_late_reader(tmp_path):
    fifo = tmp_path / "console"
    os.mkfifo(fifo)
    channel = PipeCommandChannel(str(fifo), timeout=2.0)
    readers: list[int] = []

    def attach():
        readers.append(os.open(fifo, os.O_RDONLY | os.O_NONBLOCK))

    async def scenario():
        asyncio.get_running_loop().call_later(0.1, attach)
        await channel.run_commands("whitelist reload")
        try:
            return os.read(readers[0], 1024)
        finally:
            os.close(readers[0])

    assert asyncio.run(scenario()) == b"whitelist reload\n"


def test_pipe_without_directory_fails(tmp_path):
    channel = PipeCommandChannel(str(tmp_path / "missing" / "console"))
    with pytest.raises(TransportError):
        asyncio.run(channel.run_commands("whitelist reload"))


class FakeRcon:
    def __init__(self, fail_on: str | None = None):
        self.commands: list[str] = []
        self.closed = False
        self.fail_on = fail_on

    def command(self, command: str) -> str:
        if command == self.fail_on:
            raise ConnectionResetError("gone")
        time.sleep(0.01)
        self.commands.append(command)
        return f"ran {command}"

    def disconnect(self) -> None:
        self.closed = True


class Connector:
    def __init__(self, **kwargs):
        self.opened: list[FakeRcon] = []
        self.kwargs = kwargs

    async def __call__(self, host, port, password, timeout):
        connection = FakeRcon(**self.kwargs)
        self.opened.append(connection)
        return connection


def test_rcon_reuses_connection_and_returns_results_in_order():
    connector = Connector()

    async def scenario():
        pool = RconPool(idle_timeout=1.0, connector=connector)
        channel = RconCommandChannel("mc", "pw", pool=pool)
        first = await channel.run_commands("list", "whitelist reload")
        second = await channel.run_commands("op Steve")
        await pool.close()
        return first, second

    first, second = asyncio.run(scenario())
    assert first == ["ran list", "ran whitelist reload"]
    assert second == ["ran op Steve"]
    assert len(connector.opened) == 1
    assert connector.opened[0].closed


def test_rcon_closes_idle_connection_and_reconnects():
    connector = Connector()

    async def scenario():
        pool = RconPool(idle_timeout=0.05, connector=connector)
        channel = RconCommandChannel("mc", "pw", port=25576, pool=pool)
        await channel.run_commands("list")
        assert pool.is_connected("mc", 25576)
        await asyncio.sleep(0.2)
        assert not pool.is_connected("mc", 25576)
        await channel.run_commands("list")
        await pool.close()

    asyncio.run(scenario())
    assert len(connector.opened) == 2
    assert connector.opened[0].closed


def test_rcon_serialises_batches_for_the_same_host():
    connector = Connector()

    async def scenario():
        pool = RconPool(idle_timeout=1.0, connector=connector)
        a = RconCommandChannel("mc", "pw", pool=pool)
        b = RconCommandChannel("mc", "pw", pool=pool)
        await asyncio.gather(
            a.run_commands("a1", "a2", "a3"), b.run_commands("b1", "b2", "b3")
        )
        await pool.close()

    asyncio.run(scenario())
    commands = connector.opened[0].commands
    assert len(connector.opened) == 1
    # Batches never interleave.
    assert commands in (
        ["a1", "a2", "a3", "b1", "b2", "b3"],
        ["b1", "b2", "b3", "a1", "a2", "a3"],
    )


def test_rcon_failure_evicts_connection():
    connector = Connector(fail_on="kick Steve")

    async def scenario():
        pool = RconPool(idle_timeout=1.0, connector=connector)
        channel = RconCommandChannel("mc", "pw", pool=pool)
        with pytest.raises(TransportError):
            await channel.run_commands("deop Steve", "kick Steve")
        assert not pool.is_connected("mc", 25575)
        await channel.run_commands("whitelist reload")
        await pool.close()

    asyncio.run(scenario())
    assert len(connector.opened) == 2
    assert connector.opened[0].closed
    assert connector.opened[1].commands == ["whitelist reload"]


def rcon_packet(request_id: int, kind: int, payload: str) -> bytes:
    body = struct.pack("<ii", request_id, kind) + payload.encode("utf-8") + b"\x00\x00"
    return struct.pack("<i", len(body)) + body


async def answering_console(reader, writer):
    """Accept any password and echo every command back."""
    try:
        while True:
            (length,) = struct.unpack("<i", await reader.readexactly(4))
            body = await reader.readexactly(length)
            request_id, kind = struct.unpack("<ii", body[:8])
            if kind == 3:
                writer.write(rcon_packet(request_id, 2, ""))
            else:
                writer.write(rcon_packet(request_id, 0, f"ran {body[8:-2].decode()}"))
            await writer.drain()
    except (asyncio.IncompleteReadError, ConnectionError):
        pass
    finally:
        writer.close()


async def silent_console(reader, writer):
    """Accept the connection and never answer, like a frozen server."""
    await reader.read()
    writer.close()


def test_rcon_over_a_socket():
    async def scenario():
        server = await asyncio.start_server(answering_console, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        pool = RconPool(command_timeout=2.0)
        channel = RconCommandChannel("127.0.0.1", "pw", port=port, pool=pool)
        try:
            return await channel.run_commands("list", "whitelist reload")
        finally:
            await pool.close()
            server.close()
            await server.wait_closed()

    assert asyncio.run(scenario()) == ["ran list", "ran whitelist reload"]


def test_rcon_gives_up_on_a_silent_server():
    async def scenario():
        server = await asyncio.start_server(silent_console, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        pool = RconPool(command_timeout=0.2)
        channel = RconCommandChannel("127.0.0.1", "pw", port=port, pool=pool)
        try:
            with pytest.raises(CommandTimeout):
                await asyncio.wait_for(channel.run_commands("whitelist reload"), 2)
            assert not pool.is_connected("127.0.0.1", port)
        finally:
            await pool.close()
            server.close()
            await server.wait_closed()

    asyncio.run(scenario())
