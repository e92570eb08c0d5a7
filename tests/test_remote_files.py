"""FTP and SFTP file access against servers on localhost."""

import asyncio

import aioftp
import asyncssh
import pytest

from whitelist_bot.adapters import FtpFileAccess, SftpFileAccess
from whitelist_bot.errors import TransportError


async def start_ftp(root):
    server = aioftp.Server(
        [aioftp.User("mc", "secret", base_path=root, home_path="/")],
        path_io_factory=aioftp.PathIO,
    )
    await server.start("127.0.0.1", 0)
    return server, server.server.sockets[0].getsockname()[1]


def test_ftp_round_trip(tmp_path):
    (tmp_path / "srv").mkdir()
    (tmp_path / "srv" / "whitelist.json").write_bytes(b"[]")

    async def scenario():
        server, port = await start_ftp(tmp_path)
        files = FtpFileAccess("127.0.0.1", "/srv", "mc", "secret", port=port)
        try:
            before = await files.read_file("whitelist.json")
            await files.write_file("whitelist.json", b'[{"uuid": "x"}]')
            return before
        finally:
            await server.close()

    assert asyncio.run(scenario()) == b"[]"
    assert (tmp_path / "srv" / "whitelist.json").read_bytes() == b'[{"uuid": "x"}]'


def test_ftp_failures_become_transport_errors(tmp_path):
    (tmp_path / "srv").mkdir()

    async def scenario():
        server, port = await start_ftp(tmp_path)
        try:
            files = FtpFileAccess("127.0.0.1", "/srv", "mc", "secret", port=port)
            with pytest.raises(TransportError):
                await files.read_file("whitelist.json")
            with pytest.raises(TransportError):
                await files.read_file("../whitelist.json")

            wrong = FtpFileAccess("127.0.0.1", "/srv", "mc", "nope", port=port)
            with pytest.raises(TransportError):
                await wrong.read_file("whitelist.json")
        finally:
            await server.close()

    asyncio.run(scenario())


class PasswordServer(asyncssh.SSHServer):
    def begin_auth(self, username):
        return True

    def password_auth_supported(self):
        return True

    def validate_password(self, username, password):
        return username == "mc" and password == "secret"


async def start_sftp(root):
    class RootedSFTPServer(asyncssh.SFTPServer):
        def __init__(self, chan):
            super().__init__(chan, chroot=str(root))

    acceptor = await asyncssh.listen(
        "127.0.0.1",
        0,
        server_host_keys=[asyncssh.generate_private_key("ssh-ed25519")],
        server_factory=PasswordServer,
        sftp_factory=RootedSFTPServer,
    )
    return acceptor, acceptor.get_port()


def test_sftp_round_trip(tmp_path):
    (tmp_path / "srv").mkdir()
    (tmp_path / "srv" / "whitelist.json").write_bytes(b"[]")

    async def scenario():
        acceptor, port = await start_sftp(tmp_path)
        files = SftpFileAccess("127.0.0.1", "/srv", "mc", port=port, password="secret")
        try:
            before = await files.read_file("whitelist.json")
            await files.write_file("whitelist.json", b'[{"uuid": "x"}]')
            return before
        finally:
            acceptor.close()
            await acceptor.wait_closed()

    assert asyncio.run(scenario()) == b"[]"
    assert (tmp_path / "srv" / "whitelist.json").read_bytes() == b'[{"uuid": "x"}]'


def test_sftp_failures_become_transport_errors(tmp_path):
    (tmp_path / "srv").mkdir()

    async def scenario():
        acceptor, port = await start_sftp(tmp_path)
        try:
            files = SftpFileAccess(
                "127.0.0.1", "/srv", "mc", port=port, password="secret"
            )
            with pytest.raises(TransportError):
                await files.read_file("whitelist.json")
            with pytest.raises(TransportError):
                await files.write_file("../../etc/whitelist.json", b"[]")

            wrong = SftpFileAccess("127.0.0.1", "/srv", "mc", port=port, password="nope")
            with pytest.raises(TransportError):
                await wrong.read_file("whitelist.json")
        finally:
            acceptor.close()
            await acceptor.wait_closed()

    asyncio.run(scenario())
