"""Tests for host key handling and the SSH server end to end."""

from __future__ import annotations

import asyncio
import stat

import paramiko
import pytest
import pytest_asyncio

from todossh.config.settings import ServerConfig, SessionConfig
from todossh.server.ssh import HostKeyError, TodoSshServer, generate_host_key, load_host_key
from todossh.store.credentials import JsonCredentialStore
from todossh.store.tasks import JsonTaskStore

KEY_BITS = 1024


class TestHostKey:
    def test_generate_writes_private_file(self, tmp_path) -> None:
        path = tmp_path / "keys" / "host_rsa"
        key = generate_host_key(path, KEY_BITS)
        assert path.exists()
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert paramiko.RSAKey(filename=str(path)).get_fingerprint() == key.get_fingerprint()

    def test_generate_refuses_to_overwrite(self, tmp_path) -> None:
        path = tmp_path / "host_rsa"
        generate_host_key(path, KEY_BITS)
        with pytest.raises(HostKeyError, match="already exists"):
            generate_host_key(path, KEY_BITS)

    def test_generate_force_overwrites(self, tmp_path) -> None:
        path = tmp_path / "host_rsa"
        first = generate_host_key(path, KEY_BITS)
        second = generate_host_key(path, KEY_BITS, force=True)
        assert first.get_fingerprint() != second.get_fingerprint()

    def test_load_generates_missing_key(self, tmp_path) -> None:
        path = tmp_path / "host_rsa"
        key = load_host_key(path, KEY_BITS)
        assert path.exists()
        assert load_host_key(path).get_fingerprint() == key.get_fingerprint()

    def test_load_garbage_raises(self, tmp_path) -> None:
        path = tmp_path / "host_rsa"
        path.write_text("not a key")
        with pytest.raises(HostKeyError, match="Failed to load"):
            load_host_key(path)


# ---------------------------------------------------------------------------
# End to end: a real paramiko client against the server
# ---------------------------------------------------------------------------


def _client_session(port: int, username: str, password: str, keys: list[bytes]) -> tuple[int, bytes]:
    """Run a shell session from a paramiko client; returns (exit status, output)."""
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    client.connect(
        "127.0.0.1",
        port=port,
        username=username,
        password=password,
        look_for_keys=False,
        allow_agent=False,
        timeout=10,
    )
    try:
        chan = client.invoke_shell(width=60, height=20)
        chan.settimeout(10)
        for chunk in keys:
            chan.sendall(chunk)
        output = []
        while True:
            data = chan.recv(4096)
            if not data:
                break
            output.append(data)
        return chan.recv_exit_status(), b"".join(output)
    finally:
        client.close()


@pytest_asyncio.fixture
async def server(tmp_path):
    config = ServerConfig(
        host="127.0.0.1",
        port=0,
        channel_accept_timeout=5,
        shell_request_timeout=5,
        read_poll_interval=0.1,
        max_workers=16,
    )
    credentials = JsonCredentialStore(tmp_path)
    credentials.register("alice", "s3cret!")
    srv = TodoSshServer(
        config,
        JsonTaskStore(tmp_path),
        credentials,
        session_config=SessionConfig(),
        host_key=paramiko.RSAKey.generate(KEY_BITS),
    )
    await srv.start()
    yield srv
    await srv.stop()


class TestServer:
    @pytest.mark.asyncio
    async def test_session_over_ssh(self, server: TodoSshServer, tmp_path) -> None:
        _, port = server.address
        loop = asyncio.get_running_loop()
        status, output = await asyncio.wait_for(
            loop.run_in_executor(
                None,
                lambda: _client_session(port, "alice", "s3cret!", [b"\t", b"buy milk", b"\r", b"\x03"]),
            ),
            timeout=30,
        )
        assert status == 0
        assert output.startswith(b"\x1b[?1049h\x1b[?7l")
        assert "[ ] 1. buy milk".encode() in output
        assert ("─" * 60).encode() in output
        assert output.endswith(b"Goodbye!\r\n")
        assert [t.text for t in JsonTaskStore(tmp_path).list("alice")] == ["buy milk"]

    @pytest.mark.asyncio
    async def test_wrong_password_rejected(self, server: TodoSshServer) -> None:
        _, port = server.address
        loop = asyncio.get_running_loop()
        with pytest.raises(paramiko.AuthenticationException):
            await asyncio.wait_for(
                loop.run_in_executor(
                    None, lambda: _client_session(port, "alice", "wrong", [b"\x03"])
                ),
                timeout=30,
            )

    @pytest.mark.asyncio
    async def test_new_user_registers(self, server: TodoSshServer, tmp_path) -> None:
        _, port = server.address
        loop = asyncio.get_running_loop()
        status, output = await asyncio.wait_for(
            loop.run_in_executor(
                None,
                lambda: _client_session(port, "carol", "ignored", [b"hunter22\r", b"hunter22\r", b"\x03"]),
            ),
            timeout=30,
        )
        assert status == 0
        assert b"Choose a password: " in output
        assert b"hunter22" not in output
        assert JsonCredentialStore(tmp_path).authenticate("carol", "hunter22")

    @pytest.mark.asyncio
    async def test_stop_before_start_is_safe(self, tmp_path) -> None:
        srv = TodoSshServer(
            ServerConfig(host="127.0.0.1", port=0),
            JsonTaskStore(tmp_path),
            JsonCredentialStore(tmp_path),
            host_key=paramiko.RSAKey.generate(KEY_BITS),
        )
        assert srv.address is None
        await srv.stop()
