"""SSH server hosting the todo sessions.

Connections are accepted on an asyncio loop. Each one is handed to a
paramiko ``Transport`` (which runs its own thread for the SSH protocol),
and once a shell has been requested on a session channel it is served
by one asyncio task running a ``SessionLoop``.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
import os
import socket
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable

import paramiko

from todossh.config.settings import ServerConfig, SessionConfig
from todossh.server.channel import ConnectionHandler, ParamikoChannelTransport
from todossh.session.loop import SessionLoop
from todossh.store.base import CredentialStore, TaskStore
from todossh.utils.logging import bind_session

logger = logging.getLogger(__name__)

LISTEN_BACKLOG = 100


class HostKeyError(Exception):
    """Raised when the host key cannot be generated, read or parsed."""

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(message)
        self.path = path


def generate_host_key(path: Path | str, bits: int = 2048, force: bool = False) -> paramiko.RSAKey:
    """Generate an RSA host key and write it to ``path`` (mode 0600).

    Raises:
        HostKeyError: If the file exists and ``force`` is False, or the
            key cannot be written.
    """
    path = Path(path)
    if path.exists() and not force:
        raise HostKeyError(f"Host key {path} already exists", path=str(path))
    try:
        if path.parent != Path("."):
            path.parent.mkdir(parents=True, exist_ok=True)
        key = paramiko.RSAKey.generate(bits)
        key.write_private_key_file(str(path))
        os.chmod(path, 0o600)
    except (OSError, paramiko.SSHException, ValueError) as e:
        raise HostKeyError(f"Failed to generate host key {path}: {e}", path=str(path)) from e
    logger.info("Generated %d-bit RSA host key at %s", bits, path)
    return key


def load_host_key(path: Path | str, bits: int = 2048) -> paramiko.RSAKey:
    """Load the RSA host key at ``path``, generating it first if missing."""
    path = Path(path)
    if not path.exists():
        logger.info("Host key %s not found, generating a new one", path)
        return generate_host_key(path, bits)
    try:
        key = paramiko.RSAKey(filename=str(path))
    except (OSError, paramiko.SSHException) as e:
        raise HostKeyError(f"Failed to load host key {path}: {e}", path=str(path)) from e
    logger.info("Loaded host key %s (%s)", path, key.fingerprint)
    return key


class TodoSshServer:
    """Accepts SSH connections and runs one session per shell channel.

    Example usage::

        server = TodoSshServer(settings.server, task_store, credential_store)
        await server.start()
        try:
            await server.serve_forever()
        finally:
            await server.stop()
    """

    def __init__(
        self,
        config: ServerConfig,
        task_store: TaskStore,
        credential_store: CredentialStore,
        session_config: SessionConfig | None = None,
        host_key: paramiko.PKey | None = None,
    ) -> None:
        self._config = config
        self._tasks = task_store
        self._credentials = credential_store
        self._session_config = session_config or SessionConfig()
        self._host_key = host_key
        self._executor = ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix="todossh"
        )
        self._sock: socket.socket | None = None
        self._accept_task: asyncio.Task | None = None
        self._sessions: set[asyncio.Task] = set()
        self._transports: set[paramiko.Transport] = set()
        self._closing = False

    @property
    def address(self) -> tuple[str, int] | None:
        """The bound (host, port), or None before ``start``."""
        if self._sock is None:
            return None
        host, port = self._sock.getsockname()[:2]
        return host, port

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    async def start(self) -> None:
        """Load the host key, bind the listener and start accepting."""
        if self._host_key is None:
            self._host_key = await self._run(
                lambda: load_host_key(self._config.host_key_path, self._config.host_key_bits)
            )

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self._config.host, self._config.port))
            sock.listen(LISTEN_BACKLOG)
        except OSError:
            sock.close()
            raise
        sock.setblocking(False)
        self._sock = sock
        self._accept_task = asyncio.create_task(self._accept_loop())
        host, port = self.address
        logger.info("SSH server listening on %s:%d", host, port)

    async def serve_forever(self) -> None:
        if self._accept_task is None:
            raise RuntimeError("Server not started")
        await self._accept_task

    async def stop(self) -> None:
        """Stop accepting, close every connection and wait for the sessions."""
        self._closing = True
        if self._accept_task is not None:
            self._accept_task.cancel()
            await asyncio.gather(self._accept_task, return_exceptions=True)
        if self._sock is not None:
            self._sock.close()

        for transport in list(self._transports):
            transport.close()
        if self._sessions:
            logger.info("Waiting for %d session(s) to finish", len(self._sessions))
            await asyncio.gather(*self._sessions, return_exceptions=True)

        self._executor.shutdown(wait=False)
        logger.info("SSH server stopped")

    async def _accept_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while not self._closing:
            try:
                conn, addr = await loop.sock_accept(self._sock)
            except OSError as e:
                if self._closing:
                    return
                logger.error("Accept failed: %s", e)
                continue
            conn.setblocking(True)
            remote = f"{addr[0]}:{addr[1]}"
            logger.info("Accepted connection from %s", remote)
            task = asyncio.create_task(self._handle_connection(conn, remote))
            self._sessions.add(task)
            task.add_done_callback(self._sessions.discard)

    async def _handle_connection(self, conn: socket.socket, remote: str) -> None:
        bind_session(remote)
        try:
            transport = paramiko.Transport(conn)
        except (OSError, paramiko.SSHException) as e:
            logger.warning("Could not set up SSH transport for %s: %s", remote, e)
            conn.close()
            return

        transport.banner_timeout = self._config.banner_timeout
        transport.auth_timeout = self._config.auth_timeout
        transport.add_server_key(self._host_key)
        handler = ConnectionHandler(self._credentials, remote=remote)
        self._transports.add(transport)
        try:
            try:
                await self._run(lambda: transport.start_server(server=handler))
            except (paramiko.SSHException, EOFError, OSError) as e:
                logger.warning("SSH negotiation with %s failed: %s", remote, e)
                return

            channel = await self._run(
                lambda: transport.accept(self._config.channel_accept_timeout)
            )
            if channel is None:
                logger.warning("No session channel opened by %s", remote)
                return

            shell = await self._run(
                lambda: handler.shell_requested.wait(self._config.shell_request_timeout)
            )
            bind_session(remote, handler.username)
            if not shell:
                logger.warning("No shell requested by %s, closing channel", remote)
                channel.close()
                return

            session_transport = ParamikoChannelTransport(
                channel,
                handler,
                read_poll_interval=self._config.read_poll_interval,
                executor=self._executor,
            )
            session = SessionLoop(
                session_transport,
                handler.username or "",
                self._tasks,
                self._credentials,
                config=self._session_config,
                executor=self._executor,
                registration_pending=handler.registration_pending,
            )
            await session.run()
        finally:
            self._transports.discard(transport)
            transport.close()
            logger.info("Connection from %s closed", remote)

    async def _run(self, fn: Callable[[], Any]) -> Any:
        loop = asyncio.get_running_loop()
        ctx = contextvars.copy_context()
        return await loop.run_in_executor(self._executor, ctx.run, fn)
