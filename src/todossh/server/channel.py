"""paramiko glue for one connection.

``ConnectionHandler`` is the paramiko ``ServerInterface``: it decides
authentication and answers the control requests of the session channel
from paramiko's transport thread. ``ParamikoChannelTransport`` adapts the
accepted channel to the ``ChannelTransport`` interface used by the
session loop.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import threading
from concurrent.futures import Executor
from typing import Any, Callable

import paramiko

from todossh.domain.models import Viewport
from todossh.session.transport import ChannelTransport, ResizeListener, TransportError
from todossh.store.base import CredentialStore, StoreError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024


class ConnectionHandler(paramiko.ServerInterface):
    """Per-connection ServerInterface.

    Password authentication only. A username the credential store does
    not know is let in so the session can register it; a known username
    must present the right password.

    The terminal size is written from paramiko's thread and read once
    by the session loop, so it is kept under a lock. Later changes are
    forwarded to the attached listener.
    """

    def __init__(self, credential_store: CredentialStore, remote: str = "") -> None:
        self._credentials = credential_store
        self._remote = remote
        self._lock = threading.Lock()
        self._viewport: Viewport | None = None
        self._listener: ResizeListener | None = None
        self.username: str | None = None
        # True when the user was let in without a password to register.
        self.registration_pending = False
        self.term: str = ""
        self.shell_requested = threading.Event()

    # -- authentication -------------------------------------------------

    def get_allowed_auths(self, username: str) -> str:
        return "password"

    def check_auth_password(self, username: str, password: str) -> int:
        try:
            record = self._credentials.lookup(username)
            if record is None:
                logger.info("Unknown user %s from %s, registration pending", username, self._remote)
                self.username = username
                self.registration_pending = True
                return paramiko.AUTH_SUCCESSFUL
            if self._credentials.authenticate(username, password):
                logger.info("User %s authenticated from %s", username, self._remote)
                self.username = username
                self.registration_pending = False
                return paramiko.AUTH_SUCCESSFUL
        except StoreError as e:
            logger.error("Credential lookup for %s failed: %s", username, e)
            return paramiko.AUTH_FAILED
        logger.warning("Authentication failed for %s from %s", username, self._remote)
        return paramiko.AUTH_FAILED

    # -- channel requests -----------------------------------------------

    def check_channel_request(self, kind: str, chanid: int) -> int:
        if kind == "session":
            return paramiko.OPEN_SUCCEEDED
        logger.debug("Rejecting %s channel from %s", kind, self._remote)
        return paramiko.OPEN_FAILED_ADMINISTRATIVELY_PROHIBITED

    def check_channel_pty_request(
        self,
        channel: paramiko.Channel,
        term: bytes | str,
        width: int,
        height: int,
        pixelwidth: int,
        pixelheight: int,
        modes: bytes,
    ) -> bool:
        self.term = term.decode("utf-8", "replace") if isinstance(term, bytes) else term
        logger.debug("pty-req from %s: term=%s size=%dx%d", self._remote, self.term, width, height)
        self._set_size(width, height)
        return True

    def check_channel_window_change_request(
        self,
        channel: paramiko.Channel,
        width: int,
        height: int,
        pixelwidth: int,
        pixelheight: int,
    ) -> bool:
        logger.debug("window-change from %s: %dx%d", self._remote, width, height)
        self._set_size(width, height)
        return True

    def check_channel_shell_request(self, channel: paramiko.Channel) -> bool:
        logger.debug("shell request from %s", self._remote)
        self.shell_requested.set()
        return True

    def check_channel_exec_request(self, channel: paramiko.Channel, command: bytes) -> bool:
        logger.debug("Refusing exec request from %s", self._remote)
        return False

    def check_channel_subsystem_request(self, channel: paramiko.Channel, name: str) -> bool:
        logger.debug("Refusing subsystem %s from %s", name, self._remote)
        return False

    # -- size notifications ---------------------------------------------

    @property
    def viewport(self) -> Viewport | None:
        with self._lock:
            return self._viewport

    def attach(self, listener: ResizeListener) -> Viewport | None:
        with self._lock:
            self._listener = listener
            return self._viewport

    def detach(self) -> None:
        with self._lock:
            self._listener = None

    def _set_size(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            # Some clients report 0x0 when the size is unknown.
            return
        viewport = Viewport(width=width, height=height)
        with self._lock:
            self._viewport = viewport
            listener = self._listener
        if listener is not None:
            listener(viewport)


class ParamikoChannelTransport(ChannelTransport):
    """ChannelTransport over an accepted paramiko session channel.

    Blocking channel calls run in ``executor``. Reads block for at most
    ``read_poll_interval`` seconds so a closed session never leaves a
    worker thread stuck.
    """

    def __init__(
        self,
        channel: paramiko.Channel,
        handler: ConnectionHandler,
        read_poll_interval: float = 0.5,
        executor: Executor | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._channel = channel
        self._handler = handler
        self._executor = executor
        self._chunk_size = chunk_size
        self._channel.settimeout(read_poll_interval)

    @property
    def name(self) -> str:
        return f"channel-{self._channel.get_id()}"

    async def read(self) -> bytes | None:
        try:
            return await self._run(lambda: self._channel.recv(self._chunk_size))
        except socket.timeout:
            return None
        except OSError as e:
            raise TransportError(f"Read failed: {e}", channel=self.name) from e

    async def write(self, data: bytes) -> None:
        try:
            await self._run(lambda: self._send_all(data))
        except OSError as e:
            raise TransportError(f"Write failed: {e}", channel=self.name) from e

    async def send_exit_status(self, status: int) -> None:
        try:
            await self._run(lambda: self._channel.send_exit_status(status))
        except OSError as e:
            raise TransportError(f"Could not send exit status: {e}", channel=self.name) from e

    async def close(self) -> None:
        await self._run(self._channel.close)

    def attach(self, listener: ResizeListener) -> Viewport | None:
        return self._handler.attach(listener)

    def detach(self) -> None:
        self._handler.detach()

    def _send_all(self, data: bytes) -> None:
        offset = 0
        while offset < len(data):
            try:
                sent = self._channel.send(data[offset:])
            except socket.timeout:
                # Window full; the poll timeout also applies to sends.
                if self._channel.closed:
                    raise
                continue
            if sent == 0:
                raise OSError("Channel closed")
            offset += sent

    async def _run(self, fn: Callable[[], Any]) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn)
