"""Shared test fixtures for the todossh test suite.

Provides an in-memory channel transport, JSON stores rooted in a
temporary directory, and mock stores for failure paths.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Callable, Union
from unittest.mock import MagicMock

import pytest

from todossh.domain.models import SessionState, Task, Viewport
from todossh.session.transport import ChannelTransport, ResizeListener, TransportError
from todossh.store.base import CredentialRecord, CredentialStore
from todossh.store.credentials import JsonCredentialStore
from todossh.store.tasks import JsonTaskStore

# A scripted read: bytes to deliver, an exception to raise, or a callable
# run against the transport (e.g. to fire a resize) before the next read.
ScriptItem = Union[bytes, Exception, Callable[["FakeTransport"], None]]


class FakeTransport(ChannelTransport):
    """In-memory transport that replays scripted reads.

    Reading past the end of the script returns end of stream.
    """

    def __init__(
        self,
        script: list[ScriptItem] | None = None,
        initial_viewport: Viewport | None = None,
        fail_writes: bool = False,
    ) -> None:
        self._script = deque(script or [])
        self._initial = initial_viewport
        self._fail_writes = fail_writes
        self.listener: ResizeListener | None = None
        self.written: list[bytes] = []
        self.exit_statuses: list[int] = []
        self.closed = False

    @property
    def output(self) -> bytes:
        return b"".join(self.written)

    async def read(self) -> bytes | None:
        await asyncio.sleep(0)
        if not self._script:
            return b""
        item = self._script.popleft()
        if isinstance(item, Exception):
            raise item
        if callable(item):
            item(self)
            return None
        return item

    async def write(self, data: bytes) -> None:
        if self._fail_writes:
            raise TransportError("broken pipe")
        self.written.append(data)

    async def send_exit_status(self, status: int) -> None:
        if self._fail_writes:
            raise TransportError("broken pipe")
        self.exit_statuses.append(status)

    async def close(self) -> None:
        self.closed = True

    def attach(self, listener: ResizeListener) -> Viewport | None:
        self.listener = listener
        return self._initial

    def detach(self) -> None:
        self.listener = None

    def resize(self, width: int, height: int) -> None:
        if self.listener is not None:
            self.listener(Viewport(width=width, height=height))


# ---------------------------------------------------------------------------
# Domain Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def tasks() -> list[Task]:
    """Three tasks, the middle one completed."""
    return [
        Task(id=1, text="buy milk"),
        Task(id=2, text="walk dog", completed=True),
        Task(id=4, text="file taxes"),
    ]


@pytest.fixture
def browsing_state() -> SessionState:
    return SessionState(identity="alice")


# ---------------------------------------------------------------------------
# Store Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def task_store(tmp_path) -> JsonTaskStore:
    return JsonTaskStore(tmp_path / "data")


@pytest.fixture
def credential_store(tmp_path) -> JsonCredentialStore:
    return JsonCredentialStore(tmp_path / "data")


@pytest.fixture
def known_user_store() -> MagicMock:
    """Credential store mock that knows every username."""
    store = MagicMock(spec=CredentialStore)
    store.lookup.side_effect = lambda user: CredentialRecord(
        username=user, password_hash="$2b$12$unused"
    )
    store.authenticate.return_value = True
    return store


@pytest.fixture
def unknown_user_store() -> MagicMock:
    """Credential store mock that knows no one."""
    store = MagicMock(spec=CredentialStore)
    store.lookup.return_value = None
    store.authenticate.return_value = False
    return store


# ---------------------------------------------------------------------------
# Transport Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def make_transport() -> type[FakeTransport]:
    """The FakeTransport class, for tests that script their own reads."""
    return FakeTransport
