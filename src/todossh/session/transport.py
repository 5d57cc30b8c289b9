"""The narrow channel interface the session loop talks to.

A transport carries the keystroke bytes in, the rendered frames out,
and the terminal-size notifications that arrive independently of the
byte stream. The paramiko adapter lives in ``todossh.server.channel``;
tests use an in-memory fake.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable

from todossh.domain.models import Viewport

logger = logging.getLogger(__name__)

# Called with the new size on every window change. May be invoked from
# a thread other than the one running the session loop.
ResizeListener = Callable[[Viewport], None]


class TransportError(Exception):
    """Raised when reading from or writing to the channel fails."""

    def __init__(self, message: str, channel: str = "") -> None:
        super().__init__(message)
        self.channel = channel


class ChannelTransport(ABC):
    """One interactive, already-authenticated channel.

    Example usage::

        viewport = transport.attach(on_resize)
        await transport.write(frame)
        chunk = await transport.read()
        await transport.send_exit_status(0)
        await transport.close()
    """

    @abstractmethod
    async def read(self) -> bytes | None:
        """Read the next chunk of keystroke bytes.

        Returns:
            The bytes read, ``b""`` at end of stream, or None when no
            data arrived within the poll interval (the caller retries).

        Raises:
            TransportError: If the read fails.
        """
        ...

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """Write all of ``data`` to the channel.

        Raises:
            TransportError: If the write fails.
        """
        ...

    @abstractmethod
    async def send_exit_status(self, status: int) -> None:
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the channel. Safe to call more than once."""
        ...

    @abstractmethod
    def attach(self, listener: ResizeListener) -> Viewport | None:
        """Subscribe to size changes.

        Returns:
            The size negotiated so far (from a pty request that arrived
            before the session started), or None if there was none.
        """
        ...

    @abstractmethod
    def detach(self) -> None:
        """Drop the resize listener; later size changes are only stored."""
        ...
