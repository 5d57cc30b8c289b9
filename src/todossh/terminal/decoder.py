"""Input decoder: raw keystroke bytes -> key events.

The decoder is a small explicit automaton::

    GROUND --ESC--> SAW_ESCAPE --'['--> SAW_BRACKET --'3'--> SAW_DELETE_PREFIX
       ^                |                   |                      |
       +---- other -----+---- A/B/C/D ------+-------- '~' ---------+

Any byte that does not continue a sequence drops the automaton back to
GROUND without emitting an event. A chunk boundary also ends a pending
sequence: terminals write an escape sequence in one piece, so a sequence
still open when the chunk runs out is a short read and is discarded.
"""

from __future__ import annotations

import enum
import logging
from typing import AsyncIterator, Awaitable, Callable

from todossh.domain.models import Key, KeyEvent
from todossh.terminal.escapes import (
    BYTE_CSI_BRACKET,
    BYTE_DELETE_PREFIX,
    BYTE_ESC,
    BYTE_TILDE,
    CONTROL_KEYS,
    CSI_KEYS,
    is_printable,
)

logger = logging.getLogger(__name__)

END_OF_INPUT = KeyEvent(key=Key.END_OF_INPUT)

# Returns a chunk of bytes, b"" at end of stream, or None when the read
# completed without data (it is simply retried).
ByteSource = Callable[[], Awaitable["bytes | None"]]


class DecoderState(str, enum.Enum):
    GROUND = "ground"
    SAW_ESCAPE = "saw_escape"
    SAW_BRACKET = "saw_bracket"
    SAW_DELETE_PREFIX = "saw_delete_prefix"


class KeyDecoder:
    """Classifies keystroke bytes into ``KeyEvent`` instances.

    Tied to a single connection: the automaton state carries over
    between bytes of one chunk, never between connections.

    Usage::

        decoder = KeyDecoder()
        decoder.feed(b"hi\\x1b[A")
        # [KeyEvent(PRINTABLE 'h'), KeyEvent(PRINTABLE 'i'), KeyEvent(ARROW_UP)]
    """

    def __init__(self) -> None:
        self._state = DecoderState.GROUND

    @property
    def state(self) -> DecoderState:
        return self._state

    def feed(self, chunk: bytes) -> list[KeyEvent]:
        """Decode one chunk read from the transport."""
        events: list[KeyEvent] = []
        for byte in chunk:
            event = self._step(byte)
            if event is not None:
                events.append(event)
        if self._state is not DecoderState.GROUND:
            logger.debug("Discarding incomplete escape sequence (%s)", self._state.value)
            self._state = DecoderState.GROUND
        return events

    def _step(self, byte: int) -> KeyEvent | None:
        state = self._state

        if state is DecoderState.GROUND:
            if byte == BYTE_ESC:
                self._state = DecoderState.SAW_ESCAPE
                return None
            key = CONTROL_KEYS.get(byte)
            if key is not None:
                return KeyEvent(key=key)
            if is_printable(byte):
                return KeyEvent.printable(chr(byte))
            return None

        if state is DecoderState.SAW_ESCAPE:
            if byte == BYTE_CSI_BRACKET:
                self._state = DecoderState.SAW_BRACKET
            else:
                logger.debug("Discarding escape sequence: ESC 0x%02X", byte)
                self._state = DecoderState.GROUND
            return None

        if state is DecoderState.SAW_BRACKET:
            if byte == BYTE_DELETE_PREFIX:
                self._state = DecoderState.SAW_DELETE_PREFIX
                return None
            self._state = DecoderState.GROUND
            key = CSI_KEYS.get(byte)
            if key is None:
                logger.debug("Discarding unknown CSI code 0x%02X", byte)
                return None
            return KeyEvent(key=key)

        # SAW_DELETE_PREFIX
        self._state = DecoderState.GROUND
        if byte == BYTE_TILDE:
            return KeyEvent(key=Key.DELETE)
        logger.debug("Discarding malformed delete sequence: ESC [ 3 0x%02X", byte)
        return None


async def decode(
    read: ByteSource, decoder: KeyDecoder | None = None
) -> AsyncIterator[KeyEvent]:
    """Yield key events from a byte source until end of stream.

    The last event is always ``END_OF_INPUT``. Errors raised by ``read``
    propagate to the consumer.
    """
    decoder = decoder if decoder is not None else KeyDecoder()
    while True:
        chunk = await read()
        if chunk is None:
            continue
        if not chunk:
            yield END_OF_INPUT
            return
        for event in decoder.feed(chunk):
            yield event
