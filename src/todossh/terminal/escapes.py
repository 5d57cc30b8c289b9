"""Terminal byte codes: the input alphabet and the output escape sequences.

Reference: ECMA-48 / xterm control sequences.

Input side: a key press arrives either as a single byte (control
character or printable ASCII) or as a CSI sequence::

    ESC [ <code>        arrow keys  (A/B/C/D)
    ESC [ 3 ~           Delete

Output side: the renderer only emits cursor positioning, screen
clearing, cursor visibility, line-wrap and alternate-screen toggles.
"""

from __future__ import annotations

from todossh.domain.models import Key

# ---------------------------------------------------------------------------
# Input bytes
# ---------------------------------------------------------------------------

BYTE_CTRL_C: int = 0x03
BYTE_TAB: int = 0x09
BYTE_CR: int = 0x0D
BYTE_ESC: int = 0x1B
BYTE_DEL: int = 0x7F  # sent by the Backspace key

BYTE_CSI_BRACKET: int = 0x5B  # '['
BYTE_DELETE_PREFIX: int = 0x33  # '3' in ESC [ 3 ~
BYTE_TILDE: int = 0x7E  # '~'

PRINTABLE_FIRST: int = 0x20
PRINTABLE_LAST: int = 0x7E

# Single control byte -> key
CONTROL_KEYS: dict[int, Key] = {
    BYTE_CTRL_C: Key.INTERRUPT,
    BYTE_TAB: Key.TAB,
    BYTE_CR: Key.ENTER,
    BYTE_DEL: Key.BACKSPACE,
}

# Final byte of ESC [ <code> -> key
CSI_KEYS: dict[int, Key] = {
    0x41: Key.ARROW_UP,  # 'A'
    0x42: Key.ARROW_DOWN,  # 'B'
    0x43: Key.ARROW_RIGHT,  # 'C'
    0x44: Key.ARROW_LEFT,  # 'D'
}

# ---------------------------------------------------------------------------
# Output sequences
# ---------------------------------------------------------------------------

CLEAR_SCREEN: str = "\x1b[2J"
CURSOR_HOME: str = "\x1b[H"
SHOW_CURSOR: str = "\x1b[?25h"
HIDE_CURSOR: str = "\x1b[?25l"
ENTER_ALT_SCREEN: str = "\x1b[?1049h"
EXIT_ALT_SCREEN: str = "\x1b[?1049l"
DISABLE_WRAP: str = "\x1b[?7l"
ENABLE_WRAP: str = "\x1b[?7h"

CRLF: str = "\r\n"


def is_printable(byte: int) -> bool:
    return PRINTABLE_FIRST <= byte <= PRINTABLE_LAST


def move_to(row: int, col: int) -> str:
    """Cursor position sequence; rows and columns are 1-based.

    Raises:
        ValueError: If row or col is less than 1.
    """
    if row < 1 or col < 1:
        raise ValueError(f"Cursor position must be 1-based, got ({row}, {col})")
    return f"\x1b[{row};{col}H"
