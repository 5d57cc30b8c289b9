"""Terminal byte handling for todossh.

Public API:
    KeyDecoder -- keystroke bytes to key events
    decode -- async key-event stream over a byte source
    render -- full-screen repaint for a session state
"""

from todossh.terminal.decoder import KeyDecoder, decode
from todossh.terminal.renderer import render, session_end, session_start

__all__ = ["KeyDecoder", "decode", "render", "session_end", "session_start"]
