"""todossh -- a personal todo list served over SSH.

Users connect with any SSH client and manage their tasks in a
full-screen terminal UI. The interesting part is the interactive
session controller: raw keystroke bytes from the SSH channel are
decoded into key events, fed through a per-connection state machine,
and the screen is repainted with plain ANSI escape sequences.
"""

__version__ = "0.1.0"
