"""Interactive session control for todossh.

Public API:
    apply -- the pure session state machine
    SessionLoop -- drives one connection end to end
    ChannelTransport -- the channel interface the loop talks to
"""

from todossh.session.loop import SessionLoop
from todossh.session.machine import apply
from todossh.session.transport import ChannelTransport, TransportError

__all__ = ["ChannelTransport", "SessionLoop", "TransportError", "apply"]
