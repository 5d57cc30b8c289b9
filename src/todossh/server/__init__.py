"""SSH server for todossh.

Public API:
    TodoSshServer -- asyncio accept loop over paramiko transports
    ConnectionHandler -- per-connection paramiko ServerInterface
    load_host_key / generate_host_key -- RSA host key management
"""

from todossh.server.channel import ConnectionHandler, ParamikoChannelTransport
from todossh.server.ssh import HostKeyError, TodoSshServer, generate_host_key, load_host_key

__all__ = [
    "ConnectionHandler",
    "HostKeyError",
    "ParamikoChannelTransport",
    "TodoSshServer",
    "generate_host_key",
    "load_host_key",
]
