"""Logging setup utilities for todossh.

Configures the ``todossh`` package logger from the logging settings and
stamps every record with the session it was logged from, so lines of
concurrent connections can be told apart::

    2024-05-01 12:00:00,000 [INFO] todossh.session.loop [alice@10.0.0.7:51234]: Session started

Records logged outside a connection carry ``-``.
"""

from __future__ import annotations

import contextvars
import logging
import sys

from todossh.config.settings import LoggingConfig

NO_SESSION = "-"

_session: contextvars.ContextVar[str] = contextvars.ContextVar(
    "todossh_session", default=NO_SESSION
)


class SessionContextFilter(logging.Filter):
    """Adds a ``session`` attribute to each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.session = _session.get()
        return True


def bind_session(remote: str, identity: str | None = None) -> None:
    """Tag log records of the current task (and tasks it creates) with a session.

    asyncio tasks copy the context when they are created, so binding at
    the top of a connection's task covers everything it starts without
    leaking into other connections.
    """
    _session.set(f"{identity}@{remote}" if identity else remote)


def current_session() -> str:
    return _session.get()


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Configure logging for the todossh server.

    Sets up the ``todossh`` package logger with the configured level and
    format, a stderr handler, and an optional file handler. Both handlers
    carry the session filter, so formats may use ``%(session)s``.

    Args:
        config: Logging configuration. If None, uses defaults
                (INFO level, stderr output).
    """
    if config is None:
        config = LoggingConfig()

    level_name = config.level.upper()
    package_logger = logging.getLogger("todossh")
    package_logger.setLevel(getattr(logging, level_name, logging.INFO))

    formatter = logging.Formatter(config.format)
    session_filter = SessionContextFilter()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(session_filter)
    package_logger.addHandler(console_handler)

    if config.file:
        file_handler = logging.FileHandler(config.file)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(session_filter)
        package_logger.addHandler(file_handler)

    package_logger.info("Logging initialized at %s level", level_name)
