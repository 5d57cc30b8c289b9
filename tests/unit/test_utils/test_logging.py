"""Tests for logging setup."""

from __future__ import annotations

import asyncio
import logging

import pytest

from todossh.config.settings import LoggingConfig
from todossh.utils.logging import NO_SESSION, bind_session, current_session, setup_logging


@pytest.fixture
def package_logger():
    logger = logging.getLogger("todossh")
    saved = (logger.level, list(logger.handlers))
    yield logger
    for handler in logger.handlers:
        if handler not in saved[1]:
            handler.close()
    logger.setLevel(saved[0])
    logger.handlers = saved[1]


class TestSetupLogging:
    def test_defaults(self, package_logger: logging.Logger) -> None:
        setup_logging()
        assert package_logger.level == logging.INFO
        assert any(isinstance(h, logging.StreamHandler) for h in package_logger.handlers)

    def test_level_and_file(self, package_logger: logging.Logger, tmp_path) -> None:
        log_file = tmp_path / "todossh.log"
        setup_logging(LoggingConfig(level="debug", file=str(log_file)))
        assert package_logger.level == logging.DEBUG
        logging.getLogger("todossh.session.loop").debug("hello from a session")
        for handler in package_logger.handlers:
            handler.flush()
        assert "hello from a session" in log_file.read_text()

    def test_records_carry_session(self, package_logger: logging.Logger, tmp_path) -> None:
        log_file = tmp_path / "todossh.log"
        setup_logging(LoggingConfig(file=str(log_file)))

        async def connection(remote: str, identity: str | None) -> None:
            bind_session(remote, identity)
            logging.getLogger("todossh.server.ssh").info("serving %s", remote)

        async def both() -> None:
            await asyncio.gather(
                connection("10.0.0.7:51234", "alice"),
                connection("10.0.0.8:40000", None),
            )

        asyncio.run(both())
        logging.getLogger("todossh").info("outside any connection")
        for handler in package_logger.handlers:
            handler.flush()

        lines = log_file.read_text().splitlines()
        assert any("[alice@10.0.0.7:51234]: serving 10.0.0.7:51234" in line for line in lines)
        assert any("[10.0.0.8:40000]: serving 10.0.0.8:40000" in line for line in lines)
        assert any(f"[{NO_SESSION}]: outside any connection" in line for line in lines)


class TestSessionBinding:
    @pytest.mark.asyncio
    async def test_binding_does_not_leak_between_tasks(self) -> None:
        async def bound() -> str:
            bind_session("10.0.0.7:51234", "alice")
            return current_session()

        assert await asyncio.create_task(bound()) == "alice@10.0.0.7:51234"
        assert current_session() == NO_SESSION
