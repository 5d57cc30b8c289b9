"""Per-connection session loop.

Wires decoder, state machine, stores and renderer together for one
channel. Keystrokes (from a reader task) and resize notifications (from
the transport's thread) are posted to one queue; a single consumer owns
the session state, so the viewport is never touched concurrently.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
from concurrent.futures import Executor
from typing import Any, Callable, Union

from todossh.config.settings import SessionConfig
from todossh.domain.models import (
    AddTask,
    DeleteTask,
    Key,
    KeyEvent,
    Mode,
    RegisterCredential,
    SessionState,
    Task,
    ToggleTask,
    UpdateTask,
    Viewport,
)
from todossh.session.machine import apply, clamp_selection
from todossh.session.transport import ChannelTransport, TransportError
from todossh.store.base import (
    CredentialStore,
    StoreError,
    TaskNotFoundError,
    TaskStore,
)
from todossh.terminal.decoder import decode
from todossh.terminal.renderer import render, session_end, session_start

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1


class ReadFailed:
    """Queue item carrying a reader failure to the consumer."""

    def __init__(self, error: Exception) -> None:
        self.error = error


QueueItem = Union[KeyEvent, Viewport, ReadFailed]


class RegistrationFailed(Exception):
    """Storing the new user's credential failed; the session cannot go on."""


class SessionLoop:
    """Runs one interactive session from terminal setup to exit status.

    Example usage::

        session = SessionLoop(transport, "alice", task_store, credential_store)
        status = await session.run()
    """

    def __init__(
        self,
        transport: ChannelTransport,
        identity: str,
        task_store: TaskStore,
        credential_store: CredentialStore,
        config: SessionConfig | None = None,
        executor: Executor | None = None,
        registration_pending: bool | None = None,
    ) -> None:
        self._transport = transport
        self._identity = identity
        self._tasks = task_store
        self._credentials = credential_store
        self._config = config or SessionConfig()
        self._executor = executor
        self._registration_pending = registration_pending
        self._state = SessionState(identity=identity)
        self._snapshot: list[Task] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def snapshot(self) -> list[Task]:
        return list(self._snapshot)

    async def run(self) -> int:
        """Serve the session until Ctrl+C, end of input, or a fatal error.

        The terminal is always restored and the exit status always sent,
        whichever way the session ends.

        Returns:
            The exit status reported to the client (0 or 1).
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[QueueItem] = asyncio.Queue()

        def on_resize(viewport: Viewport) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, viewport)

        initial = self._transport.attach(on_resize)
        viewport = initial or Viewport(
            width=self._config.default_width, height=self._config.default_height
        )

        status = EXIT_OK
        message = ""
        reader: asyncio.Task | None = None
        logger.info("Session started for %s (%dx%d)", self._identity, viewport.width, viewport.height)
        try:
            await self._transport.write(session_start())

            mode = await self._initial_mode()
            self._state = SessionState(identity=self._identity, mode=mode, viewport=viewport)
            if mode is Mode.REGISTERING:
                logger.info("No credentials for %s, starting registration", self._identity)

            await self._refresh_snapshot()
            await self._redraw()

            reader = asyncio.create_task(self._pump_keys(queue))
            await self._consume(queue)
        except TransportError as e:
            logger.warning("Session for %s ended by transport error: %s", self._identity, e)
            status = EXIT_ERROR
        except RegistrationFailed as e:
            logger.error("Registration failed for %s: %s", self._identity, e)
            status = EXIT_ERROR
            message = f"Registration failed: {e}"
        except asyncio.CancelledError:
            logger.info("Session for %s cancelled", self._identity)
            raise
        except Exception:
            logger.exception("Unexpected error in session for %s", self._identity)
            status = EXIT_ERROR
        finally:
            self._transport.detach()
            if reader is not None:
                reader.cancel()
                await asyncio.gather(reader, return_exceptions=True)
            await self._teardown(status, message)

        logger.info("Session ended for %s with status %d", self._identity, status)
        return status

    async def _initial_mode(self) -> Mode:
        """Registering if the connection was let in to register, else Browsing.

        When the server did not say how the user authenticated, the
        credential store decides.
        """
        if self._registration_pending is None:
            record = await self._call(self._credentials.lookup, self._identity)
            return Mode.REGISTERING if record is None else Mode.BROWSING
        return Mode.REGISTERING if self._registration_pending else Mode.BROWSING

    # ------------------------------------------------------------------
    # Event processing
    # ------------------------------------------------------------------

    async def _consume(self, queue: asyncio.Queue[QueueItem]) -> None:
        while True:
            item = await queue.get()

            if isinstance(item, ReadFailed):
                raise item.error

            if isinstance(item, Viewport):
                logger.debug("Viewport for %s is now %dx%d", self._identity, item.width, item.height)
                self._state = self._state.model_copy(update={"viewport": item})
                await self._redraw()
                continue

            if item.key is Key.END_OF_INPUT:
                logger.info("Client %s closed the input stream", self._identity)
                return

            transition = apply(
                self._state,
                item,
                self._snapshot,
                min_password_length=self._config.min_password_length,
            )
            self._state = transition.state
            if transition.terminate:
                logger.debug("Session for %s terminated by %s", self._identity, item.key.value)
                return

            for command in transition.commands:
                await self._execute(command)

            changed = await self._refresh_snapshot()
            if transition.needs_redraw or transition.commands or changed:
                await self._redraw()

    async def _pump_keys(self, queue: asyncio.Queue[QueueItem]) -> None:
        """Decode keystrokes into the queue until end of input or a read error."""
        try:
            async for event in decode(self._transport.read):
                queue.put_nowait(event)
        except Exception as e:
            queue.put_nowait(ReadFailed(e))

    async def _execute(self, command: Any) -> None:
        user = self._identity

        if isinstance(command, RegisterCredential):
            try:
                await self._call(
                    lambda: self._credentials.register(
                        command.username, command.password, replace=False
                    )
                )
            except StoreError as e:
                raise RegistrationFailed(str(e)) from e
            return

        try:
            if isinstance(command, AddTask):
                await self._call(self._tasks.add, user, command.text)
            elif isinstance(command, UpdateTask):
                await self._call(self._tasks.update, user, command.task_id, command.text)
            elif isinstance(command, ToggleTask):
                await self._call(self._tasks.toggle_complete, user, command.task_id)
            elif isinstance(command, DeleteTask):
                await self._call(self._tasks.delete, user, command.task_id)
            else:
                raise TypeError(f"Unknown store command: {command!r}")
        except TaskNotFoundError as e:
            logger.debug("Dropping %s for %s: %s", command.command_type, user, e)
        except StoreError as e:
            logger.warning("Store error on %s for %s: %s", command.command_type, user, e)
            self._state = self._state.model_copy(update={"status": f"Error: {e}"})

    async def _refresh_snapshot(self) -> bool:
        """Re-read the task list. Returns True if it changed."""
        try:
            tasks = await self._call(self._tasks.list, self._identity)
        except StoreError as e:
            logger.warning("Could not list tasks for %s: %s", self._identity, e)
            self._state = self._state.model_copy(update={"status": f"Error: {e}"})
            return True

        changed = tasks != self._snapshot
        self._snapshot = tasks
        selected = clamp_selection(self._state.selected_index, len(tasks))
        if selected != self._state.selected_index:
            self._state = self._state.model_copy(update={"selected_index": selected})
        return changed

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    async def _redraw(self) -> None:
        await self._transport.write(render(self._state, self._snapshot))

    async def _teardown(self, status: int, message: str) -> None:
        """Restore the terminal, report the status and close; best effort."""
        try:
            await self._transport.write(session_end(self._config.farewell, message))
        except TransportError as e:
            logger.debug("Could not restore terminal for %s: %s", self._identity, e)
        try:
            await self._transport.send_exit_status(status)
        except TransportError as e:
            logger.debug("Could not send exit status to %s: %s", self._identity, e)
        await self._transport.close()

    async def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        # Store calls log under the same session as the loop.
        ctx = contextvars.copy_context()
        return await loop.run_in_executor(self._executor, lambda: ctx.run(fn, *args))
