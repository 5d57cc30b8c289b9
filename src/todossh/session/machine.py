"""Session state machine.

``apply`` consumes one key event and returns the next state together
with the store commands the session loop must execute. It never touches
a store or the transport, so every transition can be exercised without
a live connection.
"""

from __future__ import annotations

import logging
from typing import Sequence

from todossh.domain.models import (
    NEW_TASK,
    AddTask,
    DeleteTask,
    EditTarget,
    Key,
    KeyEvent,
    Mode,
    RegisterCredential,
    RegistrationStep,
    SessionState,
    Task,
    ToggleTask,
    Transition,
    UpdateTask,
)

logger = logging.getLogger(__name__)

DEFAULT_MIN_PASSWORD_LENGTH = 6
# bcrypt ignores everything past the first 72 bytes of a password.
MAX_PASSWORD_BYTES = 72


def clamp_selection(index: int, length: int) -> int:
    """Clamp a selection index into ``[0, length-1]`` (0 when empty)."""
    if length <= 0:
        return 0
    return max(0, min(index, length - 1))


def apply(
    state: SessionState,
    event: KeyEvent,
    snapshot: Sequence[Task],
    min_password_length: int = DEFAULT_MIN_PASSWORD_LENGTH,
) -> Transition:
    """Apply one key event to the session state.

    Args:
        state: Current state; not modified.
        event: The decoded key event.
        snapshot: The user's tasks ordered by id, as last read from the store.
        min_password_length: Shortest password accepted during registration.

    Returns:
        A Transition holding the new state, any store commands to run,
        and whether the screen needs repainting or the session must end.
    """
    if event.key in (Key.INTERRUPT, Key.END_OF_INPUT):
        return Transition(state=state, needs_redraw=False, terminate=True)

    # A status line is shown for exactly one frame.
    had_status = bool(state.status)
    if had_status:
        state = state.model_copy(update={"status": ""})

    if state.mode is Mode.REGISTERING:
        transition = _apply_registering(state, event, min_password_length)
    elif state.mode is Mode.EDITING:
        transition = _apply_editing(state, event)
    else:
        transition = _apply_browsing(state, event, snapshot)

    if had_status:
        transition.needs_redraw = True
    return transition


# ---------------------------------------------------------------------------
# Registering
# ---------------------------------------------------------------------------


def _apply_registering(
    state: SessionState, event: KeyEvent, min_password_length: int
) -> Transition:
    if state.notice:
        # Any key dismisses the inline error.
        return Transition(state=state.model_copy(update={"notice": ""}))

    if event.key is Key.ENTER:
        if state.registration_step is RegistrationStep.SET_PASSWORD:
            if len(state.edit_buffer) < min_password_length:
                return Transition(
                    state=state.model_copy(
                        update={
                            "edit_buffer": "",
                            "notice": (
                                f"Password must be at least {min_password_length} "
                                "characters. Press any key to continue."
                            ),
                        }
                    )
                )
            if len(state.edit_buffer.encode("utf-8")) > MAX_PASSWORD_BYTES:
                return Transition(
                    state=state.model_copy(
                        update={
                            "edit_buffer": "",
                            "notice": (
                                f"Password must be at most {MAX_PASSWORD_BYTES} bytes. "
                                "Press any key to continue."
                            ),
                        }
                    )
                )
            return Transition(
                state=state.model_copy(
                    update={
                        "pending_password": state.edit_buffer,
                        "edit_buffer": "",
                        "registration_step": RegistrationStep.CONFIRM_PASSWORD,
                    }
                )
            )

        if state.edit_buffer != state.pending_password:
            return Transition(
                state=state.model_copy(
                    update={
                        "edit_buffer": "",
                        "pending_password": "",
                        "registration_step": RegistrationStep.SET_PASSWORD,
                        "notice": "Passwords do not match. Press any key to try again.",
                    }
                )
            )

        command = RegisterCredential(username=state.identity, password=state.pending_password)
        logger.debug("Registration complete for %s, issuing credential command", state.identity)
        return Transition(
            state=state.model_copy(
                update={
                    "mode": Mode.BROWSING,
                    "edit_buffer": "",
                    "cursor_offset": 0,
                    "pending_password": "",
                    "registration_step": RegistrationStep.SET_PASSWORD,
                    "selected_index": 0,
                }
            ),
            commands=[command],
        )

    if event.key is Key.BACKSPACE:
        if not state.edit_buffer:
            return Transition(state=state, needs_redraw=False)
        return Transition(
            state=state.model_copy(update={"edit_buffer": state.edit_buffer[:-1]})
        )

    if event.is_printable:
        return Transition(
            state=state.model_copy(update={"edit_buffer": state.edit_buffer + event.char})
        )

    return Transition(state=state, needs_redraw=False)


# ---------------------------------------------------------------------------
# Browsing
# ---------------------------------------------------------------------------


def _apply_browsing(
    state: SessionState, event: KeyEvent, snapshot: Sequence[Task]
) -> Transition:
    count = len(snapshot)
    selected = clamp_selection(state.selected_index, count)
    if selected != state.selected_index:
        state = state.model_copy(update={"selected_index": selected})

    if event.key is Key.TAB:
        return Transition(
            state=state.model_copy(
                update={
                    "mode": Mode.EDITING,
                    "edit_target": NEW_TASK,
                    "edit_buffer": "",
                    "cursor_offset": 0,
                }
            )
        )

    if event.key is Key.ARROW_UP:
        return Transition(
            state=state.model_copy(update={"selected_index": max(0, selected - 1)})
        )

    if event.key is Key.ARROW_DOWN:
        if count == 0:
            return Transition(state=state, needs_redraw=False)
        return Transition(
            state=state.model_copy(update={"selected_index": min(count - 1, selected + 1)})
        )

    if count == 0:
        return Transition(state=state, needs_redraw=False)

    task = snapshot[selected]

    if event.key is Key.ENTER:
        return Transition(
            state=state.model_copy(
                update={
                    "mode": Mode.EDITING,
                    "edit_target": EditTarget(task_id=task.id),
                    "edit_buffer": task.text,
                    "cursor_offset": len(task.text),
                }
            )
        )

    if event.is_printable and event.char == " ":
        return Transition(state=state, commands=[ToggleTask(task_id=task.id)])

    if event.key is Key.DELETE:
        # Keep the same row selected, or the new last row if the last was deleted.
        new_index = clamp_selection(selected, count - 1)
        return Transition(
            state=state.model_copy(update={"selected_index": new_index}),
            commands=[DeleteTask(task_id=task.id)],
        )

    return Transition(state=state, needs_redraw=False)


# ---------------------------------------------------------------------------
# Editing
# ---------------------------------------------------------------------------


def _leave_editing(state: SessionState) -> SessionState:
    return state.model_copy(
        update={
            "mode": Mode.BROWSING,
            "edit_buffer": "",
            "cursor_offset": 0,
            "edit_target": NEW_TASK,
        }
    )


def _apply_editing(state: SessionState, event: KeyEvent) -> Transition:
    buffer = state.edit_buffer
    cursor = min(state.cursor_offset, len(buffer))

    if event.key is Key.TAB:
        return Transition(state=_leave_editing(state))

    if event.key is Key.ENTER:
        text = buffer.strip()
        commands: list[AddTask | UpdateTask] = []
        if text:
            target = state.edit_target
            if target.is_new:
                commands.append(AddTask(text=text))
            else:
                commands.append(UpdateTask(task_id=target.task_id, text=text))
        return Transition(state=_leave_editing(state), commands=commands)

    if event.key is Key.BACKSPACE:
        if cursor == 0:
            return Transition(state=state, needs_redraw=False)
        return Transition(
            state=state.model_copy(
                update={
                    "edit_buffer": buffer[: cursor - 1] + buffer[cursor:],
                    "cursor_offset": cursor - 1,
                }
            )
        )

    if event.key is Key.DELETE:
        if cursor >= len(buffer):
            return Transition(state=state, needs_redraw=False)
        return Transition(
            state=state.model_copy(
                update={"edit_buffer": buffer[:cursor] + buffer[cursor + 1 :]}
            )
        )

    if event.key is Key.ARROW_LEFT:
        return Transition(state=state.model_copy(update={"cursor_offset": max(0, cursor - 1)}))

    if event.key is Key.ARROW_RIGHT:
        return Transition(
            state=state.model_copy(update={"cursor_offset": min(len(buffer), cursor + 1)})
        )

    if event.is_printable:
        return Transition(
            state=state.model_copy(
                update={
                    "edit_buffer": buffer[:cursor] + event.char + buffer[cursor:],
                    "cursor_offset": cursor + 1,
                }
            )
        )

    return Transition(state=state, needs_redraw=False)
