"""Full-screen renderer.

Every frame is a complete repaint: clear, home, hide cursor, then the
screen for the current mode. Output depends only on the session state
and the task snapshot passed in.

Screen layout (browsing / editing)::

    row 1          Todo List for <identity>
    row 2          ────────────────────────
    row 3          Commands: ...
    row 4
    row 5..        > [ ] 1. first task
                     [✓] 2. second task
    row h-2        ────────────────────────      (editing only)
    row h-1        New todo: <buffer>            (editing only)
    row h          <status>                      (only when set)
"""

from __future__ import annotations

from typing import Sequence

from todossh.domain.models import Mode, RegistrationStep, SessionState, Task
from todossh.terminal.escapes import (
    CLEAR_SCREEN,
    CRLF,
    CURSOR_HOME,
    DISABLE_WRAP,
    ENABLE_WRAP,
    ENTER_ALT_SCREEN,
    EXIT_ALT_SCREEN,
    HIDE_CURSOR,
    SHOW_CURSOR,
    move_to,
)

SEPARATOR_CHAR = "─"
CHECKED = "[✓]"
UNCHECKED = "[ ]"
SELECTED_MARKER = "> "
UNSELECTED_MARKER = "  "

BROWSING_HINT = (
    "Commands: ↑/↓: Navigate • Space: Toggle • Enter: Edit • "
    "Tab: New • Delete: Remove • Ctrl+C: Exit"
)
EDITING_HINT = "Commands: ←/→: Move cursor • Enter: Save • Tab: Cancel • Ctrl+C: Exit"
EMPTY_PLACEHOLDER = "No todos yet. Press Tab to add one."

NEW_TASK_LABEL = "New todo: "
PASSWORD_PROMPTS = {
    RegistrationStep.SET_PASSWORD: "Choose a password: ",
    RegistrationStep.CONFIRM_PASSWORD: "Confirm password: ",
}

# Rows above the task list: header, separator, hint, blank.
LIST_FIRST_ROW = 5


def render(state: SessionState, snapshot: Sequence[Task]) -> bytes:
    """Produce the bytes that repaint the whole screen for ``state``."""
    out = [CLEAR_SCREEN, CURSOR_HOME, HIDE_CURSOR]
    if state.mode is Mode.REGISTERING:
        out.extend(_registration_screen(state))
    else:
        out.extend(_task_screen(state, snapshot))
    return "".join(out).encode("utf-8")


def session_start() -> bytes:
    """Switch to the alternate screen with line wrapping off."""
    return (ENTER_ALT_SCREEN + DISABLE_WRAP).encode("utf-8")


def session_end(farewell: str = "Goodbye!", message: str = "") -> bytes:
    """Restore the terminal and print the farewell line.

    ``message``, if given, is printed on its own line before the farewell.
    """
    out = [SHOW_CURSOR, ENABLE_WRAP, EXIT_ALT_SCREEN]
    if message:
        out.extend([message, CRLF])
    out.extend([farewell, CRLF])
    return "".join(out).encode("utf-8")


def edit_label(state: SessionState, snapshot: Sequence[Task]) -> str:
    """Prompt label for the edit line: new task, or the task's row ordinal."""
    target = state.edit_target
    if target.is_new:
        return NEW_TASK_LABEL
    for position, task in enumerate(snapshot, start=1):
        if task.id == target.task_id:
            return f"Edit todo {position}: "
    # The task disappeared from under the edit (deleted by another session).
    return "Edit todo: "


def visible_window(selected: int, count: int, capacity: int) -> range:
    """Indices of the tasks to draw so that ``selected`` stays on screen."""
    if capacity <= 0:
        return range(0)
    if count <= capacity:
        return range(count)
    start = min(max(0, selected - capacity + 1), count - capacity)
    return range(start, start + capacity)


def format_task_line(task: Task, ordinal: int, selected: bool) -> str:
    marker = SELECTED_MARKER if selected else UNSELECTED_MARKER
    checkbox = CHECKED if task.completed else UNCHECKED
    return f"{marker}{checkbox} {ordinal}. {task.text}"


# ---------------------------------------------------------------------------
# Screens
# ---------------------------------------------------------------------------


def _task_screen(state: SessionState, snapshot: Sequence[Task]) -> list[str]:
    width = state.viewport.width
    height = state.viewport.height
    editing = state.mode is Mode.EDITING
    separator = SEPARATOR_CHAR * width

    out = [
        move_to(1, 1),
        f"Todo List for {state.identity}",
        CRLF,
        separator,
        CRLF,
        EDITING_HINT if editing else BROWSING_HINT,
        CRLF,
        CRLF,
    ]

    if editing:
        last_list_row = height - 3
    elif state.status:
        last_list_row = height - 1
    else:
        last_list_row = height
    capacity = last_list_row - LIST_FIRST_ROW + 1

    if not snapshot:
        if capacity > 0:
            out.extend([EMPTY_PLACEHOLDER, CRLF])
    else:
        selected = min(state.selected_index, len(snapshot) - 1)
        for index in visible_window(selected, len(snapshot), capacity):
            is_selected = index == selected and not editing
            out.extend([format_task_line(snapshot[index], index + 1, is_selected), CRLF])

    if state.status:
        out.extend([move_to(max(1, height), 1), state.status])

    if editing:
        label = edit_label(state, snapshot)
        out.extend(
            [
                move_to(max(1, height - 2), 1),
                separator,
                move_to(max(1, height - 1), 1),
                label,
                state.edit_buffer,
                SHOW_CURSOR,
                move_to(max(1, height - 1), len(label) + state.cursor_offset + 1),
            ]
        )
    return out


def _registration_screen(state: SessionState) -> list[str]:
    prompt = PASSWORD_PROMPTS[state.registration_step]
    masked = "*" * len(state.edit_buffer)

    out = [
        move_to(1, 1),
        f"Welcome, {state.identity}!",
        CRLF,
        SEPARATOR_CHAR * state.viewport.width,
        CRLF,
        "No account found for this username. Set a password to register.",
        CRLF,
        CRLF,
        prompt,
        masked,
    ]
    if state.notice:
        out.extend([CRLF, CRLF, state.notice])
    return out
