"""Tests for the full-screen renderer."""

from __future__ import annotations

from todossh.domain.models import (
    EditTarget,
    Mode,
    RegistrationStep,
    SessionState,
    Task,
    Viewport,
)
from todossh.terminal.escapes import HIDE_CURSOR, SHOW_CURSOR
from todossh.terminal.renderer import (
    BROWSING_HINT,
    EDITING_HINT,
    EMPTY_PLACEHOLDER,
    edit_label,
    format_task_line,
    render,
    session_end,
    session_start,
    visible_window,
)


def text(state: SessionState, snapshot: list[Task]) -> str:
    return render(state, snapshot).decode("utf-8")


class TestFrame:
    def test_starts_with_clear_home_hide(self, browsing_state: SessionState) -> None:
        out = text(browsing_state, [])
        assert out.startswith("\x1b[2J\x1b[H\x1b[?25l")

    def test_is_deterministic(self, browsing_state: SessionState, tasks: list[Task]) -> None:
        assert render(browsing_state, tasks) == render(browsing_state, tasks)

    def test_header_names_identity(self, browsing_state: SessionState) -> None:
        assert "Todo List for alice" in text(browsing_state, [])

    def test_separator_matches_width(self) -> None:
        state = SessionState(identity="alice", viewport=Viewport(width=33, height=24))
        out = text(state, [])
        assert "─" * 33 + "\r\n" in out
        assert "─" * 34 not in out

    def test_empty_placeholder(self, browsing_state: SessionState) -> None:
        assert EMPTY_PLACEHOLDER in text(browsing_state, [])


class TestBrowsing:
    def test_rows_in_order_with_selection_marker(
        self, browsing_state: SessionState, tasks: list[Task]
    ) -> None:
        state = browsing_state.model_copy(update={"selected_index": 1})
        out = text(state, tasks)
        assert BROWSING_HINT in out
        assert "  [ ] 1. buy milk\r\n" in out
        assert "> [✓] 2. walk dog\r\n" in out
        assert "  [ ] 3. file taxes\r\n" in out
        assert out.index("buy milk") < out.index("walk dog") < out.index("file taxes")

    def test_cursor_stays_hidden(self, browsing_state: SessionState, tasks: list[Task]) -> None:
        assert "\x1b[?25h" not in text(browsing_state, tasks)

    def test_status_on_last_row(self, browsing_state: SessionState) -> None:
        state = browsing_state.model_copy(update={"status": "Error: disk full"})
        assert "\x1b[24;1HError: disk full" in text(state, [])


class TestEditing:
    def test_new_task_prompt_and_cursor(self, browsing_state: SessionState) -> None:
        state = browsing_state.model_copy(
            update={"mode": Mode.EDITING, "edit_buffer": "milk", "cursor_offset": 2}
        )
        out = text(state, [])
        assert EDITING_HINT in out
        assert "\x1b[22;1H" + "─" * 80 in out
        assert "\x1b[23;1HNew todo: milk" in out
        # len("New todo: ") + 2 + 1
        assert out.endswith("\x1b[?25h\x1b[23;13H")

    def test_existing_task_label_uses_row_ordinal(
        self, browsing_state: SessionState, tasks: list[Task]
    ) -> None:
        state = browsing_state.model_copy(
            update={
                "mode": Mode.EDITING,
                "edit_target": EditTarget(task_id=4),
                "edit_buffer": "file taxes",
                "cursor_offset": 10,
            }
        )
        assert edit_label(state, tasks) == "Edit todo 3: "
        assert "Edit todo 3: file taxes" in text(state, tasks)

    def test_no_selection_marker_while_editing(
        self, browsing_state: SessionState, tasks: list[Task]
    ) -> None:
        state = browsing_state.model_copy(update={"mode": Mode.EDITING})
        assert "> [" not in text(state, tasks)

    def test_label_for_vanished_task(self, browsing_state: SessionState) -> None:
        state = browsing_state.model_copy(
            update={"mode": Mode.EDITING, "edit_target": EditTarget(task_id=99)}
        )
        assert edit_label(state, []) == "Edit todo: "


class TestRegistration:
    def test_password_is_masked(self) -> None:
        state = SessionState(identity="bob", mode=Mode.REGISTERING, edit_buffer="secret")
        out = text(state, [])
        assert "secret" not in out
        assert "Choose a password: ******" in out
        assert "bob" in out

    def test_confirm_prompt(self) -> None:
        state = SessionState(
            identity="bob",
            mode=Mode.REGISTERING,
            registration_step=RegistrationStep.CONFIRM_PASSWORD,
        )
        assert "Confirm password: " in text(state, [])

    def test_notice_shown(self) -> None:
        state = SessionState(identity="bob", mode=Mode.REGISTERING, notice="Passwords do not match.")
        assert "Passwords do not match." in text(state, [])

    def test_cursor_hidden_while_typing(self) -> None:
        state = SessionState(identity="bob", mode=Mode.REGISTERING, edit_buffer="abc")
        out = render(state, [])
        assert HIDE_CURSOR.encode() in out
        assert SHOW_CURSOR.encode() not in out


class TestScrolling:
    def test_window_fits(self) -> None:
        assert visible_window(0, 3, 10) == range(3)

    def test_window_follows_selection(self) -> None:
        assert visible_window(15, 20, 5) == range(11, 16)
        assert visible_window(19, 20, 5) == range(15, 20)
        assert visible_window(2, 20, 5) == range(0, 5)

    def test_no_room(self) -> None:
        assert visible_window(0, 3, 0) == range(0)

    def test_selected_row_rendered_in_small_viewport(self) -> None:
        many = [Task(id=i, text=f"task {i}") for i in range(1, 31)]
        state = SessionState(
            identity="alice", selected_index=29, viewport=Viewport(width=40, height=10)
        )
        out = text(state, many)
        assert "> [ ] 30. task 30" in out
        assert "task 1\r\n" not in out


class TestSessionSequences:
    def test_start(self) -> None:
        assert session_start() == b"\x1b[?1049h\x1b[?7l"

    def test_end(self) -> None:
        assert session_end() == b"\x1b[?25h\x1b[?7h\x1b[?1049lGoodbye!\r\n"

    def test_end_with_message(self) -> None:
        out = session_end("Bye", message="Registration failed: disk full")
        assert out.endswith(b"Registration failed: disk full\r\nBye\r\n")


def test_format_task_line() -> None:
    task = Task(id=7, text="x", completed=True)
    assert format_task_line(task, 2, selected=True) == "> [✓] 2. x"
    assert format_task_line(task, 2, selected=False) == "  [✓] 2. x"
