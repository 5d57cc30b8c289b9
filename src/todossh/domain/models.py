"""Core domain models for the todossh system.

These models represent the data flowing through one interactive
session: tasks read from the task store, key events decoded from the
SSH byte stream, the per-connection UI state, and the store commands
the state machine asks the session loop to execute.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Key(str, enum.Enum):
    """The alphabet of key events produced by the input decoder."""

    PRINTABLE = "printable"
    ENTER = "enter"
    BACKSPACE = "backspace"
    DELETE = "delete"
    TAB = "tab"
    INTERRUPT = "interrupt"  # Ctrl+C
    ARROW_UP = "arrow_up"
    ARROW_DOWN = "arrow_down"
    ARROW_LEFT = "arrow_left"
    ARROW_RIGHT = "arrow_right"
    END_OF_INPUT = "end_of_input"


class Mode(str, enum.Enum):
    """Which screen the session is showing."""

    BROWSING = "browsing"
    EDITING = "editing"
    REGISTERING = "registering"


class RegistrationStep(str, enum.Enum):
    SET_PASSWORD = "set_password"
    CONFIRM_PASSWORD = "confirm_password"


# ---------------------------------------------------------------------------
# Task Models
# ---------------------------------------------------------------------------


class Task(BaseModel):
    """A single todo item owned by the task store."""

    id: int = Field(ge=1, description="Per-user id, allocated in increasing order")
    text: str = Field(description="The task description")
    completed: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


# ---------------------------------------------------------------------------
# Input Models
# ---------------------------------------------------------------------------


class KeyEvent(BaseModel):
    """A decoded, semantically meaningful input unit.

    ``char`` is only set for ``Key.PRINTABLE`` events.
    """

    model_config = ConfigDict(frozen=True)

    key: Key
    char: str = Field(default="", max_length=1)

    @classmethod
    def printable(cls, char: str) -> KeyEvent:
        return cls(key=Key.PRINTABLE, char=char)

    @property
    def is_printable(self) -> bool:
        return self.key is Key.PRINTABLE


# ---------------------------------------------------------------------------
# Session State
# ---------------------------------------------------------------------------


class Viewport(BaseModel):
    """Terminal dimensions in character cells."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(default=80, gt=0)
    height: int = Field(default=24, gt=0)


class EditTarget(BaseModel):
    """What an edit will be saved to: a new task, or an existing task id."""

    model_config = ConfigDict(frozen=True)

    task_id: int | None = Field(default=None, description="None means a new task")

    @property
    def is_new(self) -> bool:
        return self.task_id is None


NEW_TASK = EditTarget()


class SessionState(BaseModel):
    """Per-connection UI state.

    Never shared between connections and never persisted. Only the
    fields relevant to ``mode`` are meaningful at any given time.
    """

    identity: str = Field(description="Authenticated username for this connection")
    mode: Mode = Field(default=Mode.BROWSING)
    selected_index: int = Field(default=0, ge=0)
    edit_buffer: str = Field(default="")
    cursor_offset: int = Field(default=0, ge=0)
    edit_target: EditTarget = Field(default=NEW_TASK)
    viewport: Viewport = Field(default_factory=Viewport)
    registration_step: RegistrationStep = Field(default=RegistrationStep.SET_PASSWORD)
    pending_password: str = Field(default="", repr=False)
    notice: str = Field(
        default="", description="Inline registration error, dismissed by the next key"
    )
    status: str = Field(
        default="", description="One-line status shown on the next frame"
    )


# ---------------------------------------------------------------------------
# Store Commands (discriminated union)
# ---------------------------------------------------------------------------


class AddTask(BaseModel):
    model_config = ConfigDict(frozen=True)

    command_type: Literal["add_task"] = "add_task"
    text: str


class UpdateTask(BaseModel):
    model_config = ConfigDict(frozen=True)

    command_type: Literal["update_task"] = "update_task"
    task_id: int
    text: str


class ToggleTask(BaseModel):
    model_config = ConfigDict(frozen=True)

    command_type: Literal["toggle_task"] = "toggle_task"
    task_id: int


class DeleteTask(BaseModel):
    model_config = ConfigDict(frozen=True)

    command_type: Literal["delete_task"] = "delete_task"
    task_id: int


class RegisterCredential(BaseModel):
    model_config = ConfigDict(frozen=True)

    command_type: Literal["register_credential"] = "register_credential"
    username: str
    password: str = Field(repr=False)


StoreCommand = Annotated[
    Union[AddTask, UpdateTask, ToggleTask, DeleteTask, RegisterCredential],
    Field(discriminator="command_type"),
]


class Transition(BaseModel):
    """Result of applying one key event to the session state."""

    state: SessionState
    commands: list[StoreCommand] = Field(default_factory=list)
    needs_redraw: bool = Field(default=True)
    terminate: bool = Field(default=False, description="End the session after this event")
