"""Domain models for todossh.

This package contains the core data structures, enumerations, and value
objects used throughout the system. All models use Pydantic v2 for
validation and serialization.
"""

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
    StoreCommand,
    Task,
    ToggleTask,
    Transition,
    UpdateTask,
    Viewport,
)

__all__ = [
    "NEW_TASK",
    "AddTask",
    "DeleteTask",
    "EditTarget",
    "Key",
    "KeyEvent",
    "Mode",
    "RegisterCredential",
    "RegistrationStep",
    "SessionState",
    "StoreCommand",
    "Task",
    "ToggleTask",
    "Transition",
    "UpdateTask",
    "Viewport",
]
