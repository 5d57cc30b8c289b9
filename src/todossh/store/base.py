"""Abstract store interfaces shared by every connection.

The session loop only ever talks to ``TaskStore`` and
``CredentialStore``. Both are synchronous: implementations may block on
disk I/O, so async callers run them in an executor. Implementations are
shared across all connections and must do their own locking.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict, Field

from todossh.domain.models import Task

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when a store operation fails."""

    def __init__(self, message: str, user: str = "") -> None:
        super().__init__(message)
        self.user = user


class TaskNotFoundError(StoreError):
    """Raised when an id is not present in the user's task list."""

    def __init__(self, task_id: int, user: str = "") -> None:
        super().__init__(f"todo with ID {task_id} not found", user=user)
        self.task_id = task_id


class CredentialStoreError(StoreError):
    """Raised when a credential cannot be hashed or persisted."""


class CredentialRecord(BaseModel):
    """A stored credential. Only the bcrypt hash is kept."""

    model_config = ConfigDict(frozen=True)

    username: str
    password_hash: str = Field(repr=False)


class TaskStore(ABC):
    """Per-user task lists keyed by identity.

    Ids are allocated per user, unique and increasing, never reused.
    An id only resolves inside the list of the user passed alongside it.
    """

    @abstractmethod
    def list(self, user: str) -> list[Task]:
        """Return the user's tasks ordered by id ascending."""
        ...

    @abstractmethod
    def add(self, user: str, text: str) -> Task:
        ...

    @abstractmethod
    def get(self, user: str, task_id: int) -> Task:
        """Raises TaskNotFoundError if the id is unknown."""
        ...

    @abstractmethod
    def update(self, user: str, task_id: int, text: str) -> Task:
        """Replace a task's text.

        Raises:
            TaskNotFoundError: If the id is unknown for this user.
        """
        ...

    @abstractmethod
    def delete(self, user: str, task_id: int) -> None:
        """Raises TaskNotFoundError if the id is unknown."""
        ...

    @abstractmethod
    def toggle_complete(self, user: str, task_id: int) -> Task:
        """Flip the completed flag.

        Raises:
            TaskNotFoundError: If the id is unknown for this user.
        """
        ...


class CredentialStore(ABC):
    """Username to password-hash records."""

    @abstractmethod
    def lookup(self, user: str) -> CredentialRecord | None:
        ...

    @abstractmethod
    def authenticate(self, user: str, password: str) -> bool:
        """True only for a known user whose password matches."""
        ...

    @abstractmethod
    def register(self, user: str, password: str, replace: bool = True) -> None:
        """Create the record for ``user``, or replace it if ``replace`` is set.

        Raises:
            CredentialStoreError: If the password cannot be hashed, the
                record cannot be written, or ``user`` already has a record
                and ``replace`` is False.
        """
        ...
