"""JSON-file task store.

Each user's tasks live in their own document::

    <data_dir>/todos/<quoted user>.json
    {"todos": {"1": {...task...}, "2": {...}}, "next_id": 3}

Documents are loaded lazily on first access and cached. Every operation
holds one store-wide re-entrant lock, which serializes concurrent adds
so ids stay unique and increasing per user.
"""

from __future__ import annotations

import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from urllib.parse import quote

from pydantic import BaseModel, Field, ValidationError

from todossh.domain.models import Task
from todossh.store.base import StoreError, TaskNotFoundError, TaskStore

logger = logging.getLogger(__name__)

DIR_MODE = 0o700
FILE_MODE = 0o600


class UserTasks(BaseModel):
    """On-disk document holding one user's tasks."""

    todos: dict[int, Task] = Field(default_factory=dict)
    next_id: int = Field(default=1, ge=1)


def user_file_name(user: str) -> str:
    """File name for a user's document; never contains a path separator."""
    return quote(user, safe="") + ".json"


def write_private(path: Path, data: str) -> None:
    """Replace ``path`` with ``data``, readable by the owner only."""
    tmp = path.with_name(path.name + ".tmp")
    fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, FILE_MODE)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(data)
    os.replace(tmp, path)


class JsonTaskStore(TaskStore):
    """Task store persisting one JSON document per user.

    Usage::

        store = JsonTaskStore("data")
        task = store.add("alice", "buy milk")
        store.toggle_complete("alice", task.id)
    """

    def __init__(self, data_dir: Path | str) -> None:
        self._dir = Path(data_dir) / "todos"
        try:
            self._dir.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Failed to create todos directory {self._dir}: {e}") from e
        self._users: dict[str, UserTasks] = {}
        self._lock = threading.RLock()

    @property
    def directory(self) -> Path:
        return self._dir

    def list(self, user: str) -> list[Task]:
        with self._lock:
            doc = self._document(user)
            return [doc.todos[task_id].model_copy() for task_id in sorted(doc.todos)]

    def add(self, user: str, text: str) -> Task:
        with self._lock:
            doc = self._document(user).model_copy(deep=True)
            now = datetime.now()
            task = Task(id=doc.next_id, text=text, created_at=now, updated_at=now)
            doc.todos[task.id] = task
            doc.next_id += 1
            self._save(user, doc)
            logger.debug("Added task %d for %s", task.id, user)
            return task.model_copy()

    def get(self, user: str, task_id: int) -> Task:
        with self._lock:
            doc = self._document(user)
            if task_id not in doc.todos:
                raise TaskNotFoundError(task_id, user=user)
            return doc.todos[task_id].model_copy()

    def update(self, user: str, task_id: int, text: str) -> Task:
        return self._modify(user, task_id, text=text)

    def toggle_complete(self, user: str, task_id: int) -> Task:
        with self._lock:
            current = self.get(user, task_id)
            return self._modify(user, task_id, completed=not current.completed)

    def delete(self, user: str, task_id: int) -> None:
        with self._lock:
            doc = self._document(user).model_copy(deep=True)
            if task_id not in doc.todos:
                raise TaskNotFoundError(task_id, user=user)
            del doc.todos[task_id]
            self._save(user, doc)
            logger.debug("Deleted task %d for %s", task_id, user)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _modify(self, user: str, task_id: int, **changes: object) -> Task:
        with self._lock:
            doc = self._document(user).model_copy(deep=True)
            if task_id not in doc.todos:
                raise TaskNotFoundError(task_id, user=user)
            changes["updated_at"] = datetime.now()
            task = doc.todos[task_id].model_copy(update=changes)
            doc.todos[task_id] = task
            self._save(user, doc)
            return task.model_copy()

    def _path(self, user: str) -> Path:
        return self._dir / user_file_name(user)

    def _document(self, user: str) -> UserTasks:
        doc = self._users.get(user)
        if doc is not None:
            return doc

        path = self._path(user)
        if path.exists():
            try:
                doc = UserTasks.model_validate_json(path.read_text(encoding="utf-8"))
            except OSError as e:
                raise StoreError(f"Failed to read todos file {path}: {e}", user=user) from e
            except ValidationError as e:
                raise StoreError(f"Failed to parse todos file {path}: {e}", user=user) from e
            logger.debug("Loaded %d tasks for %s from %s", len(doc.todos), user, path)
        else:
            doc = UserTasks()

        self._users[user] = doc
        return doc

    def _save(self, user: str, doc: UserTasks) -> None:
        path = self._path(user)
        try:
            write_private(path, doc.model_dump_json(indent=2))
        except OSError as e:
            logger.error("Failed to write todos for %s: %s", user, e)
            raise StoreError(f"Failed to write todos file {path}: {e}", user=user) from e
        self._users[user] = doc
