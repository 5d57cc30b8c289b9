"""Persistent stores shared by every session.

Public API:
    TaskStore / CredentialStore -- abstract interfaces
    JsonTaskStore -- one JSON document per user
    JsonCredentialStore -- bcrypt hashes in a single JSON map
"""

from todossh.store.base import (
    CredentialRecord,
    CredentialStore,
    CredentialStoreError,
    StoreError,
    TaskNotFoundError,
    TaskStore,
)
from todossh.store.credentials import JsonCredentialStore
from todossh.store.tasks import JsonTaskStore

__all__ = [
    "CredentialRecord",
    "CredentialStore",
    "CredentialStoreError",
    "JsonCredentialStore",
    "JsonTaskStore",
    "StoreError",
    "TaskNotFoundError",
    "TaskStore",
]
