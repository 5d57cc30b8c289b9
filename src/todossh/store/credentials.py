"""JSON-file credential store with bcrypt password hashes.

All records live in ``<data_dir>/users.json``::

    {"alice": {"username": "alice", "password_hash": "$2b$12$..."}}

Usernames are case-sensitive. Plain-text passwords are never stored or
logged.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

import bcrypt
from pydantic import TypeAdapter, ValidationError

from todossh.store.base import CredentialRecord, CredentialStore, CredentialStoreError, StoreError
from todossh.store.tasks import DIR_MODE, write_private

logger = logging.getLogger(__name__)

USERS_FILE = "users.json"
# bcrypt only looks at the first 72 bytes of a password.
BCRYPT_MAX_PASSWORD_BYTES = 72

_records_adapter = TypeAdapter(dict[str, CredentialRecord])


class JsonCredentialStore(CredentialStore):
    """Credential store persisting every record in one JSON map.

    The file is read once at construction; the in-memory map is the
    source of truth afterwards and is rewritten on each registration.

    Raises:
        StoreError: At construction, if the file exists but cannot be
            read or parsed.
    """

    def __init__(self, data_dir: Path | str) -> None:
        data_dir = Path(data_dir)
        try:
            data_dir.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Failed to create data directory {data_dir}: {e}") from e
        self._path = data_dir / USERS_FILE
        self._lock = threading.RLock()
        self._records = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def lookup(self, user: str) -> CredentialRecord | None:
        with self._lock:
            return self._records.get(user)

    def authenticate(self, user: str, password: str) -> bool:
        record = self.lookup(user)
        if record is None:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), record.password_hash.encode("utf-8"))
        except ValueError as e:
            logger.warning("Stored hash for %s is unusable: %s", user, e)
            return False

    def register(self, user: str, password: str, replace: bool = True) -> None:
        secret = password.encode("utf-8")
        if len(secret) > BCRYPT_MAX_PASSWORD_BYTES:
            raise CredentialStoreError(
                f"Password is longer than {BCRYPT_MAX_PASSWORD_BYTES} bytes", user=user
            )
        try:
            hashed = bcrypt.hashpw(secret, bcrypt.gensalt())
        except ValueError as e:
            raise CredentialStoreError(f"Failed to hash password: {e}", user=user) from e

        record = CredentialRecord(username=user, password_hash=hashed.decode("ascii"))
        with self._lock:
            if not replace and user in self._records:
                raise CredentialStoreError(f"User {user} is already registered", user=user)
            records = dict(self._records)
            records[user] = record
            data = _records_adapter.dump_json(records, indent=2).decode("utf-8")
            try:
                write_private(self._path, data)
            except OSError as e:
                raise CredentialStoreError(
                    f"Failed to write {self._path}: {e}", user=user
                ) from e
            self._records = records
        logger.info("Registered credentials for %s", user)

    def _load(self) -> dict[str, CredentialRecord]:
        if not self._path.exists():
            return {}
        try:
            raw = self._path.read_bytes()
        except OSError as e:
            raise StoreError(f"Failed to read {self._path}: {e}") from e
        if not raw.strip():
            return {}
        try:
            records = _records_adapter.validate_json(raw)
        except ValidationError as e:
            raise StoreError(f"Failed to parse {self._path}: {e}") from e
        logger.info("Loaded %d user(s) from %s", len(records), self._path)
        return records
