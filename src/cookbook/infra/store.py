# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Persistence interface shared by the auth components.

Records are plain dicts keyed by their ``id`` field. Every backend exposes the
same small surface (get/find/put/update/delete plus a transactional unit) so
the components can run against sqlite/Postgres in production and an
in-process store in tests.
"""

from __future__ import annotations

import copy
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from cookbook.core.errors import DuplicateKeyError

USERS = "users"
SESSIONS = "sessions"
PASSWORD_RESETS = "password_resets"
ACTIVITIES = "activities"

ENTITIES = (USERS, SESSIONS, PASSWORD_RESETS, ACTIVITIES)

# entity -> fields that must be unique across records
UNIQUE_FIELDS: Dict[str, tuple] = {
    USERS: ("email",),
    SESSIONS: (),
    PASSWORD_RESETS: ("token",),
    ACTIVITIES: (),
}

# Records owned by a user (via user_id) go away with the user.
CASCADE_FROM_USER = (SESSIONS, PASSWORD_RESETS, ACTIVITIES)

Record = Dict[str, Any]


def _check_entity(entity: str) -> None:
    if entity not in ENTITIES:
        raise ValueError(f"Unknown entity '{entity}'")


class Store(ABC):
    @abstractmethod
    def ensure_ready(self) -> None:
        """Create the backing structures if missing. Idempotent."""

    @abstractmethod
    def get(self, entity: str, key: str) -> Optional[Record]:
        ...

    @abstractmethod
    def find_all(self, entity: str, **fields: Any) -> List[Record]:
        ...

    def find_one(self, entity: str, **fields: Any) -> Optional[Record]:
        rows = self.find_all(entity, **fields)
        return rows[0] if rows else None

    @abstractmethod
    def put(self, entity: str, record: Record) -> None:
        """Insert a new record. Raises DuplicateKeyError on a unique clash."""

    @abstractmethod
    def update(self, entity: str, key: str, patch: Record, *, expect: Optional[Record] = None) -> int:
        """Apply ``patch`` to the record ``key``.

        When ``expect`` is given the update only happens if every listed field
        currently holds the expected value. Returns the affected row count.
        """

    @abstractmethod
    def delete(self, entity: str, key: str) -> int:
        ...

    @abstractmethod
    def delete_expired(self, entity: str, now: datetime) -> int:
        """Delete every record whose ``expires_at`` is at or before ``now``."""

    @abstractmethod
    def transaction(self):
        """Context manager yielding a store whose writes commit together."""

    def close(self) -> None:
        pass


class MemoryStore(Store):
    """In-process store.

    A single re-entrant lock serialises operations; a transaction holds it for
    its whole body and restores a snapshot of the tables if the body raises.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tables: Dict[str, Dict[str, Record]] = {e: {} for e in ENTITIES}
        self._depth = 0

    def ensure_ready(self) -> None:
        with self._lock:
            for e in ENTITIES:
                self._tables.setdefault(e, {})

    def get(self, entity: str, key: str) -> Optional[Record]:
        _check_entity(entity)
        with self._lock:
            rec = self._tables[entity].get(key)
            return dict(rec) if rec is not None else None

    def find_all(self, entity: str, **fields: Any) -> List[Record]:
        _check_entity(entity)
        with self._lock:
            return [
                dict(rec)
                for rec in self._tables[entity].values()
                if all(rec.get(k) == v for k, v in fields.items())
            ]

    def _check_unique(self, entity: str, record: Record, skip_key: Optional[str] = None) -> None:
        for field in UNIQUE_FIELDS.get(entity, ()):
            if field not in record:
                continue
            for key, other in self._tables[entity].items():
                if key != skip_key and other.get(field) == record[field]:
                    raise DuplicateKeyError(entity, field, record[field])

    def put(self, entity: str, record: Record) -> None:
        _check_entity(entity)
        key = record.get("id")
        if not key:
            raise ValueError("Record without id")
        with self._lock:
            if key in self._tables[entity]:
                raise DuplicateKeyError(entity, "id", key)
            self._check_unique(entity, record)
            self._tables[entity][key] = dict(record)

    def update(self, entity: str, key: str, patch: Record, *, expect: Optional[Record] = None) -> int:
        _check_entity(entity)
        with self._lock:
            rec = self._tables[entity].get(key)
            if rec is None:
                return 0
            if expect and any(rec.get(k) != v for k, v in expect.items()):
                return 0
            self._check_unique(entity, patch, skip_key=key)
            rec.update(patch)
            return 1

    def delete(self, entity: str, key: str) -> int:
        _check_entity(entity)
        with self._lock:
            if self._tables[entity].pop(key, None) is None:
                return 0
            if entity == USERS:
                for child in CASCADE_FROM_USER:
                    table = self._tables[child]
                    for k in [k for k, r in table.items() if r.get("user_id") == key]:
                        del table[k]
            return 1

    def delete_expired(self, entity: str, now: datetime) -> int:
        _check_entity(entity)
        with self._lock:
            table = self._tables[entity]
            stale = [k for k, r in table.items() if r.get("expires_at") is not None and r["expires_at"] <= now]
            for k in stale:
                del table[k]
            return len(stale)

    @contextmanager
    def transaction(self) -> Iterator["MemoryStore"]:
        with self._lock:
            if self._depth:
                # nested: the outer transaction owns commit/rollback
                yield self
                return
            snapshot = copy.deepcopy(self._tables)
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._tables = snapshot
                raise
            finally:
                self._depth -= 1
