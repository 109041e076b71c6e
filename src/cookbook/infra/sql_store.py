# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from cookbook.core.clock import as_utc
from cookbook.core.errors import DuplicateKeyError, StorageError
from cookbook.infra.store import (
    ACTIVITIES,
    CASCADE_FROM_USER,
    PASSWORD_RESETS,
    SESSIONS,
    UNIQUE_FIELDS,
    USERS,
    Record,
    Store,
    _check_entity,
)

logger = logging.getLogger(__name__)

metadata = MetaData()

users_table = Table(
    USERS,
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", Text, unique=True, nullable=False),
    Column("name", Text),
    Column("password_hash", Text, nullable=False),
    Column("role", Text, nullable=False),
    Column("status", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

sessions_table = Table(
    SESSIONS,
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True),
    Column("expires_at", DateTime(timezone=True), nullable=False, index=True),
)

password_resets_table = Table(
    PASSWORD_RESETS,
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True),
    Column("token", Text, unique=True, nullable=False),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Column("used", Boolean, nullable=False, default=False),
)

activities_table = Table(
    ACTIVITIES,
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True),
    Column("type", Text, nullable=False),
    Column("target_slug", Text),
    Column("details", Text, nullable=False),
    Column("timestamp", DateTime(timezone=True), nullable=False),
)

TABLES = {
    USERS: users_table,
    SESSIONS: sessions_table,
    PASSWORD_RESETS: password_resets_table,
    ACTIVITIES: activities_table,
}


def database_url() -> str:
    url = os.getenv("COOKBOOK_DATABASE_URL") or os.getenv("POSTGRES_URL")
    if not url:
        raise RuntimeError("Falta COOKBOOK_DATABASE_URL (o POSTGRES_URL) en entorno")
    # Plain postgres:// URLs (as handed out by hosting providers) need a driver.
    if url.startswith("postgres://"):
        url = "postgresql+psycopg://" + url[len("postgres://"):]
    elif url.startswith("postgresql://"):
        url = "postgresql+psycopg://" + url[len("postgresql://"):]
    return url


def make_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        if url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every checkout sees an empty db
            return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


def _to_record(row) -> Record:
    out = dict(row._mapping)
    for k, v in out.items():
        if isinstance(v, datetime):
            out[k] = as_utc(v)
    return out


class SqlStore(Store):
    """Relational backend over SQLAlchemy Core.

    One engine (and so one connection pool) per store; the app creates a
    single store at startup and disposes it on shutdown.
    """

    def __init__(self, url: Optional[str] = None, *, engine: Optional[Engine] = None):
        if engine is None:
            engine = make_engine(url or database_url())
        self._engine = engine
        self._bound: Optional[Connection] = None

    @classmethod
    def _bind(cls, engine: Engine, conn: Connection) -> "SqlStore":
        s = cls(engine=engine)
        s._bound = conn
        return s

    @property
    def engine(self) -> Engine:
        return self._engine

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        if self._bound is not None:
            yield self._bound
            return
        try:
            with self._engine.begin() as conn:
                yield conn
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            raise StorageError(str(e)) from e

    def ensure_ready(self) -> None:
        try:
            metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            raise StorageError(str(e)) from e
        logger.info("Schema ready on %s", self._engine.url.render_as_string(hide_password=True))

    def get(self, entity: str, key: str) -> Optional[Record]:
        _check_entity(entity)
        t = TABLES[entity]
        with self._connect() as conn:
            row = conn.execute(select(t).where(t.c.id == key).limit(1)).first()
        return _to_record(row) if row is not None else None

    def find_all(self, entity: str, **fields: Any) -> List[Record]:
        _check_entity(entity)
        t = TABLES[entity]
        stmt = select(t)
        for k, v in fields.items():
            stmt = stmt.where(t.c[k] == v)
        with self._connect() as conn:
            return [_to_record(r) for r in conn.execute(stmt)]

    def put(self, entity: str, record: Record) -> None:
        _check_entity(entity)
        t = TABLES[entity]
        try:
            with self._connect() as conn:
                conn.execute(insert(t).values(**record))
        except IntegrityError as e:
            # Postgres aborts the surrounding transaction here; the caller's
            # transaction() block rolls back when this propagates.
            field = next((f for f in UNIQUE_FIELDS[entity] if f in str(e.orig)), "id")
            raise DuplicateKeyError(entity, field, record.get(field)) from e

    def update(self, entity: str, key: str, patch: Record, *, expect: Optional[Record] = None) -> int:
        _check_entity(entity)
        if not patch:
            return 0
        t = TABLES[entity]
        stmt = update(t).where(t.c.id == key)
        for k, v in (expect or {}).items():
            stmt = stmt.where(t.c[k] == v)
        try:
            with self._connect() as conn:
                return conn.execute(stmt.values(**patch)).rowcount
        except IntegrityError as e:
            field = next((f for f in UNIQUE_FIELDS[entity] if f in patch), "id")
            raise DuplicateKeyError(entity, field, patch.get(field)) from e

    def delete(self, entity: str, key: str) -> int:
        _check_entity(entity)
        t = TABLES[entity]
        with self._connect() as conn:
            if entity == USERS:
                # sqlite ignores ON DELETE CASCADE unless the pragma is set
                for child in CASCADE_FROM_USER:
                    ct = TABLES[child]
                    conn.execute(delete(ct).where(ct.c.user_id == key))
            return conn.execute(delete(t).where(t.c.id == key)).rowcount

    def delete_expired(self, entity: str, now: datetime) -> int:
        _check_entity(entity)
        t = TABLES[entity]
        with self._connect() as conn:
            return conn.execute(delete(t).where(t.c.expires_at <= now)).rowcount

    @contextmanager
    def transaction(self) -> Iterator["SqlStore"]:
        if self._bound is not None:
            yield self
            return
        try:
            with self._engine.begin() as conn:
                yield type(self)._bind(self._engine, conn)
        except SQLAlchemyError as e:
            raise StorageError(str(e)) from e

    def close(self) -> None:
        if self._bound is None:
            self._engine.dispose()
