# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from cookbook.auth.activity import ActivityLog
from cookbook.core.clock import Clock, new_id, utcnow
from cookbook.infra.store import SESSIONS, Record, Store

logger = logging.getLogger(__name__)

SESSION_TTL = timedelta(days=7)


@dataclass(frozen=True)
class Session:
    id: str
    user_id: str
    expires_at: datetime

    @classmethod
    def from_record(cls, rec: Record) -> "Session":
        return cls(id=rec["id"], user_id=rec["user_id"], expires_at=rec["expires_at"])

    def to_dict(self) -> dict:
        return {"id": self.id, "userId": self.user_id, "expiresAt": self.expires_at.isoformat()}


class SessionManager:
    """Server-side sessions with a fixed absolute expiry (no sliding renewal)."""

    def __init__(self, store: Store, activity: ActivityLog, clock: Clock = utcnow, ttl: timedelta = SESSION_TTL):
        self.store = store
        self.activity = activity
        self.clock = clock
        self.ttl = ttl

    def create_session(self, user_id: str) -> Session:
        now = self.clock()
        pruned = self.store.delete_expired(SESSIONS, now)
        if pruned:
            logger.debug("Pruned %d expired sessions", pruned)
        session = Session(id=new_id(), user_id=user_id, expires_at=now + self.ttl)
        self.store.put(SESSIONS, {"id": session.id, "user_id": user_id, "expires_at": session.expires_at})
        self.activity.record(user_id, "login", "User logged in")
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        if not session_id:
            return None
        rec = self.store.get(SESSIONS, session_id)
        if rec is None:
            return None
        if rec["expires_at"] <= self.clock():
            self.store.delete(SESSIONS, session_id)
            return None
        return Session.from_record(rec)

    def delete_session(self, session_id: str) -> None:
        if not session_id:
            return
        rec = self.store.get(SESSIONS, session_id)
        if rec is not None:
            self.activity.record(rec["user_id"], "login", "User logged out")
        self.store.delete(SESSIONS, session_id)
