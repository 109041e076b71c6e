# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from typing import List, Optional

from cookbook.core.clock import Clock, new_id, utcnow
from cookbook.infra.store import ACTIVITIES, Record, Store

ACTIVITY_TYPES = {"bookmark", "rating", "login", "signup", "comment"}


class ActivityLog:
    """Per-user audit trail (signup, login/logout, and the recipe actions)."""

    def __init__(self, store: Store, clock: Clock = utcnow):
        self.store = store
        self.clock = clock

    def record(self, user_id: str, type: str, details: str, target_slug: Optional[str] = None) -> Record:
        if type not in ACTIVITY_TYPES:
            raise ValueError(f"Unknown activity type '{type}'")
        rec = {
            "id": new_id(),
            "user_id": user_id,
            "type": type,
            "target_slug": target_slug,
            "details": details,
            "timestamp": self.clock(),
        }
        self.store.put(ACTIVITIES, rec)
        return rec

    def for_user(self, user_id: str) -> List[Record]:
        rows = self.store.find_all(ACTIVITIES, user_id=user_id)
        return sorted(rows, key=lambda r: r["timestamp"], reverse=True)
