# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from cookbook.auth.activity import ActivityLog
from cookbook.auth.passwords import hash_password, needs_rehash, verify_password
from cookbook.core.clock import Clock, new_id, utcnow
from cookbook.core.errors import DuplicateEmailError, DuplicateKeyError
from cookbook.infra.store import USERS, Record, Store

logger = logging.getLogger(__name__)

ROLES = ("user", "admin")
STATUSES = ("active", "blocked")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


@dataclass(frozen=True)
class User:
    id: str
    email: str
    name: Optional[str]
    password_hash: str
    role: str
    status: str
    created_at: datetime

    @property
    def active(self) -> bool:
        return self.status == "active"

    @classmethod
    def from_record(cls, rec: Record) -> "User":
        return cls(
            id=rec["id"],
            email=rec["email"],
            name=rec.get("name"),
            password_hash=rec["password_hash"],
            role=rec.get("role") or "user",
            status=rec.get("status") or "active",
            created_at=rec["created_at"],
        )

    def to_public(self) -> dict:
        """API shape; never carries the password hash."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "status": self.status,
            "createdAt": self.created_at.isoformat(),
        }


class UserService:
    def __init__(self, store: Store, activity: ActivityLog, clock: Clock = utcnow):
        self.store = store
        self.activity = activity
        self.clock = clock

    def find_by_email(self, email: str) -> Optional[User]:
        e = normalize_email(email)
        if not e:
            return None
        rec = self.store.find_one(USERS, email=e)
        return User.from_record(rec) if rec else None

    def find_by_id(self, user_id: str) -> Optional[User]:
        if not user_id:
            return None
        rec = self.store.get(USERS, user_id)
        return User.from_record(rec) if rec else None

    def create_user(self, email: str, password: str, name: Optional[str] = None, role: str = "user") -> User:
        e = normalize_email(email)
        if not e:
            raise ValueError("Email is required")
        if role not in ROLES:
            raise ValueError(f"Unknown role '{role}'")
        if self.find_by_email(e):
            raise DuplicateEmailError(e)
        user = User(
            id=new_id(),
            email=e,
            name=(name or "").strip() or None,
            password_hash=hash_password(password),
            role=role,
            status="active",
            created_at=self.clock(),
        )
        rec = {
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "password_hash": user.password_hash,
            "role": user.role,
            "status": user.status,
            "created_at": user.created_at,
        }
        try:
            with self.store.transaction() as tx:
                tx.put(USERS, rec)
                ActivityLog(tx, self.clock).record(user.id, "signup", "User registered")
        except DuplicateKeyError as exc:
            # lost a race with a concurrent registration of the same email
            raise DuplicateEmailError(e) from exc
        return user

    def authenticate(self, email: str, password: str) -> Optional[User]:
        u = self.find_by_email(email)
        if not u or not u.active:
            return None
        if not verify_password(password, u.password_hash):
            return None
        if needs_rehash(u.password_hash):
            new_hash = hash_password(password)
            self.store.update(USERS, u.id, {"password_hash": new_hash}, expect={"password_hash": u.password_hash})
            logger.info("Upgraded legacy password hash for user %s", u.id)
        return u

    def list_users(self) -> List[User]:
        users = [User.from_record(r) for r in self.store.find_all(USERS)]
        return sorted(users, key=lambda u: u.created_at, reverse=True)

    def update_status(self, user_id: str, status: str) -> bool:
        if status not in STATUSES:
            raise ValueError(f"Unknown status '{status}'")
        return self.store.update(USERS, user_id, {"status": status}) > 0

    def delete_user(self, user_id: str) -> bool:
        return self.store.delete(USERS, user_id) > 0

    def ensure_admin(self, email: str, password: str, name: str = "Admin User") -> Optional[User]:
        """Create the admin account if no user holds ``email`` yet."""
        if self.find_by_email(email):
            return None
        user = self.create_user(email, password, name=name, role="admin")
        logger.info("Seeded admin account %s", user.email)
        return user
