# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Single-use password reset tokens.

A token moves from issued to redeemed at most once, and only while unexpired.
Redemption flips ``used`` with a conditional update and rotates the owner's
password hash inside the same store transaction, so either both writes land
or neither does. Records are never deleted; they stay as an audit trail.
"""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from typing import Optional

from cookbook.auth.passwords import hash_password
from cookbook.auth.users import normalize_email
from cookbook.core.clock import Clock, new_id, utcnow
from cookbook.infra.store import PASSWORD_RESETS, USERS, Store

logger = logging.getLogger(__name__)

RESET_TOKEN_TTL = timedelta(hours=1)


class _Abort(Exception):
    """Rolls back the redemption transaction."""


def new_reset_token() -> str:
    return secrets.token_urlsafe(32)


class PasswordResetManager:
    def __init__(self, store: Store, clock: Clock = utcnow, ttl: timedelta = RESET_TOKEN_TTL):
        self.store = store
        self.clock = clock
        self.ttl = ttl

    def create_password_reset_token(self, email: str) -> Optional[str]:
        e = normalize_email(email)
        if not e:
            return None
        user = self.store.find_one(USERS, email=e)
        if user is None:
            return None
        token = new_reset_token()
        self.store.put(
            PASSWORD_RESETS,
            {
                "id": new_id(),
                "user_id": user["id"],
                "token": token,
                "expires_at": self.clock() + self.ttl,
                "used": False,
            },
        )
        return token

    def reset_password_with_token(self, token: str, new_password: str) -> bool:
        if not token or not new_password:
            return False
        try:
            with self.store.transaction() as tx:
                row = tx.find_one(PASSWORD_RESETS, token=token)
                if row is None or row["used"] or row["expires_at"] <= self.clock():
                    return False
                password_hash = hash_password(new_password)
                claimed = tx.update(PASSWORD_RESETS, row["id"], {"used": True}, expect={"used": False})
                if claimed != 1:
                    # another redemption got there first
                    return False
                if tx.update(USERS, row["user_id"], {"password_hash": password_hash}) != 1:
                    raise _Abort()
        except _Abort:
            logger.warning("Reset %s points at a missing user; token left unused", row["id"])
            return False
        logger.info("Password reset redeemed for user %s", row["user_id"])
        return True
