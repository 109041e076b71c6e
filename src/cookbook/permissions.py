# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request

from cookbook.auth.cookies import COOKIE_NAME, unsign_session_id
from cookbook.auth.users import User

ROLE_ORDER = {"user": 0, "admin": 1}


def _rank(role: str) -> int:
    return ROLE_ORDER.get((role or "user").strip().lower(), 0)


@dataclass(frozen=True)
class CurrentUser:
    user: User
    session_id: str

    @property
    def role(self) -> str:
        return self.user.role


def load_user_from_request(request: Request) -> Optional[CurrentUser]:
    sid = unsign_session_id(request.cookies.get(COOKIE_NAME, ""))
    if not sid:
        return None
    services = request.app.state.services
    sess = services.sessions.get_session(sid)
    if not sess:
        return None
    u = services.users.find_by_id(sess.user_id)
    if not u or not u.active:
        return None
    return CurrentUser(user=u, session_id=sess.id)


def current_user_optional(request: Request) -> Optional[CurrentUser]:
    u = getattr(request.state, "user", None)
    if u is not None:
        return u
    u = load_user_from_request(request)
    request.state.user = u
    return u


def require_user(request: Request) -> CurrentUser:
    u = current_user_optional(request)
    if u:
        return u
    raise HTTPException(status_code=401, detail="Unauthorized")


def require_role(min_role: str):
    def _dep(request: Request) -> CurrentUser:
        u = require_user(request)
        if _rank(u.role) < _rank(min_role):
            raise HTTPException(status_code=403, detail="Forbidden")
        return u

    return _dep
