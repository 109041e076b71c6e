# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import os
from typing import Optional

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

from cookbook.auth.session import SESSION_TTL

COOKIE_NAME = os.getenv("COOKBOOK_COOKIE_NAME", "cookbook_session")
COOKIE_MAX_AGE_SECONDS = int(SESSION_TTL.total_seconds())


def _serializer() -> URLSafeTimedSerializer:
    secret = os.getenv("COOKBOOK_SECRET_KEY") or os.getenv("SECRET_KEY")
    if not secret:
        raise RuntimeError("Falta COOKBOOK_SECRET_KEY (o SECRET_KEY) en entorno")
    salt = os.getenv("COOKBOOK_SESSION_SALT", "cookbook.session.v1")
    return URLSafeTimedSerializer(secret_key=secret, salt=salt)


def sign_session_id(session_id: str) -> str:
    return _serializer().dumps({"sid": session_id})


def unsign_session_id(token: str, *, max_age: int = COOKIE_MAX_AGE_SECONDS) -> Optional[str]:
    """Return the session id carried by a cookie value, or None if it was tampered with."""
    if not token:
        return None
    try:
        data = _serializer().loads(token, max_age=max_age)
    except (BadSignature, BadTimeSignature):
        return None
    sid = str((data or {}).get("sid") or "").strip() if isinstance(data, dict) else ""
    return sid or None


def cookie_settings() -> dict:
    secure = os.getenv("COOKBOOK_COOKIE_SECURE", "false").lower() in {"1", "true", "yes", "y"}
    return {"httponly": True, "samesite": "lax", "secure": secure, "max_age": COOKIE_MAX_AGE_SECONDS}
