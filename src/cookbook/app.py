# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from cookbook.auth.activity import ActivityLog
from cookbook.auth.cookies import COOKIE_NAME, cookie_settings, sign_session_id, unsign_session_id
from cookbook.auth.password_reset import PasswordResetManager
from cookbook.auth.session import SessionManager
from cookbook.auth.users import UserService
from cookbook.core.clock import Clock, utcnow
from cookbook.core.errors import DuplicateEmailError, StorageError
from cookbook.infra.sql_store import SqlStore
from cookbook.infra.store import Store
from cookbook.permissions import CurrentUser, require_role, require_user

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


@dataclass
class Services:
    store: Store
    activity: ActivityLog
    users: UserService
    sessions: SessionManager
    resets: PasswordResetManager


def build_services(store: Store, clock: Clock = utcnow) -> Services:
    activity = ActivityLog(store, clock)
    return Services(
        store=store,
        activity=activity,
        users=UserService(store, activity, clock),
        sessions=SessionManager(store, activity, clock),
        resets=PasswordResetManager(store, clock),
    )


def bootstrap_admin(services: Services) -> None:
    """Seed the admin account named by COOKBOOK_ADMIN_EMAIL/PASSWORD, if set.

    A failure here is logged and does not stop the app: the rest of the
    service works without an admin.
    """
    email = os.getenv("COOKBOOK_ADMIN_EMAIL", "").strip()
    password = os.getenv("COOKBOOK_ADMIN_PASSWORD", "")
    if not email or not password:
        return
    try:
        services.users.ensure_admin(email, password, name=os.getenv("COOKBOOK_ADMIN_NAME", "Admin User"))
    except Exception:
        logger.exception("Admin bootstrap failed for %s", email)


def _is_production() -> bool:
    return os.getenv("COOKBOOK_ENV", "development").lower() == "production"


def _base_url() -> str:
    return (os.getenv("COOKBOOK_BASE_URL") or "http://localhost:3000").rstrip("/")


async def _read_json(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _str_field(body: dict, key: str) -> str:
    v = body.get(key)
    return v if isinstance(v, str) else ""


def _services(request: Request) -> Services:
    return request.app.state.services


def create_app(store: Optional[Store] = None, clock: Clock = utcnow) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = store is None
        s = store if store is not None else SqlStore()
        s.ensure_ready()
        app.state.services = build_services(s, clock)
        bootstrap_admin(app.state.services)
        try:
            yield
        finally:
            if owned:
                s.close()

    app = FastAPI(lifespan=lifespan)

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException):
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)

    @app.exception_handler(StorageError)
    async def _storage_error(request: Request, exc: StorageError):
        logger.exception("Storage failure on %s", request.url.path, exc_info=exc)
        return JSONResponse({"error": "Internal Server Error"}, status_code=500)

    # ------------------ Auth ------------------

    @app.post("/api/auth/register")
    async def register(request: Request):
        body = await _read_json(request)
        email = _str_field(body, "email").strip().lower()
        password = _str_field(body, "password")
        name = _str_field(body, "name").strip() or None
        if not email or not password:
            return JSONResponse({"error": "Email and password are required"}, status_code=400)
        if len(password) < MIN_PASSWORD_LENGTH:
            return JSONResponse({"error": "Password must be at least 6 characters"}, status_code=400)
        try:
            user = await run_in_threadpool(_services(request).users.create_user, email, password, name)
        except DuplicateEmailError:
            return JSONResponse({"error": "User already exists"}, status_code=409)
        return JSONResponse({"user": user.to_public()}, status_code=201)

    @app.post("/api/auth/login")
    async def login(request: Request):
        body = await _read_json(request)
        email = _str_field(body, "email")
        password = _str_field(body, "password")
        services = _services(request)
        user = await run_in_threadpool(services.users.authenticate, email, password)
        if not user:
            return JSONResponse({"error": "Invalid credentials"}, status_code=401)
        session = await run_in_threadpool(services.sessions.create_session, user.id)
        resp = JSONResponse({"user": user.to_public()})
        resp.set_cookie(COOKIE_NAME, sign_session_id(session.id), **cookie_settings())
        return resp

    @app.post("/api/auth/logout")
    async def logout(request: Request):
        sid = unsign_session_id(request.cookies.get(COOKIE_NAME, ""))
        if sid:
            await run_in_threadpool(_services(request).sessions.delete_session, sid)
        resp = JSONResponse({"success": True})
        resp.delete_cookie(COOKIE_NAME)
        return resp

    @app.get("/api/auth/me")
    def me(current: CurrentUser = Depends(require_user)):
        return {"user": current.user.to_public()}

    @app.post("/api/auth/forgot-password")
    async def forgot_password(request: Request):
        # Same answer whether or not the account exists, errors included.
        try:
            body = await _read_json(request)
            email = _str_field(body, "email").strip().lower()
            if not email:
                return JSONResponse({"success": True})
            token = await run_in_threadpool(_services(request).resets.create_password_reset_token, email)
            if token:
                reset_url = f"{_base_url()}/reset-password?token={quote(token, safe='')}"
                if not _is_production():
                    logger.info("Password reset link: %s", reset_url)
            return JSONResponse({"success": True})
        except Exception:
            logger.exception("Forgot password error")
            return JSONResponse({"success": True})

    @app.post("/api/auth/reset-password")
    async def reset_password(request: Request):
        try:
            body = await _read_json(request)
            token = _str_field(body, "token").strip()
            password = _str_field(body, "password")
            if not token or not password:
                return JSONResponse({"error": "Invalid request"}, status_code=400)
            if len(password) < MIN_PASSWORD_LENGTH:
                return JSONResponse({"error": "Password must be at least 6 characters"}, status_code=400)
            ok = await run_in_threadpool(_services(request).resets.reset_password_with_token, token, password)
            if not ok:
                return JSONResponse({"error": "Reset link is invalid or has expired"}, status_code=400)
            return JSONResponse({"success": True})
        except Exception:
            logger.exception("Reset password error")
            return JSONResponse({"error": "Internal Server Error"}, status_code=500)

    # ------------------ Admin ------------------

    @app.get("/api/admin/users")
    def admin_list_users(request: Request, current: CurrentUser = Depends(require_role("admin"))):
        return {"users": [u.to_public() for u in _services(request).users.list_users()]}

    @app.post("/api/admin/users/{user_id}/status")
    async def admin_update_status(request: Request, user_id: str, current: CurrentUser = Depends(require_role("admin"))):
        body = await _read_json(request)
        status = _str_field(body, "status")
        if status not in ("active", "blocked"):
            return JSONResponse({"error": "Invalid status"}, status_code=400)
        ok = await run_in_threadpool(_services(request).users.update_status, user_id, status)
        if not ok:
            return JSONResponse({"error": "User not found"}, status_code=404)
        return JSONResponse({"success": True})

    @app.delete("/api/admin/users/{user_id}")
    async def admin_delete_user(request: Request, user_id: str, current: CurrentUser = Depends(require_role("admin"))):
        ok = await run_in_threadpool(_services(request).users.delete_user, user_id)
        if not ok:
            return JSONResponse({"error": "User not found"}, status_code=404)
        return JSONResponse({"success": True})

    return app


app = create_app()
