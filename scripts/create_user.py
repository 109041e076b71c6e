#!/usr/bin/env python3
from __future__ import annotations

from getpass import getpass

from cookbook.auth.activity import ActivityLog
from cookbook.auth.users import ROLES, UserService
from cookbook.core.errors import DuplicateEmailError
from cookbook.infra.sql_store import SqlStore


def main() -> None:
    store = SqlStore()
    store.ensure_ready()
    try:
        users = UserService(store, ActivityLog(store))

        email = input("Email: ").strip()
        name = input("Name (optional): ").strip() or None
        role = (input("Role [user/admin]: ").strip().lower() or "user")
        if role not in ROLES:
            raise SystemExit(f"Rol desconocido: {role}")

        pw1 = getpass("Password: ")
        pw2 = getpass("Repeat password: ")
        if pw1 != pw2:
            raise SystemExit("Passwords no coinciden")

        try:
            user = users.create_user(email, pw1, name=name, role=role)
        except DuplicateEmailError:
            raise SystemExit(f"Ya existe un usuario con email {email}")
        print(f"OK -> {user.id} ({user.email}, {user.role})")
    finally:
        store.close()


if __name__ == "__main__":
    main()
