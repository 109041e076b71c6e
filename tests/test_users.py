import hashlib

import pytest

from cookbook.auth.passwords import needs_rehash, verify_password
from cookbook.core.errors import DuplicateEmailError
from cookbook.infra.store import ACTIVITIES, SESSIONS, USERS


def test_create_user_normalises_email(services, alice):
    assert alice.email == "alice@example.com"
    assert alice.role == "user"
    assert alice.status == "active"
    assert services.users.find_by_email("  ALICE@EXAMPLE.COM") == alice
    assert services.users.find_by_id(alice.id) == alice


def test_duplicate_email_is_a_policy_error(services, alice):
    with pytest.raises(DuplicateEmailError):
        services.users.create_user("alice@EXAMPLE.com", "another1")


def test_signup_is_logged(services, alice):
    acts = services.activity.for_user(alice.id)
    assert [(a["type"], a["details"]) for a in acts] == [("signup", "User registered")]


def test_public_shape_hides_password_hash(alice):
    public = alice.to_public()
    assert "password_hash" not in public
    assert "passwordHash" not in public
    assert public["email"] == "alice@example.com"


def test_authenticate(services, alice):
    assert services.users.authenticate("alice@example.com", "wonderland") == alice
    assert services.users.authenticate("alice@example.com", "wrong") is None
    assert services.users.authenticate("ghost@example.com", "wonderland") is None


def test_blocked_user_cannot_authenticate(services, alice):
    assert services.users.update_status(alice.id, "blocked") is True
    assert services.users.authenticate(alice.email, "wonderland") is None
    assert services.users.update_status(alice.id, "active") is True
    assert services.users.authenticate(alice.email, "wonderland") is not None


def test_update_status_validates(services, alice):
    with pytest.raises(ValueError):
        services.users.update_status(alice.id, "suspended")
    assert services.users.update_status("missing-id", "blocked") is False


def test_legacy_hash_is_upgraded_on_login(services, store, alice):
    legacy = hashlib.sha256(b"old-secret").hexdigest()
    store.update(USERS, alice.id, {"password_hash": legacy})

    assert services.users.authenticate(alice.email, "old-secret") is not None
    upgraded = store.get(USERS, alice.id)["password_hash"]
    assert not needs_rehash(upgraded)
    assert verify_password("old-secret", upgraded)


def test_list_users_newest_first(services, alice, clock):
    clock.advance(minutes=1)
    bob = services.users.create_user("bob@example.com", "builder1")
    assert [u.id for u in services.users.list_users()] == [bob.id, alice.id]


def test_delete_user_cascades(services, store, alice):
    session = services.sessions.create_session(alice.id)
    assert services.users.delete_user(alice.id) is True
    assert services.users.find_by_id(alice.id) is None
    assert store.get(SESSIONS, session.id) is None
    assert store.find_all(ACTIVITIES, user_id=alice.id) == []
    assert services.users.delete_user(alice.id) is False


def test_ensure_admin_is_idempotent(services):
    admin = services.users.ensure_admin("admin@example.com", "admin123")
    assert admin is not None and admin.role == "admin"
    assert services.users.ensure_admin("admin@example.com", "admin123") is None
    assert len(services.users.list_users()) == 1
