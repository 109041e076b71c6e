from datetime import timedelta

from cookbook.infra.store import SESSIONS


def test_create_then_get_returns_owner(services, alice, clock):
    s = services.sessions.create_session(alice.id)
    got = services.sessions.get_session(s.id)
    assert got is not None
    assert got.user_id == alice.id
    assert got.expires_at == clock() + timedelta(days=7)


def test_unknown_or_blank_session_is_none(services):
    assert services.sessions.get_session("no-such-session") is None
    assert services.sessions.get_session("") is None


def test_expired_session_is_rejected_and_removed(services, store, alice, clock):
    s = services.sessions.create_session(alice.id)
    clock.advance(days=7)
    assert services.sessions.get_session(s.id) is None
    assert store.get(SESSIONS, s.id) is None
    assert services.sessions.get_session(s.id) is None


def test_session_valid_until_just_before_expiry(services, alice, clock):
    s = services.sessions.create_session(alice.id)
    clock.advance(days=7, microseconds=-1)
    assert services.sessions.get_session(s.id) is not None


def test_create_prunes_expired_sessions(services, store, alice, clock):
    old = services.sessions.create_session(alice.id)
    clock.advance(days=8)
    services.sessions.create_session(alice.id)
    assert store.get(SESSIONS, old.id) is None


def test_delete_is_idempotent(services, alice):
    s = services.sessions.create_session(alice.id)
    services.sessions.delete_session(s.id)
    services.sessions.delete_session(s.id)
    assert services.sessions.get_session(s.id) is None


def test_login_and_logout_are_logged(services, alice, clock):
    clock.advance(minutes=1)
    s = services.sessions.create_session(alice.id)
    clock.advance(minutes=5)
    services.sessions.delete_session(s.id)
    services.sessions.delete_session(s.id)

    details = [a["details"] for a in services.activity.for_user(alice.id)]
    assert details == ["User logged out", "User logged in", "User registered"]


def test_session_ids_are_unique(services, alice):
    ids = {services.sessions.create_session(alice.id).id for _ in range(5)}
    assert len(ids) == 5
