from datetime import datetime, timedelta

import pytest

from escort.auth.permissions import User
from escort.auth.sessions import SESSION_PREFIX, LoginThrottle, PropertyStore, SessionManager
from escort.errors import AccountLocked

USER = User(email="dispatch@example.org", name="Dispatch", role="dispatcher", auth_method="credentials")


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 6, 10, 14, 0))


def test_session_round_trip_and_expiry(clock):
    props = PropertyStore()
    manager = SessionManager(props, timedelta(hours=8), clock)
    token = manager.create(USER)

    # only the hash of the token is stored
    assert all(token not in key for key in props.keys())

    session = manager.get(token)
    assert session.user() == USER

    clock.advance(hours=7, minutes=59)
    assert manager.get(token) is not None

    clock.advance(minutes=2)
    assert manager.get(token) is None
    assert props.keys(SESSION_PREFIX) == []


def test_unknown_and_blank_tokens(clock):
    manager = SessionManager(PropertyStore(), timedelta(hours=8), clock)
    assert manager.get(None) is None
    assert manager.get("") is None
    assert manager.get("not-a-token") is None


def test_malformed_session_is_dropped(clock):
    props = PropertyStore()
    manager = SessionManager(props, timedelta(hours=8), clock)
    token = manager.create(USER)
    key = props.keys(SESSION_PREFIX)[0]
    props.set(key, {"email": "x@example.org"})
    assert manager.get(token) is None
    assert props.get(key) is None


def test_destroy_and_destroy_all_for(clock):
    manager = SessionManager(PropertyStore(), timedelta(hours=8), clock)
    first, second = manager.create(USER), manager.create(USER)
    manager.destroy(first)
    assert manager.get(first) is None
    assert manager.get(second) is not None
    assert manager.destroy_all_for("DISPATCH@example.org") == 1
    assert manager.get(second) is None


def test_purge_expired(clock):
    props = PropertyStore()
    manager = SessionManager(props, timedelta(hours=8), clock)
    manager.create(USER)
    clock.advance(hours=5)
    fresh = manager.create(USER)
    clock.advance(hours=4)
    assert manager.purge_expired() == 1
    assert manager.get(fresh) is not None


def test_property_store_persists_to_file(tmp_path, clock):
    path = str(tmp_path / "props.json")
    token = SessionManager(PropertyStore(path), timedelta(hours=8), clock).create(USER)

    reloaded = SessionManager(PropertyStore(path), timedelta(hours=8), clock)
    assert reloaded.get(token).email == USER.email


def test_property_store_update_deletes_on_none():
    props = PropertyStore()
    assert props.update("n", lambda v: (v or 0) + 1) == 1
    assert props.update("n", lambda v: (v or 0) + 1) == 2
    props.update("n", lambda v: None)
    assert props.get("n") is None


def test_throttle_locks_after_max_attempts(clock):
    throttle = LoginThrottle(PropertyStore(), max_attempts=5, lockout=timedelta(minutes=15), clock=clock)
    for n in range(1, 5):
        assert throttle.record_failure("dana@example.org") == n
        throttle.check("dana@example.org")

    throttle.record_failure("Dana@example.org")
    with pytest.raises(AccountLocked):
        throttle.check("dana@example.org")

    # other accounts are unaffected
    throttle.check("lee@example.org")

    clock.advance(minutes=16)
    throttle.check("dana@example.org")
    assert throttle.record_failure("dana@example.org") == 1


def test_throttle_reset(clock):
    throttle = LoginThrottle(PropertyStore(), max_attempts=2, clock=clock)
    throttle.record_failure("a@example.org")
    throttle.reset("a@example.org")
    assert throttle.record_failure("a@example.org") == 1
