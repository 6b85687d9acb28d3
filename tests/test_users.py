from datetime import timedelta

import pytest

from escort.auth.sessions import LoginThrottle, PropertyStore
from escort.auth.users import (
    authenticate,
    hash_password,
    list_users,
    name_from_email,
    resolve_user,
    set_password,
    verify_password,
)
from escort.errors import AccountLocked, AuthenticationError, ValidationError
from escort.sheets.schema import USERS_SHEET

from conftest import NOW


@pytest.fixture
def throttle():
    return LoginThrottle(PropertyStore(), max_attempts=3, lockout=timedelta(minutes=15), clock=lambda: NOW)


def test_hash_and_verify():
    stored = hash_password("correct horse")
    assert stored.startswith("pbkdf2_sha256$310000$")
    assert verify_password("correct horse", stored)
    assert not verify_password("wrong horse", stored)
    assert not verify_password("correct horse", "plain-text")
    assert not verify_password("correct horse", "md5$1$abc$def")


@pytest.mark.parametrize(
    "stored",
    ["pbkdf2_sha256$abc$AA$AA", "pbkdf2_sha256$1000$@@@$AA", "pbkdf2_sha256$1000$A$AA", "pbkdf2_sha256$0$AA==$AA=="],
)
def test_verify_rejects_malformed_hash(stored):
    assert verify_password("anything", stored) is False


def test_name_from_email():
    assert name_from_email("dana.ortiz@example.org") == "Dana Ortiz"
    assert name_from_email("lee_chang-2@example.org") == "Lee Chang 2"


def test_resolve_user_roles(store):
    assert resolve_user(store, "Admin@Example.org").role == "admin"
    assert resolve_user(store, "dispatch@example.org").role == "dispatcher"

    ina = resolve_user(store, "ina@example.org")
    assert (ina.role, ina.name, ina.rider_id) == ("rider", "Ina Brooks", "JP104")

    assert resolve_user(store, "stranger@example.org") is None
    assert resolve_user(store, "") is None


def test_resolve_user_env_fallback(store):
    boss = resolve_user(store, "boss@example.org", fallback_admins=["BOSS@example.org"])
    assert boss.role == "admin"
    assert boss.name == "Boss"


def test_set_password_then_authenticate(store, throttle):
    assert set_password(store, "dana.ortiz@example.org", "hunter22!", role="rider") is True

    user = authenticate(store, throttle, "Dana.Ortiz@example.org", "hunter22!", now=NOW)
    assert user.role == "rider"
    assert user.name == "Dana Ortiz"
    assert user.rider_id == "JP101"
    assert user.auth_method == "credentials"

    row = store.users(use_cache=False).find("dana.ortiz@example.org")
    assert row["Last Login"] == "06/10/2026 09:00:00"


def test_set_password_updates_existing_row(store):
    set_password(store, "dispatch@example.org", "first-pass", role="dispatcher")
    assert set_password(store, "dispatch@example.org", "second-pass", display_name="Desk") is False
    users = list_users(store)
    assert users == [
        {"email": "dispatch@example.org", "name": "Desk", "role": "dispatcher", "status": "Active", "lastLogin": ""}
    ]


@pytest.mark.parametrize(
    "email,password,role",
    [
        ("not-an-email", "long-enough", "admin"),
        ("a@example.org", "short", "admin"),
        ("a@example.org", "long-enough", "owner"),
        ("a@example.org", "long-enough", ""),
    ],
)
def test_set_password_validation(store, email, password, role):
    with pytest.raises(ValidationError):
        set_password(store, email, password, role=role)


def test_wrong_password_then_lockout(store, throttle):
    set_password(store, "admin@example.org", "right-password", role="admin")
    for _ in range(3):
        with pytest.raises(AuthenticationError, match="Invalid email or password"):
            authenticate(store, throttle, "admin@example.org", "nope", now=NOW)

    with pytest.raises(AccountLocked):
        authenticate(store, throttle, "admin@example.org", "right-password", now=NOW)


def test_unknown_user(store, throttle):
    with pytest.raises(AuthenticationError):
        authenticate(store, throttle, "ghost@example.org", "whatever1", now=NOW)
    with pytest.raises(AuthenticationError, match="required"):
        authenticate(store, throttle, "", "", now=NOW)


def test_disabled_account(store, throttle):
    set_password(store, "lee@example.org", "password-1", role="dispatcher")
    row = store.users(use_cache=False).find("lee@example.org")
    store.update(USERS_SHEET, row["_row"], {"Status": "Disabled"})
    with pytest.raises(AuthenticationError, match="disabled"):
        authenticate(store, throttle, "lee@example.org", "password-1", now=NOW)


def test_malformed_stored_hash_counts_as_failed_login(store, throttle):
    set_password(store, "admin@example.org", "right-password", role="admin")
    row = store.users(use_cache=False).find("admin@example.org")
    store.update(USERS_SHEET, row["_row"], {"Password Hash": "pbkdf2_sha256$abc$AA$AA"})
    for _ in range(3):
        with pytest.raises(AuthenticationError, match="Invalid email or password"):
            authenticate(store, throttle, "admin@example.org", "right-password", now=NOW)

    with pytest.raises(AccountLocked):
        authenticate(store, throttle, "admin@example.org", "right-password", now=NOW)
