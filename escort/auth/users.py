# escort/auth/users.py

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import re
import secrets
from datetime import datetime
from typing import Any

from escort.activity import ACTIVITY_LOGGER
from escort.auth.permissions import ROLES, User
from escort.auth.sessions import LoginThrottle
from escort.errors import AuthenticationError, ValidationError
from escort.formatting import local_now, sheet_timestamp
from escort.rider_crud import EMAIL_RE, find_rider_by_email
from escort.sheets.schema import USERS_SHEET
from escort.store import SheetStore

logger = logging.getLogger(__name__)
activity = logging.getLogger(ACTIVITY_LOGGER)

PBKDF2_ITERATIONS = 310_000
MIN_PASSWORD_LENGTH = 8


def hash_password(password: str, salt: bytes | None = None) -> str:
    salt = salt or secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${base64.b64encode(salt).decode()}${base64.b64encode(digest).decode()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        algo, iterations, salt_b64, digest_b64 = stored.split("$", 3)
    except ValueError:
        return False
    if algo != "pbkdf2_sha256":
        return False
    try:
        rounds = int(iterations)
        salt = base64.b64decode(salt_b64, validate=True)
        expected = base64.b64decode(digest_b64, validate=True)
    except (ValueError, binascii.Error):
        return False
    if rounds < 1:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
    return hmac.compare_digest(digest, expected)


def name_from_email(email: str) -> str:
    local = email.split("@", 1)[0]
    return re.sub(r"[._-]+", " ", local).strip().title()


def role_lists(store: SheetStore, fallback_admins=(), fallback_dispatchers=()) -> tuple[set[str], set[str]]:
    """Admin and dispatcher allow-lists from the Settings tab, merged with
    the env-configured lists so a missing tab never locks admins out."""
    admins = {e.lower() for e in fallback_admins}
    dispatchers = {e.lower() for e in fallback_dispatchers}
    for rec in store.settings().records:
        a = rec.get("Admin Emails", "").strip().lower()
        d = rec.get("Dispatcher Emails", "").strip().lower()
        if a:
            admins.add(a)
        if d:
            dispatchers.add(d)
    return admins, dispatchers


def resolve_user(
    store: SheetStore,
    email: str,
    auth_method: str = "identity",
    fallback_admins=(),
    fallback_dispatchers=(),
) -> User | None:
    """Maps an email to a User, or None when the email has no role.

    Order: admin list, dispatcher list, then a rider row with that email.
    """
    email = (email or "").strip().lower()
    if not email:
        return None

    rider = find_rider_by_email(store, email)
    name = rider.get("Full Name", "").strip() if rider else ""
    rider_id = rider.get("Rider ID", "").strip() if rider else ""

    admins, dispatchers = role_lists(store, fallback_admins, fallback_dispatchers)
    if email in admins:
        role = "admin"
    elif email in dispatchers:
        role = "dispatcher"
    elif rider:
        role = "rider"
    else:
        return None

    return User(email=email, name=name or name_from_email(email), role=role, auth_method=auth_method, rider_id=rider_id)


def _user_row(store: SheetStore, email: str) -> dict[str, Any] | None:
    return store.users(use_cache=False).find(email)


def authenticate(
    store: SheetStore,
    throttle: LoginThrottle,
    email: str,
    password: str,
    now: datetime | None = None,
) -> User:
    """Credential login against the Users tab. Raises AuthenticationError
    (or AccountLocked) with a message fit to show on the login page."""
    email = (email or "").strip().lower()
    if not email or not password:
        raise AuthenticationError("Email and password are required")

    throttle.check(email)
    row = _user_row(store, email)
    if row is None or not verify_password(password, row.get("Password Hash", "")):
        throttle.record_failure(email)
        activity.warning("Failed sign-in for %s", email)
        raise AuthenticationError("Invalid email or password")

    if row.get("Status", "Active").strip().lower() not in {"", "active"}:
        raise AuthenticationError("This account is disabled")

    role = row.get("Role", "").strip().lower()
    if role not in ROLES:
        raise AuthenticationError("This account has no role assigned")

    throttle.reset(email)
    store.update(USERS_SHEET, row["_row"], {"Last Login": sheet_timestamp(now or local_now())})

    rider = find_rider_by_email(store, email)
    name = row.get("Display Name", "").strip() or (rider or {}).get("Full Name", "") or name_from_email(email)
    activity.info("Signed in: %s (%s)", email, role)
    return User(
        email=email,
        name=name,
        role=role,
        auth_method="credentials",
        rider_id=(rider or {}).get("Rider ID", ""),
    )


def set_password(store: SheetStore, email: str, password: str, role: str = "", display_name: str = "") -> bool:
    """Creates the Users row if needed, otherwise resets its password (and
    role / name when given). Returns True when a row was created."""
    email = (email or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("A valid email is required")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    role = (role or "").strip().lower()
    if role and role not in ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(ROLES)}")

    with store.transaction():
        row = _user_row(store, email)
        if row is None:
            if not role:
                raise ValidationError("Role is required for a new user")
            store.append(
                USERS_SHEET,
                {
                    "Email": email,
                    "Display Name": display_name or name_from_email(email),
                    "Role": role,
                    "Password Hash": hash_password(password),
                    "Status": "Active",
                },
            )
            created = True
        else:
            changes = {"Password Hash": hash_password(password)}
            if role:
                changes["Role"] = role
            if display_name:
                changes["Display Name"] = display_name
            store.update(USERS_SHEET, row["_row"], changes)
            created = False

    activity.info("User %s %s", email, "created" if created else "updated")
    return created


def list_users(store: SheetStore) -> list[dict[str, str]]:
    return [
        {
            "email": r.get("Email", ""),
            "name": r.get("Display Name", ""),
            "role": r.get("Role", ""),
            "status": r.get("Status", "") or "Active",
            "lastLogin": r.get("Last Login", ""),
        }
        for r in store.users().records
        if r.get("Email")
    ]
