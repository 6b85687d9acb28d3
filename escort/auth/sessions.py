# escort/auth/sessions.py

from __future__ import annotations

import hashlib
import json
import logging
import os
import secrets
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from escort.auth.permissions import User
from escort.errors import AccountLocked

logger = logging.getLogger(__name__)

SESSION_PREFIX = "session:"
LOCKOUT_PREFIX = "lockout:"


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PropertyStore:
    """Thread-safe JSON key-value store.

    Keeps everything in memory; with `path` set, each write is flushed to
    that file (write to a temp file, then rename) and the file is loaded
    on start.
    """

    def __init__(self, path: str = ""):
        self.path = path
        self._lock = threading.RLock()
        self._data: dict[str, Any] = {}
        if path and os.path.exists(path):
            with open(path, "r", encoding="utf-8") as f:
                self._data = json.load(f)

    def _flush(self) -> None:
        if not self.path:
            return
        tmp = f"{self.path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(self._data, f)
        os.replace(tmp, self.path)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value
            self._flush()

    def delete(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._flush()

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return [k for k in self._data if k.startswith(prefix)]

    def update(self, key: str, fn: Callable[[Any], Any]) -> Any:
        """Atomic read-modify-write. `fn` gets the current value (or None)
        and returns the new one; returning None deletes the key."""
        with self._lock:
            new = fn(self._data.get(key))
            if new is None:
                self._data.pop(key, None)
            else:
                self._data[key] = new
            self._flush()
            return new


def token_hash(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class Session:
    email: str
    name: str
    role: str
    auth_method: str
    created_at: str
    rider_id: str = ""

    def created(self) -> datetime:
        return datetime.fromisoformat(self.created_at)

    def user(self) -> User:
        return User(
            email=self.email,
            name=self.name,
            role=self.role,
            auth_method=self.auth_method,
            rider_id=self.rider_id,
        )


class SessionManager:
    """Server-side sessions keyed by a hash of the random token.

    The raw token lives only in the client's signed cookie. A session older
    than `max_age` is treated as gone on the next lookup and deleted.
    """

    def __init__(self, props: PropertyStore, max_age: timedelta, clock: Callable[[], datetime] = utcnow):
        self.props = props
        self.max_age = max_age
        self.clock = clock

    def create(self, user: User) -> str:
        token = secrets.token_urlsafe(32)
        session = Session(
            email=user.email,
            name=user.name,
            role=user.role,
            auth_method=user.auth_method,
            created_at=self.clock().isoformat(),
            rider_id=user.rider_id,
        )
        self.props.set(SESSION_PREFIX + token_hash(token), asdict(session))
        logger.info("Session created for %s (%s)", user.email, user.auth_method)
        return token

    def _is_expired(self, session: Session) -> bool:
        try:
            created = session.created()
        except ValueError:
            return True
        return self.clock() - created > self.max_age

    def get(self, token: str | None) -> Session | None:
        if not token:
            return None
        key = SESSION_PREFIX + token_hash(token)
        raw = self.props.get(key)
        if not raw:
            return None
        try:
            session = Session(**raw)
        except TypeError:
            logger.warning("Dropping malformed session record")
            self.props.delete(key)
            return None
        if self._is_expired(session):
            self.props.delete(key)
            return None
        return session

    def destroy(self, token: str | None) -> None:
        if token:
            self.props.delete(SESSION_PREFIX + token_hash(token))

    def destroy_all_for(self, email: str) -> int:
        email = email.strip().lower()
        removed = 0
        for key in self.props.keys(SESSION_PREFIX):
            raw = self.props.get(key) or {}
            if str(raw.get("email", "")).lower() == email:
                self.props.delete(key)
                removed += 1
        return removed

    def purge_expired(self) -> int:
        removed = 0
        for key in self.props.keys(SESSION_PREFIX):
            raw = self.props.get(key) or {}
            try:
                expired = self._is_expired(Session(**raw))
            except TypeError:
                expired = True
            if expired:
                self.props.delete(key)
                removed += 1
        return removed


class LoginThrottle:
    """Per-email failed-login counter with a timed lockout."""

    def __init__(
        self,
        props: PropertyStore,
        max_attempts: int = 5,
        lockout: timedelta = timedelta(minutes=15),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.props = props
        self.max_attempts = max_attempts
        self.lockout = lockout
        self.clock = clock

    def _key(self, email: str) -> str:
        return LOCKOUT_PREFIX + email.strip().lower()

    def check(self, email: str) -> None:
        state = self.props.get(self._key(email)) or {}
        until = state.get("locked_until")
        if until and datetime.fromisoformat(until) > self.clock():
            raise AccountLocked("Too many failed sign-in attempts. Try again later.")

    def record_failure(self, email: str) -> int:
        now = self.clock()

        def _bump(state: Any) -> dict[str, Any]:
            state = dict(state or {})
            until = state.get("locked_until")
            if until and datetime.fromisoformat(until) <= now:
                state = {}
            state["failures"] = int(state.get("failures", 0)) + 1
            if state["failures"] >= self.max_attempts:
                state["locked_until"] = (now + self.lockout).isoformat()
            return state

        state = self.props.update(self._key(email), _bump)
        if "locked_until" in state:
            logger.warning("Sign-in locked for %s after %d failures", email, state["failures"])
        return state["failures"]

    def reset(self, email: str) -> None:
        self.props.delete(self._key(email))
