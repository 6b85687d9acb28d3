# escort/config.py

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


DEFAULT_SEED_PATH = _repo_root() / "config" / "seed.yml"


@dataclass(frozen=True)
class AppConfig:
    backend: str = "gsheets"
    spreadsheet_id: str = ""
    credentials_path: str = ""
    auth_mode: str = "service_account"
    seed_path: str = str(DEFAULT_SEED_PATH)

    secret_key: str = "dev-only-change-me"
    session_hours: int = 8
    session_store_path: str = ""
    identity_header: str = ""
    admin_emails: tuple[str, ...] = ()
    dispatcher_emails: tuple[str, ...] = ()
    max_login_attempts: int = 5
    lockout_minutes: int = 15
    cookie_secure: bool = False

    timezone: str = "America/Chicago"
    cache_ttl_seconds: int = 300
    max_riders_per_request: int = 4

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""
    smtp_starttls: bool = True

    host: str = "127.0.0.1"
    port: int = 8080


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"Env var {name} must be an integer, got {raw!r}")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def _env_list(name: str) -> tuple[str, ...]:
    raw = os.getenv(name, "")
    return tuple(e.strip().lower() for e in raw.split(",") if e.strip())


def load_config(**overrides) -> AppConfig:
    """Builds the app config from the environment (and `.env`, if present).

    Keyword overrides win over the environment; the CLI uses them for flags
    such as `--backend memory`.
    """
    load_dotenv()

    backend = overrides.pop("backend", None) or os.getenv("ESCORT_BACKEND", "gsheets").strip().lower()
    spreadsheet_id = os.getenv("GOOGLE_SHEETS_SPREADSHEET_ID", "").strip()
    cred_path = os.getenv("GOOGLE_APPLICATION_CREDENTIALS", "").strip()

    if backend not in {"gsheets", "memory"}:
        raise RuntimeError(f"Unknown ESCORT_BACKEND: {backend}")
    if backend == "gsheets":
        if not spreadsheet_id:
            raise RuntimeError("Missing env var: GOOGLE_SHEETS_SPREADSHEET_ID")
        if not cred_path:
            raise RuntimeError("Missing env var: GOOGLE_APPLICATION_CREDENTIALS")

    values = dict(
        backend=backend,
        spreadsheet_id=spreadsheet_id,
        credentials_path=cred_path,
        auth_mode=os.getenv("ESCORT_SHEETS_AUTH", "service_account").strip().lower(),
        seed_path=os.getenv("ESCORT_SEED_PATH", "").strip() or str(DEFAULT_SEED_PATH),
        secret_key=os.getenv("ESCORT_SECRET_KEY", "").strip() or AppConfig.secret_key,
        session_hours=_env_int("ESCORT_SESSION_HOURS", AppConfig.session_hours),
        session_store_path=os.getenv("ESCORT_SESSION_STORE", "").strip(),
        identity_header=os.getenv("ESCORT_IDENTITY_HEADER", "").strip(),
        admin_emails=_env_list("ESCORT_ADMIN_EMAILS"),
        dispatcher_emails=_env_list("ESCORT_DISPATCHER_EMAILS"),
        max_login_attempts=_env_int("ESCORT_MAX_LOGIN_ATTEMPTS", AppConfig.max_login_attempts),
        lockout_minutes=_env_int("ESCORT_LOCKOUT_MINUTES", AppConfig.lockout_minutes),
        cookie_secure=_env_bool("ESCORT_COOKIE_SECURE", AppConfig.cookie_secure),
        timezone=os.getenv("ESCORT_TIMEZONE", "").strip() or AppConfig.timezone,
        cache_ttl_seconds=_env_int("ESCORT_CACHE_TTL", AppConfig.cache_ttl_seconds),
        max_riders_per_request=_env_int("ESCORT_MAX_RIDERS_PER_REQUEST", AppConfig.max_riders_per_request),
        smtp_host=os.getenv("ESCORT_SMTP_HOST", "").strip(),
        smtp_port=_env_int("ESCORT_SMTP_PORT", AppConfig.smtp_port),
        smtp_user=os.getenv("ESCORT_SMTP_USER", "").strip(),
        smtp_password=os.getenv("ESCORT_SMTP_PASSWORD", ""),
        smtp_from=os.getenv("ESCORT_SMTP_FROM", "").strip(),
        smtp_starttls=_env_bool("ESCORT_SMTP_STARTTLS", AppConfig.smtp_starttls),
        host=os.getenv("ESCORT_HOST", "").strip() or AppConfig.host,
        port=_env_int("ESCORT_PORT", AppConfig.port),
    )
    values.update(overrides)
    return AppConfig(**values)
