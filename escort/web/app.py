# escort/web/app.py
"""Flask entry points.

`/` renders pages (branching on `page`, `auth` and `action` query
parameters), `/rpc/<name>` returns page data for the embedded scripts and
`/api` takes `{action, data}` posts.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable

from flask import Flask, Response, current_app, g, jsonify, redirect, render_template, request, session
from werkzeug.exceptions import HTTPException

from escort import pages
from escort.activity import attach_sheet_log
from escort.assignments import get_assignment, process_assignment, update_assignment_status
from escort.auth.permissions import PAGE_ACCESS, User, can_access_record, can_view_page, has_permission
from escort.auth.sessions import LoginThrottle, PropertyStore, SessionManager
from escort.auth.users import authenticate, list_users, resolve_user, set_password
from escort.config import AppConfig, load_config
from escort.errors import AuthenticationError, EscortError, NotFoundError, PermissionDenied, ValidationError
from escort.formatting import local_now
from escort.ids import generate_missing_request_ids
from escort.notifications import Mailer, send_assignment_notification, send_bulk_notifications
from escort.reports import generate_report_data
from escort.request_crud import create_request, delete_request, update_request
from escort.rider_crud import add_rider, bulk_update_rider_status, delete_rider, export_riders_csv, update_rider
from escort.sheets.client import open_workbook
from escort.store import SheetStore
from escort.web.navigation import compose_page

logger = logging.getLogger(__name__)


@dataclass
class Services:
    cfg: AppConfig
    store: SheetStore
    mailer: Mailer
    sessions: SessionManager
    throttle: LoginThrottle
    clock: Callable[[], datetime]

    def now(self) -> datetime:
        return self.clock()

    def today(self) -> date:
        return self.clock().date()


def services() -> Services:
    return current_app.extensions["escort"]


def _timestamp() -> str:
    return services().now().isoformat(timespec="seconds")


def json_ok(data: Any) -> Response:
    return jsonify({"success": True, "data": data, "timestamp": _timestamp()})


def json_error(message: str, status: int) -> tuple[Response, int]:
    return jsonify({"success": False, "error": message, "timestamp": _timestamp()}), status


def error_page(message: str, status: int = 500, title: str = "Something went wrong") -> tuple[str, int]:
    return render_template("error.html", title=title, message=message, status=status), status


def _require(user: User, resource: str, action: str) -> None:
    if not has_permission(user, resource, action):
        raise PermissionDenied(f"Your role ({user.role}) cannot {action} {resource}")


def _csrf_token() -> str:
    if "csrf" not in session:
        session["csrf"] = secrets.token_urlsafe(24)
    return session["csrf"]


# --- page data calls -------------------------------------------------------

def _int_arg(args: dict[str, str], key: str, default: int) -> int:
    raw = str(args.get(key, "") or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{key} must be a whole number")


def _rpc_table(svc: Services, user: User) -> dict[str, tuple[str, Callable[[dict[str, str]], Any]]]:
    """name -> (page the caller must be allowed to open, handler)."""
    store, today = svc.store, svc.today()
    return {
        "getPageDataForDashboard": ("dashboard", lambda a: pages.page_data_for_dashboard(store, user, today)),
        "getPageDataForRequests": ("requests", lambda a: pages.page_data_for_requests(store, user, a.get("status", "All"))),
        "getPageDataForAssignments": (
            "assignments",
            lambda a: pages.page_data_for_assignments(store, user, today, a.get("requestId", "")),
        ),
        "getFilteredRequestsForAssignments": ("assignments", lambda a: pages.assignable_requests(store)),
        "getEscortDetailsForAssignment": (
            "assignments",
            lambda a: pages.escort_details_for_assignment(store, a.get("requestId", "")),
        ),
        "getPageDataForRiders": ("riders", lambda a: pages.page_data_for_riders(store, user)),
        "getPageDataForNotifications": ("notifications", lambda a: pages.page_data_for_notifications(store, user, today)),
        "getPageDataForReports": ("reports", lambda a: pages.page_data_for_reports(store, user, a)),
        "getPageDataForMySchedule": (
            "my-schedule",
            lambda a: pages.page_data_for_my_schedule(store, user, today, _int_arg(a, "days", 7)),
        ),
        "getPageDataForUsers": ("users", lambda a: {"success": True, "users": list_users(store)}),
    }


# --- actions ---------------------------------------------------------------

def _action_update_assignment_status(svc: Services, user: User, data: dict[str, Any]) -> Any:
    rec = get_assignment(svc.store, str(data.get("assignmentId", "")))
    if not can_access_record(user, "assignments", rec, "update"):
        raise PermissionDenied("You can only update your own assignments")
    return pages.assignment_view(update_assignment_status(svc.store, rec["Assignment ID"], str(data.get("status", "")), svc.now()))


def _action_assign_riders(svc: Services, user: User, data: dict[str, Any]) -> Any:
    riders = data.get("riders") or data.get("selectedRiders") or []
    if isinstance(riders, str):
        riders = riders.split(",")
    return process_assignment(svc.store, str(data.get("requestId", "")), riders, svc.now())


def _action_clear_cache(svc: Services, user: User, data: dict[str, Any]) -> Any:
    svc.store.invalidate()
    return {"cleared": True}


# name -> ((resource, action) or None for handler-level checks, handler)
ACTIONS: dict[str, tuple[tuple[str, str] | None, Callable[[Services, User, dict[str, Any]], Any]]] = {
    "createRequest": (
        ("requests", "create"),
        lambda svc, u, d: create_request(svc.store, d, svc.now(), svc.cfg.max_riders_per_request),
    ),
    "updateRequest": (
        ("requests", "edit"),
        lambda svc, u, d: update_request(svc.store, d, svc.now(), svc.cfg.max_riders_per_request),
    ),
    "deleteRequest": (("requests", "delete"), lambda svc, u, d: delete_request(svc.store, str(d.get("requestId", "")))),
    "assignRiders": (("assignments", "assign"), _action_assign_riders),
    "updateAssignmentStatus": (None, _action_update_assignment_status),
    "sendNotification": (
        ("notifications", "send"),
        lambda svc, u, d: send_assignment_notification(
            svc.store, svc.mailer, str(d.get("assignmentId", "")), str(d.get("type", "Both")), svc.now()
        ),
    ),
    "bulkNotification": (
        ("notifications", "send"),
        lambda svc, u, d: send_bulk_notifications(
            svc.store, svc.mailer, str(d.get("filter", "pending")), str(d.get("type", "Both")), svc.now()
        ),
    ),
    "generateReport": (("reports", "view_all"), lambda svc, u, d: generate_report_data(svc.store, d)),
    "addRider": (("riders", "create"), lambda svc, u, d: add_rider(svc.store, d)),
    "updateRider": (("riders", "edit"), lambda svc, u, d: update_rider(svc.store, d)),
    "deleteRider": (("riders", "delete"), lambda svc, u, d: delete_rider(svc.store, str(d.get("riderId", "")))),
    "bulkRiderStatus": (
        ("riders", "edit"),
        lambda svc, u, d: bulk_update_rider_status(svc.store, list(d.get("riderIds") or []), str(d.get("status", ""))),
    ),
    "generateMissingRequestIds": (
        ("requests", "edit"),
        lambda svc, u, d: [{"row": r, "requestId": i} for r, i in generate_missing_request_ids(svc.store, svc.now())],
    ),
    "setUserPassword": (
        ("users", "edit"),
        lambda svc, u, d: {
            "created": set_password(
                svc.store, str(d.get("email", "")), str(d.get("password", "")), str(d.get("role", "")), str(d.get("name", ""))
            )
        },
    ),
    "clearCache": (("system", "edit"), _action_clear_cache),
}


def create_app(
    cfg: AppConfig | None = None,
    store: SheetStore | None = None,
    mailer: Mailer | None = None,
    props: PropertyStore | None = None,
    clock: Callable[[], datetime] | None = None,
) -> Flask:
    cfg = cfg or load_config()
    if store is None:
        store = SheetStore(open_workbook(cfg), cache_ttl=cfg.cache_ttl_seconds)
    props = props or PropertyStore(cfg.session_store_path)

    app = Flask(__name__, template_folder="templates")
    app.config["SECRET_KEY"] = cfg.secret_key
    app.config["SESSION_COOKIE_SECURE"] = cfg.cookie_secure
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"

    app.extensions["escort"] = Services(
        cfg=cfg,
        store=store,
        mailer=mailer or Mailer.from_config(cfg),
        sessions=SessionManager(props, timedelta(hours=cfg.session_hours)),
        throttle=LoginThrottle(props, cfg.max_login_attempts, timedelta(minutes=cfg.lockout_minutes)),
        clock=clock or (lambda: local_now(cfg.timezone)),
    )
    attach_sheet_log(store, cfg.timezone)

    @app.before_request
    def load_user():
        g.user = None
        if request.path == "/healthz":
            return None
        svc = services()

        current = svc.sessions.get(session.get("token"))
        if current is not None:
            g.user = current.user()
            return None
        session.pop("token", None)

        if svc.cfg.identity_header:
            email = request.headers.get(svc.cfg.identity_header, "")
            # IAP-style values look like "accounts.google.com:user@example.com"
            email = email.rsplit(":", 1)[-1].strip()
            user = resolve_user(svc.store, email, "identity", svc.cfg.admin_emails, svc.cfg.dispatcher_emails)
            if user is not None:
                session["token"] = svc.sessions.create(user)
                g.user = user
        return None

    @app.route("/", methods=["GET"])
    def index():
        svc = services()
        auth = request.args.get("auth", "")
        page = request.args.get("page", "") or "dashboard"
        action = request.args.get("action", "")

        if auth == "logout":
            svc.sessions.destroy(session.get("token"))
            session.clear()
            return redirect("/?auth=login")
        if auth == "login" or g.user is None:
            if g.user is not None:
                return redirect("/?page=dashboard")
            return render_template("login.html", error="", email="")

        user: User = g.user
        if page not in PAGE_ACCESS:
            return error_page(f"Unknown page: {page}", 404, "Page not found")
        if not can_view_page(user.role, page):
            logger.info("Denied %s (%s) access to page %s", user.email, user.role, page)
            return error_page("You do not have access to this page.", 403, "Access denied")

        if page == "riders" and action == "export":
            _require(user, "riders", "export")
            return Response(
                export_riders_csv(svc.store),
                mimetype="text/csv",
                headers={"Content-Disposition": "attachment; filename=riders.csv"},
            )

        html = render_template(f"{page}.html", page=page, csrf_token=_csrf_token())
        return compose_page(html, user, page)

    @app.route("/", methods=["POST"])
    def login():
        svc = services()
        if request.args.get("auth") != "login":
            return error_page("Unsupported request.", 400, "Bad request")

        email = request.form.get("email", "")
        try:
            user = authenticate(svc.store, svc.throttle, email, request.form.get("password", ""), svc.now())
        except AuthenticationError as exc:
            return render_template("login.html", error=str(exc), email=email), 401

        session.clear()
        session["token"] = svc.sessions.create(user)
        session["csrf"] = secrets.token_urlsafe(24)
        return redirect("/?page=dashboard")

    @app.route("/rpc/<name>", methods=["GET"])
    def rpc(name: str):
        svc = services()
        user: User | None = g.user
        if user is None:
            return json_error("Not signed in", 401)

        entry = _rpc_table(svc, user).get(name)
        if entry is None:
            return json_error(f"Unknown function: {name}", 404)
        page, handler = entry
        if not can_view_page(user.role, page):
            return json_error("Access denied", 403)
        return json_ok(handler(request.args.to_dict()))

    @app.route("/api", methods=["POST"])
    def api():
        svc = services()
        user: User | None = g.user
        if user is None:
            return json_error("Not signed in", 401)
        if request.headers.get("X-CSRF-Token", "") != session.get("csrf"):
            return json_error("Invalid or missing CSRF token", 403)

        payload = request.get_json(silent=True) or {}
        name = str(payload.get("action", ""))
        data = payload.get("data") or {}
        if not isinstance(data, dict):
            return json_error("`data` must be an object", 400)

        entry = ACTIONS.get(name)
        if entry is None:
            return json_error(f"Unknown action: {name}", 400)
        needed, handler = entry
        if needed is not None:
            _require(user, *needed)
        return json_ok(handler(svc, user, data))

    @app.route("/healthz")
    def healthz():
        return jsonify({"ok": True})

    @app.errorhandler(EscortError)
    def handle_domain_error(exc: EscortError):
        status = 400
        if isinstance(exc, NotFoundError):
            status = 404
        elif isinstance(exc, PermissionDenied):
            status = 403
        elif isinstance(exc, AuthenticationError):
            status = 401
        elif not isinstance(exc, ValidationError):
            status = 500
        logger.warning("%s %s failed: %s", request.method, request.path, exc)
        if request.path.startswith(("/api", "/rpc")):
            return json_error(str(exc), status)
        return error_page(str(exc), status)

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        if request.path.startswith(("/api", "/rpc")):
            return json_error("Internal error", 500)
        return error_page("An unexpected error occurred. Please try again.", 500)

    return app
