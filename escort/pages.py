# escort/pages.py

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from escort.assignments import assignments_for_request, current_rider_names
from escort.auth.permissions import User, filter_records, has_permission
from escort.errors import EscortError
from escort.formatting import format_date, format_time, in_window, parse_date
from escort.ids import normalize_request_id
from escort.notifications import assignments_for_notifications, determine_notification_status, notification_stats
from escort.reports import generate_report_data
from escort.request_crud import get_request, request_view, riders_needed_of
from escort.rider_crud import get_active_riders, get_riders, is_active_rider, rider_view
from escort.sheets.schema import (
    ASSIGNABLE_REQUEST_STATUSES,
    ASSIGNMENT_STATUSES,
    CARRIERS,
    CLOSED_STATUSES,
    REQUEST_STATUSES,
    REQUEST_TYPES,
    RIDER_STATUSES,
)
from escort.store import SheetStore

logger = logging.getLogger(__name__)

EMPTY_STATS = {
    "activeRiders": 0,
    "totalRequests": 0,
    "pendingRequests": 0,
    "completedRequests": 0,
    "todayAssignments": 0,
    "weekAssignments": 0,
}


def display_location(start: str, end: str) -> str:
    start, end = (start or "").strip(), (end or "").strip()
    if start and end:
        return f"{start} → {end}"
    if end:
        return f"To: {end}"
    if start:
        return start
    return "Location TBD"


def _is_open_with_rider(a: dict[str, Any]) -> bool:
    return bool(a.get("Rider Name", "").strip()) and a.get("Status", "") not in CLOSED_STATUSES


def assignment_view(a: dict[str, Any]) -> dict[str, Any]:
    return {
        "assignmentId": a.get("Assignment ID", ""),
        "requestId": a.get("Request ID", ""),
        "riderName": a.get("Rider Name", ""),
        "jpNumber": a.get("JP Number", ""),
        "eventDate": format_date(a.get("Event Date", "")),
        "startTime": format_time(a.get("Start Time", "")),
        "endTime": format_time(a.get("End Time", "")),
        "location": display_location(a.get("Start Location", ""), a.get("End Location", "")),
        "status": a.get("Status", ""),
        "notificationStatus": determine_notification_status(a),
    }


def dashboard_stats(store: SheetStore, today: date) -> dict[str, int]:
    try:
        requests = [r for r in store.requests().records if r.get("Request ID") or r.get("Requester Name")]
        open_assignments = [a for a in store.assignments().records if _is_open_with_rider(a)]
        dates = [parse_date(a.get("Event Date", "")) for a in open_assignments]
        return {
            "activeRiders": len(get_active_riders(store)),
            "totalRequests": len(requests),
            "pendingRequests": sum(1 for r in requests if (r.get("Status", "") or "New") in {"New", "Pending"}),
            "completedRequests": sum(1 for r in requests if r.get("Status", "") == "Completed"),
            "todayAssignments": sum(1 for d in dates if d == today),
            "weekAssignments": sum(1 for d in dates if in_window(d, today, 7)),
        }
    except EscortError:
        logger.exception("Dashboard stats failed; returning zeros")
        return dict(EMPTY_STATS)


def upcoming_assignments(
    store: SheetStore,
    today: date,
    days: int = 30,
    limit: int | None = 10,
    require_request_id: bool = False,
) -> list[dict[str, Any]]:
    """Open assignments with a rider and an event date in today..today+days."""
    rows: list[tuple[date, dict[str, Any]]] = []
    for a in store.assignments().records:
        if not a.get("Assignment ID") or not _is_open_with_rider(a):
            continue
        if require_request_id and not a.get("Request ID"):
            continue
        d = parse_date(a.get("Event Date", ""))
        if not in_window(d, today, days):
            continue
        rows.append((d, a))

    rows.sort(key=lambda x: x[0])
    records = [a for _, a in rows]
    return records[:limit] if limit else records


def assignable_requests(store: SheetStore) -> list[dict[str, Any]]:
    """Requests that can still take riders, newest event first, undated last."""
    candidates = [
        r
        for r in store.requests().records
        if r.get("Request ID") and r.get("Requester Name") and (r.get("Status", "") or "New") in ASSIGNABLE_REQUEST_STATUSES
    ]
    dated = [(parse_date(r.get("Event Date", "")), r) for r in candidates]
    dated.sort(key=lambda x: (x[0] is None, -(x[0].toordinal()) if x[0] else 0))
    out = []
    for _, r in dated:
        view = request_view(r)
        view["displayDate"] = view["eventDate"] or "No Date"
        view["location"] = display_location(r.get("Start Location", ""), r.get("End Location", ""))
        out.append(view)
    return out


def filtered_requests(store: SheetStore, status_filter: str = "All") -> list[dict[str, Any]]:
    status_filter = (status_filter or "All").strip()
    out = []
    for r in store.requests().records:
        if not r.get("Request ID"):
            continue
        if status_filter != "All" and (r.get("Status", "") or "New") != status_filter:
            continue
        out.append(request_view(r))
    return out


def riders_for_assignment(store: SheetStore) -> list[dict[str, Any]]:
    return [rider_view(r) for r in get_active_riders(store)]


def escort_details_for_assignment(store: SheetStore, request_id: str) -> dict[str, Any]:
    """Request details plus who currently rides it, for the assign dialog."""
    rec = get_request(store, request_id)
    current = current_rider_names(assignments_for_request(store, rec["Request ID"]))
    view = request_view(rec)
    view["location"] = display_location(rec.get("Start Location", ""), rec.get("End Location", ""))
    view["assignedRiders"] = current
    view["ridersStillNeeded"] = max(riders_needed_of(rec) - len(current), 0)
    return view


def rider_schedule(store: SheetStore, user: User, today: date, days: int = 7) -> list[dict[str, Any]]:
    mine = filter_records(user, "assignments", upcoming_assignments(store, today, days=days, limit=None))
    return [assignment_view(a) for a in mine]


def _failure(fallback: dict[str, Any], exc: Exception) -> dict[str, Any]:
    return {**fallback, "success": False, "error": str(exc)}


def page_data_for_dashboard(store: SheetStore, user: User, today: date) -> dict[str, Any]:
    try:
        if not has_permission(user, "assignments", "view_all"):
            return {
                "success": True,
                "user": user.context(),
                "stats": None,
                "upcomingAssignments": rider_schedule(store, user, today, days=30),
            }
        return {
            "success": True,
            "user": user.context(),
            "stats": dashboard_stats(store, today),
            "upcomingAssignments": [assignment_view(a) for a in upcoming_assignments(store, today, 30, 10)],
        }
    except Exception as exc:
        logger.exception("Dashboard page data failed")
        return _failure({"user": user.context(), "stats": dict(EMPTY_STATS), "upcomingAssignments": []}, exc)


def page_data_for_requests(store: SheetStore, user: User, status_filter: str = "All") -> dict[str, Any]:
    try:
        return {
            "success": True,
            "user": user.context(),
            "requests": filtered_requests(store, status_filter),
            "statusFilter": status_filter or "All",
            "options": {"requestTypes": REQUEST_TYPES, "requestStatuses": REQUEST_STATUSES},
        }
    except Exception as exc:
        logger.exception("Requests page data failed")
        return _failure({"user": user.context(), "requests": []}, exc)


def page_data_for_assignments(store: SheetStore, user: User, today: date, request_id: str = "") -> dict[str, Any]:
    try:
        data: dict[str, Any] = {
            "success": True,
            "user": user.context(),
            "requests": assignable_requests(store),
            "riders": riders_for_assignment(store),
            "upcomingAssignments": [
                assignment_view(a) for a in upcoming_assignments(store, today, 60, None, require_request_id=True)
            ],
            "selectedRequest": None,
        }
        if request_id:
            data["selectedRequest"] = escort_details_for_assignment(store, normalize_request_id(request_id))
        return data
    except Exception as exc:
        logger.exception("Assignments page data failed")
        return _failure({"user": user.context(), "requests": [], "riders": [], "upcomingAssignments": []}, exc)


def page_data_for_riders(store: SheetStore, user: User) -> dict[str, Any]:
    try:
        riders = filter_records(user, "riders", get_riders(store))
        return {
            "success": True,
            "user": user.context(),
            "riders": [rider_view(r) for r in riders],
            "activeCount": sum(1 for r in riders if is_active_rider(r)),
            "options": {"riderStatuses": RIDER_STATUSES, "carriers": CARRIERS},
        }
    except Exception as exc:
        logger.exception("Riders page data failed")
        return _failure({"user": user.context(), "riders": []}, exc)


def page_data_for_notifications(store: SheetStore, user: User, today: date) -> dict[str, Any]:
    try:
        records = assignments_for_notifications(store)
        records = [r for r in records if r.get("Status", "") not in CLOSED_STATUSES]
        return {
            "success": True,
            "user": user.context(),
            "stats": notification_stats(store, today),
            "assignments": [assignment_view(a) for a in records],
        }
    except Exception as exc:
        logger.exception("Notifications page data failed")
        return _failure({"user": user.context(), "stats": {}, "assignments": []}, exc)


def page_data_for_reports(store: SheetStore, user: User, filters: dict[str, Any] | None = None) -> dict[str, Any]:
    try:
        return {
            "success": True,
            "user": user.context(),
            "report": generate_report_data(store, filters),
            "options": {"requestTypes": REQUEST_TYPES, "requestStatuses": REQUEST_STATUSES},
        }
    except Exception as exc:
        logger.exception("Reports page data failed")
        return _failure({"user": user.context(), "report": None}, exc)


def page_data_for_my_schedule(store: SheetStore, user: User, today: date, days: int = 7) -> dict[str, Any]:
    try:
        return {
            "success": True,
            "user": user.context(),
            "assignments": rider_schedule(store, user, today, days),
            "days": days,
            "options": {"assignmentStatuses": ASSIGNMENT_STATUSES},
        }
    except Exception as exc:
        logger.exception("Schedule page data failed")
        return _failure({"user": user.context(), "assignments": []}, exc)
