# escort/reports.py

from __future__ import annotations

from collections import Counter, defaultdict
from datetime import date
from typing import Any

from escort.errors import ValidationError
from escort.formatting import parse_date, parse_datetime
from escort.ids import normalize_request_id
from escort.rider_crud import is_active_rider
from escort.store import SheetStore

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def _parse_filter_date(value: Any, label: str) -> date | None:
    if not value:
        return None
    d = parse_date(value)
    if d is None:
        raise ValidationError(f"{label} is not a valid date")
    return d


def _in_range(d: date | None, start: date | None, end: date | None) -> bool:
    if d is None:
        return start is None and end is None
    if start and d < start:
        return False
    if end and d > end:
        return False
    return True


def generate_report_data(store: SheetStore, filters: dict[str, Any] | None = None) -> dict[str, Any]:
    """Aggregates requests and assignments for the reports page.

    Filters: startDate / endDate (by request event date, inclusive),
    requestType and status ("All" or blank = no filter). Rider performance
    counts assignments whose Created Date falls in the same range.
    """
    filters = filters or {}
    start = _parse_filter_date(filters.get("startDate"), "Start date")
    end = _parse_filter_date(filters.get("endDate"), "End date")
    if start and end and start > end:
        raise ValidationError("Start date is after end date")
    request_type = (filters.get("requestType") or "All").strip()
    status = (filters.get("status") or "All").strip()

    requests = [
        r
        for r in store.requests().records
        if r.get("Request ID")
        and _in_range(parse_date(r.get("Event Date", "")), start, end)
        and (request_type == "All" or r.get("Request Type", "") == request_type)
        and (status == "All" or (r.get("Status", "") or "New") == status)
    ]
    request_ids = {normalize_request_id(r["Request ID"]) for r in requests}
    assignments = [a for a in store.assignments().records if a.get("Assignment ID")]

    # hours from request submission to its first assignment
    first_assigned: dict[str, Any] = {}
    for a in assignments:
        rid = normalize_request_id(a.get("Request ID", ""))
        created = parse_datetime(a.get("Created Date", ""))
        if rid in request_ids and created and (rid not in first_assigned or created < first_assigned[rid]):
            first_assigned[rid] = created
    waits = []
    for r in requests:
        submitted = parse_datetime(r.get("Date", ""))
        assigned = first_assigned.get(normalize_request_id(r["Request ID"]))
        if submitted and assigned and assigned >= submitted:
            waits.append((assigned - submitted).total_seconds() / 3600)

    per_rider: dict[str, dict[str, int]] = defaultdict(lambda: {"assignments": 0, "completed": 0})
    for a in assignments:
        name = a.get("Rider Name", "").strip()
        if not name:
            continue
        created = parse_date(a.get("Created Date", ""))
        if (start or end) and not _in_range(created, start, end):
            continue
        per_rider[name]["assignments"] += 1
        if a.get("Status") == "Completed":
            per_rider[name]["completed"] += 1

    rider_performance = sorted(
        (
            {
                "name": name,
                "assignments": s["assignments"],
                "completed": s["completed"],
                "completionRate": round(s["completed"] / s["assignments"] * 100) if s["assignments"] else 0,
            }
            for name, s in per_rider.items()
        ),
        key=lambda x: (-x["assignments"], x["name"]),
    )

    event_dates = [d for d in (parse_date(r.get("Event Date", "")) for r in requests) if d]
    monthly = Counter(f"{d:%Y-%m}" for d in event_dates)
    weekdays = Counter(d.weekday() for d in event_dates)

    return {
        "filters": {
            "startDate": start.isoformat() if start else "",
            "endDate": end.isoformat() if end else "",
            "requestType": request_type,
            "status": status,
        },
        "summary": {
            "totalRequests": len(requests),
            "completedRequests": sum(1 for r in requests if r.get("Status") == "Completed"),
            "cancelledRequests": sum(1 for r in requests if r.get("Status") == "Cancelled"),
            "activeRiders": sum(1 for r in store.riders().records if is_active_rider(r)),
            "totalAssignments": sum(s["assignments"] for s in per_rider.values()),
            "avgHoursToAssign": round(sum(waits) / len(waits), 1) if waits else None,
        },
        "requestTypes": dict(Counter(r.get("Request Type", "") or "Other" for r in requests)),
        "requestStatuses": dict(Counter(r.get("Status", "") or "New" for r in requests)),
        "riderPerformance": rider_performance,
        "monthlyRequests": dict(sorted(monthly.items())),
        "busiestWeekday": WEEKDAYS[weekdays.most_common(1)[0][0]] if weekdays else "",
    }
