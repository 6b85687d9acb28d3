# escort/assignments.py

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from escort.activity import ACTIVITY_LOGGER
from escort.errors import NotFoundError, ValidationError
from escort.formatting import local_now, sheet_timestamp
from escort.ids import next_assignment_id, normalize_request_id
from escort.request_crud import get_request, riders_needed_of, status_for_rider_count
from escort.rider_crud import find_rider_by_name, update_rider_assignment_stats
from escort.sheets.schema import (
    ASSIGNMENT_STATUSES,
    ASSIGNMENTS_SHEET,
    CLOSED_STATUSES,
    REQUESTS_SHEET,
    TERMINAL_REQUEST_STATUSES,
)
from escort.store import SheetStore

logger = logging.getLogger(__name__)
activity = logging.getLogger(ACTIVITY_LOGGER)

# Columns copied from the request onto each of its assignment rows.
_COPIED_COLUMNS = [
    "Event Date",
    "Start Time",
    "End Time",
    "Start Location",
    "End Location",
    "Secondary End Location",
]


def _same_request(a: dict[str, Any], request_id: str) -> bool:
    return normalize_request_id(a.get("Request ID", "")) == request_id


def assignments_for_request(store: SheetStore, request_id: str, use_cache: bool = True) -> list[dict[str, Any]]:
    rid = normalize_request_id(request_id)
    return store.assignments(use_cache=use_cache).where(lambda a: _same_request(a, rid))


def current_rider_names(assignments: list[dict[str, Any]]) -> list[str]:
    """Riders holding a non-closed assignment, in sheet order, deduplicated."""
    names: list[str] = []
    for a in assignments:
        name = a.get("Rider Name", "").strip()
        if name and a.get("Status", "") not in CLOSED_STATUSES and name not in names:
            names.append(name)
    return names


def get_assignment(store: SheetStore, assignment_id: str, use_cache: bool = True) -> dict[str, Any]:
    rec = store.assignments(use_cache=use_cache).find(assignment_id)
    if rec is None:
        raise NotFoundError(f"Assignment {assignment_id} not found")
    return rec


def cancel_rider_assignment(store: SheetStore, request_id: str, rider_name: str, now: datetime) -> int:
    """Cancels a rider's open rows for a request; returns rows changed.
    Rows already Cancelled or Completed are left as they are."""
    rid = normalize_request_id(request_id)
    target = rider_name.strip().lower()
    changed = 0
    for a in store.assignments(use_cache=False).records:
        if not _same_request(a, rid) or a.get("Rider Name", "").strip().lower() != target:
            continue
        if a.get("Status", "") in {"Cancelled", "Completed"}:
            continue
        note = f"Cancelled {sheet_timestamp(now)}"
        notes = f"{a['Notes']} | {note}" if a.get("Notes") else note
        store.update(ASSIGNMENTS_SHEET, a["_row"], {"Status": "Cancelled", "Notes": notes})
        changed += 1
    return changed


def build_assignment_record(
    assignment_id: str,
    request: dict[str, Any],
    rider_name: str,
    jp_number: str,
    now: datetime,
) -> dict[str, Any]:
    record = {col: request.get(col, "") for col in _COPIED_COLUMNS}
    record.update(
        {
            "Assignment ID": assignment_id,
            "Request ID": request["Request ID"],
            "Rider Name": rider_name,
            "JP Number": jp_number,
            "Status": "Assigned",
            "Created Date": sheet_timestamp(now),
        }
    )
    return record


def process_assignment(
    store: SheetStore,
    request_id: str,
    selected_riders: list[str],
    now: datetime | None = None,
) -> dict[str, Any]:
    """Makes the request's open assignments match `selected_riders`.

    Riders no longer selected are cancelled, new ones get an Assigned row,
    and the request's Riders Assigned / Status / Last Updated follow.
    """
    now = now or local_now()
    selected: list[str] = []
    for name in selected_riders or []:
        name = str(name or "").strip()
        if name and name not in selected:
            selected.append(name)

    with store.transaction():
        request = get_request(store, request_id, use_cache=False)
        rid = request["Request ID"]
        status = request.get("Status", "")
        if status in TERMINAL_REQUEST_STATUSES:
            raise ValidationError(f"Request {rid} is {status}; reopen it before assigning riders")
        current = current_rider_names(assignments_for_request(store, rid, use_cache=False))

        selected_keys = {n.lower() for n in selected}
        current_keys = {n.lower() for n in current}
        removed = [n for n in current if n.lower() not in selected_keys]
        added = [n for n in selected if n.lower() not in current_keys]

        for name in removed:
            cancel_rider_assignment(store, rid, name, now)

        new_rows: list[dict[str, Any]] = []
        if added:
            existing_ids = store.assignments(use_cache=False).column_values("Assignment ID")
            for name in added:
                rider = find_rider_by_name(store, name)
                if rider is None:
                    logger.warning("Assigning %r to %s: no matching rider row", name, rid)
                asg_id = next_assignment_id(existing_ids)
                existing_ids.append(asg_id)
                new_rows.append(
                    build_assignment_record(asg_id, request, rider["Full Name"] if rider else name, rider["Rider ID"] if rider else "", now)
                )
            store.append_many(ASSIGNMENTS_SHEET, new_rows)

        status = status_for_rider_count(len(selected), riders_needed_of(request))
        store.update(
            REQUESTS_SHEET,
            request["_row"],
            {
                "Riders Assigned": "\n".join(selected),
                "Status": status,
                "Last Updated": sheet_timestamp(now),
            },
        )

    activity.info(
        "Riders assigned to %s",
        rid,
        extra={"details": {"added": added, "removed": removed, "status": status}},
    )
    return {
        "success": True,
        "message": f"{len(selected)} rider(s) assigned to {rid}; status {status}",
        "requestId": rid,
        "status": status,
        "added": added,
        "removed": removed,
        "assignedRidersForNotification": [
            {"assignmentId": r["Assignment ID"], "riderName": r["Rider Name"]} for r in new_rows
        ],
    }


def update_assignment_status(
    store: SheetStore,
    assignment_id: str,
    status: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    if status not in ASSIGNMENT_STATUSES:
        raise ValidationError(f"Unknown assignment status: {status}")
    now = now or local_now()

    rec = get_assignment(store, assignment_id, use_cache=False)
    changes: dict[str, Any] = {"Status": status}
    if status == "Completed":
        changes["Completed Date"] = sheet_timestamp(now)
    store.update(ASSIGNMENTS_SHEET, rec["_row"], changes)

    if status == "Completed" and rec.get("Rider Name"):
        update_rider_assignment_stats(store, rec["Rider Name"])

    activity.info("Assignment %s set to %s", assignment_id, status)
    return get_assignment(store, assignment_id)

