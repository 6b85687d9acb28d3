# escort/request_crud.py

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any

from escort.activity import ACTIVITY_LOGGER
from escort.errors import NotFoundError, ValidationError
from escort.formatting import (
    format_date,
    format_datetime,
    format_time,
    local_now,
    parse_date,
    parse_time,
    sheet_date,
    sheet_time,
    sheet_timestamp,
)
from escort.ids import generate_request_id, normalize_request_id
from escort.sheets.schema import REQUEST_STATUSES, REQUEST_TYPES, REQUESTS_SHEET, TERMINAL_REQUEST_STATUSES
from escort.store import SheetStore

logger = logging.getLogger(__name__)
activity = logging.getLogger(ACTIVITY_LOGGER)

REQUIRED_FIELDS = {
    "requesterName": "Requester name",
    "requesterContact": "Requester contact",
    "requestType": "Request type",
    "eventDate": "Event date",
    "startTime": "Start time",
    "startLocation": "Start location",
}

# form field -> column, for plain text fields
TEXT_FIELDS = {
    "requesterName": "Requester Name",
    "requesterContact": "Requester Contact",
    "startLocation": "Start Location",
    "endLocation": "End Location",
    "secondaryEndLocation": "Secondary End Location",
    "specialRequirements": "Special Requirements",
    "notes": "Notes",
}

_SPLIT_RE = re.compile(r"[\n,]")


def parse_assigned_riders(text: str) -> list[str]:
    """Splits a Riders Assigned cell; blanks and TBD placeholders are dropped."""
    names = []
    for part in _SPLIT_RE.split(text or ""):
        name = part.strip()
        if name and name.lower() != "tbd":
            names.append(name)
    return names


def status_for_rider_count(assigned: int, needed: int) -> str:
    if assigned == 0 or assigned < needed:
        return "Unassigned"
    return "Assigned"


def parse_riders_needed(value: Any, max_riders: int | None = None) -> int:
    try:
        n = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError("Riders needed must be a whole number")
    if n <= 0:
        raise ValidationError("Riders needed must be greater than zero")
    if max_riders and n > max_riders:
        raise ValidationError(f"Riders needed cannot exceed {max_riders}")
    return n


def normalize_courtesy(value: Any) -> str:
    return "Yes" if str(value or "").strip().lower() in {"yes", "y", "true", "1", "on"} else "No"


def riders_needed_of(rec: dict[str, Any]) -> int:
    try:
        return max(int(str(rec.get("Riders Needed", "")).strip()), 0)
    except ValueError:
        return 0


def request_view(rec: dict[str, Any]) -> dict[str, Any]:
    """Shape of a request as the pages consume it."""
    return {
        "id": rec.get("Request ID", ""),
        "requestId": rec.get("Request ID", ""),
        "date": format_date(rec.get("Date", "")),
        "requesterName": rec.get("Requester Name", ""),
        "requesterContact": rec.get("Requester Contact", ""),
        "requestType": rec.get("Request Type", ""),
        "eventDate": format_date(rec.get("Event Date", "")),
        "startTime": format_time(rec.get("Start Time", "")),
        "endTime": format_time(rec.get("End Time", "")),
        "startLocation": rec.get("Start Location", ""),
        "endLocation": rec.get("End Location", ""),
        "secondaryEndLocation": rec.get("Secondary End Location", ""),
        "ridersNeeded": riders_needed_of(rec),
        "specialRequirements": rec.get("Special Requirements", ""),
        "status": rec.get("Status", "") or "New",
        "notes": rec.get("Notes", ""),
        "ridersAssigned": rec.get("Riders Assigned", ""),
        "courtesy": rec.get("Courtesy", "") or "No",
        "lastUpdated": format_datetime(rec.get("Last Updated", "")),
    }


def get_request(store: SheetStore, request_id: str, use_cache: bool = True) -> dict[str, Any]:
    rid = normalize_request_id(request_id)
    rec = store.requests(use_cache=use_cache).find(rid, normalize=normalize_request_id)
    if rec is None:
        raise NotFoundError(f"Request {rid or '(blank)'} not found")
    return rec


def _date_cell(value: Any, label: str) -> str:
    d = parse_date(value)
    if d is None:
        raise ValidationError(f"{label} is not a valid date")
    return sheet_date(d)


def _time_cell(value: Any, label: str) -> str:
    t = parse_time(value)
    if t is None:
        raise ValidationError(f"{label} is not a valid time")
    return sheet_time(t)


def create_request(
    store: SheetStore,
    data: dict[str, Any],
    now: datetime | None = None,
    max_riders: int | None = None,
) -> dict[str, Any]:
    now = now or local_now()
    missing = [label for key, label in REQUIRED_FIELDS.items() if not str(data.get(key, "") or "").strip()]
    if missing:
        raise ValidationError("Missing required fields: " + ", ".join(missing))

    request_type = str(data["requestType"]).strip()
    if request_type not in REQUEST_TYPES:
        raise ValidationError(f"Unknown request type: {request_type}")

    record = {col: str(data.get(key, "") or "").strip() for key, col in TEXT_FIELDS.items()}
    record.update(
        {
            "Date": sheet_date(now.date()),
            "Request Type": request_type,
            "Event Date": _date_cell(data["eventDate"], "Event date"),
            "Start Time": _time_cell(data["startTime"], "Start time"),
            "End Time": _time_cell(data["endTime"], "End time") if str(data.get("endTime", "") or "").strip() else "",
            "Riders Needed": parse_riders_needed(data.get("ridersNeeded", ""), max_riders),
            "Status": "New",
            "Riders Assigned": "",
            "Courtesy": normalize_courtesy(data.get("courtesy")),
            "Last Updated": sheet_timestamp(now),
        }
    )

    with store.transaction():
        record["Request ID"] = generate_request_id(store, now)
        store.append(REQUESTS_SHEET, record)

    activity.info("Request %s created", record["Request ID"], extra={"details": {"requester": record["Requester Name"]}})
    return get_request(store, record["Request ID"])


def update_request(
    store: SheetStore,
    data: dict[str, Any],
    now: datetime | None = None,
    max_riders: int | None = None,
) -> dict[str, Any]:
    """Applies form fields present in `data` to an existing request.

    Dates and times that do not parse are skipped (logged) rather than
    overwriting the stored value.
    """
    now = now or local_now()
    request_id = data.get("requestId") or data.get("id") or ""
    rec = get_request(store, request_id, use_cache=False)

    changes: dict[str, Any] = {}
    for key, col in TEXT_FIELDS.items():
        if key in data:
            changes[col] = str(data[key] or "").strip()

    if "requestType" in data:
        request_type = str(data["requestType"] or "").strip()
        if request_type and request_type not in REQUEST_TYPES:
            raise ValidationError(f"Unknown request type: {request_type}")
        changes["Request Type"] = request_type

    if "eventDate" in data:
        d = parse_date(data["eventDate"])
        if d is not None:
            changes["Event Date"] = sheet_date(d)
        else:
            logger.warning("Skipping invalid event date %r for %s", data["eventDate"], rec["Request ID"])

    for key, col in (("startTime", "Start Time"), ("endTime", "End Time")):
        if key not in data:
            continue
        raw = str(data[key] or "").strip()
        t = parse_time(raw)
        if t is not None:
            changes[col] = sheet_time(t)
        elif not raw and key == "endTime":
            changes[col] = ""
        else:
            logger.warning("Skipping invalid %s %r for %s", key, raw, rec["Request ID"])

    if "ridersNeeded" in data:
        changes["Riders Needed"] = parse_riders_needed(data["ridersNeeded"], max_riders)

    if "status" in data:
        status = str(data["status"] or "").strip()
        if status not in REQUEST_STATUSES:
            raise ValidationError(f"Unknown request status: {status}")
        changes["Status"] = status

    if "courtesy" in data:
        changes["Courtesy"] = normalize_courtesy(data["courtesy"])

    changes["Last Updated"] = sheet_timestamp(now)
    store.update(REQUESTS_SHEET, rec["_row"], changes)
    activity.info("Request %s updated", rec["Request ID"], extra={"details": sorted(changes)})
    return get_request(store, rec["Request ID"])


def delete_request(store: SheetStore, request_id: str) -> str:
    with store.transaction():
        rec = get_request(store, request_id, use_cache=False)
        store.delete(REQUESTS_SHEET, rec["_row"])
    activity.info("Request %s deleted", rec["Request ID"])
    return rec["Request ID"]


def update_request_status(store: SheetStore, request_id: str, status: str, now: datetime | None = None) -> None:
    if status not in REQUEST_STATUSES:
        raise ValidationError(f"Unknown request status: {status}")
    rec = get_request(store, request_id, use_cache=False)
    store.update(
        REQUESTS_SHEET,
        rec["_row"],
        {"Status": status, "Last Updated": sheet_timestamp(now or local_now())},
    )


def refresh_request_status(store: SheetStore, request_id: str, now: datetime | None = None) -> str:
    """Recomputes Status from the Riders Assigned cell. Completed and
    Cancelled requests are left alone."""
    rec = get_request(store, request_id, use_cache=False)
    current = rec.get("Status", "")
    if current in TERMINAL_REQUEST_STATUSES:
        return current

    status = status_for_rider_count(len(parse_assigned_riders(rec.get("Riders Assigned", ""))), riders_needed_of(rec))
    if status != current:
        update_request_status(store, rec["Request ID"], status, now)
    return status
