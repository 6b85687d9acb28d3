# escort/rider_crud.py

from __future__ import annotations

import csv
import io
import logging
import re
from typing import Any

from escort.activity import ACTIVITY_LOGGER
from escort.errors import NotFoundError, ValidationError
from escort.formatting import format_date, parse_date, sheet_date
from escort.sheets.schema import (
    ACTIVE_ASSIGNMENT_STATUSES,
    DEFAULT_SMS_GATEWAY,
    RIDER_COLUMNS,
    RIDER_STATUSES,
    RIDERS_SHEET,
    SMS_GATEWAYS,
)
from escort.store import SheetStore

logger = logging.getLogger(__name__)
activity = logging.getLogger(ACTIVITY_LOGGER)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

RIDER_FIELDS = {
    "riderId": "Rider ID",
    "name": "Full Name",
    "phone": "Phone Number",
    "carrier": "Carrier",
    "email": "Email",
    "status": "Status",
    "certification": "Certification",
}

ACTIVE_RIDER_STATUSES = {"", "active", "available"}


def clean_phone(phone: str) -> str:
    return re.sub(r"\D", "", str(phone or ""))


def sms_gateway_domain(carrier: str) -> str:
    key = re.sub(r"[-.]", "", str(carrier or "").strip().lower())
    key = re.sub(r"\s+", " ", key)
    return SMS_GATEWAYS.get(key, DEFAULT_SMS_GATEWAY)


def sms_gateway_email(phone: str, carrier: str) -> str:
    digits = clean_phone(phone)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) != 10:
        return ""
    return f"{digits}@{sms_gateway_domain(carrier)}"


def is_active_rider(rec: dict[str, Any]) -> bool:
    return bool(rec.get("Full Name", "").strip()) and rec.get("Status", "").strip().lower() in ACTIVE_RIDER_STATUSES


def rider_view(rec: dict[str, Any]) -> dict[str, Any]:
    return {
        "riderId": rec.get("Rider ID", ""),
        "jpNumber": rec.get("Rider ID", ""),
        "name": rec.get("Full Name", ""),
        "phone": rec.get("Phone Number", ""),
        "carrier": rec.get("Carrier", ""),
        "email": rec.get("Email", ""),
        "status": rec.get("Status", "") or "Active",
        "certification": rec.get("Certification", ""),
        "totalAssignments": rec.get("Total Assignments", "") or "0",
        "lastAssignmentDate": format_date(rec.get("Last Assignment Date", "")),
    }


def validate_rider_data(data: dict[str, Any], require_identity: bool = True) -> list[str]:
    """Returns a list of problems; empty means valid."""
    errors: list[str] = []
    if require_identity:
        for key in ("riderId", "name", "phone"):
            if not str(data.get(key, "") or "").strip():
                errors.append(f"{RIDER_FIELDS[key]} is required")

    phone = str(data.get("phone", "") or "").strip()
    if phone and len(clean_phone(phone)) != 10:
        errors.append("Phone number must have 10 digits")

    email = str(data.get("email", "") or "").strip()
    if email and not EMAIL_RE.match(email):
        errors.append("Email address is not valid")

    status = str(data.get("status", "") or "").strip()
    if status and status not in RIDER_STATUSES:
        errors.append(f"Status must be one of: {', '.join(RIDER_STATUSES)}")
    return errors


def get_riders(store: SheetStore) -> list[dict[str, Any]]:
    return [r for r in store.riders().records if r.get("Full Name", "").strip()]


def get_active_riders(store: SheetStore) -> list[dict[str, Any]]:
    return [r for r in store.riders().records if is_active_rider(r)]


def get_riders_by_status(store: SheetStore, status: str) -> list[dict[str, Any]]:
    want = status.strip().lower()
    return [r for r in get_riders(store) if (r.get("Status", "").strip().lower() or "active") == want]


def get_rider(store: SheetStore, rider_id: str, use_cache: bool = True) -> dict[str, Any]:
    rec = store.riders(use_cache=use_cache).find(rider_id)
    if rec is None:
        raise NotFoundError(f"Rider {rider_id} not found")
    return rec


def find_rider_by_name(store: SheetStore, name: str) -> dict[str, Any] | None:
    return store.riders().find(name, column="Full Name")


def find_rider_by_email(store: SheetStore, email: str) -> dict[str, Any] | None:
    return store.riders().find(email, column="Email")


def add_rider(store: SheetStore, data: dict[str, Any]) -> dict[str, Any]:
    errors = validate_rider_data(data)
    if errors:
        raise ValidationError("; ".join(errors))

    rider_id = str(data["riderId"]).strip()
    record = {col: str(data.get(key, "") or "").strip() for key, col in RIDER_FIELDS.items()}
    record["Status"] = record["Status"] or "Active"
    record["SMS Gateway Email"] = sms_gateway_email(record["Phone Number"], record["Carrier"])
    record["Total Assignments"] = "0"

    with store.transaction():
        if store.riders(use_cache=False).find(rider_id) is not None:
            raise ValidationError(f"Rider ID {rider_id} already exists")
        store.append(RIDERS_SHEET, record)

    activity.info("Rider %s added", rider_id, extra={"details": {"name": record["Full Name"]}})
    return get_rider(store, rider_id)


def update_rider(store: SheetStore, data: dict[str, Any]) -> dict[str, Any]:
    rider_id = str(data.get("riderId", "") or "").strip()
    errors = validate_rider_data(data, require_identity=False)
    if errors:
        raise ValidationError("; ".join(errors))

    rec = get_rider(store, rider_id, use_cache=False)
    changes = {col: str(data[key] or "").strip() for key, col in RIDER_FIELDS.items() if key in data and key != "riderId"}
    if "Full Name" in changes and not changes["Full Name"]:
        raise ValidationError("Full Name is required")
    if "Phone Number" in changes or "Carrier" in changes:
        changes["SMS Gateway Email"] = sms_gateway_email(
            changes.get("Phone Number", rec.get("Phone Number", "")),
            changes.get("Carrier", rec.get("Carrier", "")),
        )

    store.update(RIDERS_SHEET, rec["_row"], changes)
    activity.info("Rider %s updated", rider_id, extra={"details": sorted(changes)})
    return get_rider(store, rider_id)


def active_assignments_for_rider(store: SheetStore, rider: dict[str, Any]) -> list[dict[str, Any]]:
    name = rider.get("Full Name", "").strip().lower()
    jp = rider.get("Rider ID", "").strip().lower()

    def _mine(a: dict[str, Any]) -> bool:
        if a.get("Status", "") not in ACTIVE_ASSIGNMENT_STATUSES:
            return False
        return (bool(name) and a.get("Rider Name", "").strip().lower() == name) or (
            bool(jp) and a.get("JP Number", "").strip().lower() == jp
        )

    return store.assignments().where(_mine)


def delete_rider(store: SheetStore, rider_id: str) -> str:
    with store.transaction():
        rec = get_rider(store, rider_id, use_cache=False)
        active = active_assignments_for_rider(store, rec)
        if active:
            raise ValidationError(
                f"Cannot delete {rec['Full Name']}: {len(active)} active assignment(s). Reassign or cancel them first."
            )
        store.delete(RIDERS_SHEET, rec["_row"])
    activity.info("Rider %s deleted", rider_id)
    return rec["Rider ID"]


def bulk_update_rider_status(store: SheetStore, rider_ids: list[str], status: str) -> dict[str, Any]:
    if status not in RIDER_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(RIDER_STATUSES)}")

    updated, errors = 0, []
    with store.transaction():
        table = store.riders(use_cache=False)
        for rid in rider_ids:
            rec = table.find(rid)
            if rec is None:
                errors.append(f"Rider {rid} not found")
                continue
            store.update(RIDERS_SHEET, rec["_row"], {"Status": status})
            updated += 1

    activity.info("Bulk rider status set to %s", status, extra={"details": {"updated": updated, "errors": len(errors)}})
    return {"updated": updated, "errors": errors}


def update_rider_assignment_stats(store: SheetStore, rider_name: str) -> None:
    """Recounts Total Assignments (completed) and Last Assignment Date for
    one rider from the Assignments tab."""
    rider = find_rider_by_name(store, rider_name)
    if rider is None:
        logger.warning("No rider named %r; assignment stats not updated", rider_name)
        return

    name = rider["Full Name"].strip().lower()
    done = store.assignments(use_cache=False).where(
        lambda a: a.get("Rider Name", "").strip().lower() == name and a.get("Status", "") == "Completed"
    )
    dates = [d for d in (parse_date(a.get("Event Date", "")) for a in done) if d]

    store.update(
        RIDERS_SHEET,
        rider["_row"],
        {
            "Total Assignments": len(done),
            "Last Assignment Date": sheet_date(max(dates)) if dates else "",
        },
    )


def export_riders_csv(store: SheetStore) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(RIDER_COLUMNS)
    for rec in get_riders(store):
        writer.writerow([rec.get(c, "") for c in RIDER_COLUMNS])
    return buf.getvalue()
