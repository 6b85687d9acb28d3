# escort/notifications.py

from __future__ import annotations

import logging
import smtplib
import time
from dataclasses import dataclass
from datetime import date, datetime
from email.message import EmailMessage
from typing import Any, Callable

from escort.activity import ACTIVITY_LOGGER
from escort.assignments import get_assignment
from escort.config import AppConfig
from escort.errors import NotFoundError, ValidationError
from escort.formatting import (
    format_date_mdy,
    format_time,
    in_window,
    local_now,
    parse_date,
    parse_datetime,
    sheet_timestamp,
)
from escort.ids import normalize_request_id
from escort.rider_crud import EMAIL_RE, clean_phone, find_rider_by_name, sms_gateway_email
from escort.sheets.schema import ASSIGNMENTS_SHEET, CLOSED_STATUSES
from escort.store import SheetStore

logger = logging.getLogger(__name__)
activity = logging.getLogger(ACTIVITY_LOGGER)

NOTIFICATION_TYPES = ("SMS", "Email", "Both")
BULK_FILTERS = ("all", "pending", "today", "week", "assigned")
SIGNATURE = "-- Rider Integration and Deployment Engine"
SMS_SUBJECT = "Assignment Notification"


@dataclass(frozen=True)
class Mailer:
    host: str = ""
    port: int = 587
    user: str = ""
    password: str = ""
    sender: str = ""
    starttls: bool = True

    @classmethod
    def from_config(cls, cfg: AppConfig) -> "Mailer":
        return cls(
            host=cfg.smtp_host,
            port=cfg.smtp_port,
            user=cfg.smtp_user,
            password=cfg.smtp_password,
            sender=cfg.smtp_from,
            starttls=cfg.smtp_starttls,
        )

    def is_configured(self) -> bool:
        return bool(self.host and self.sender)

    def send(self, to_email: str, subject: str, body: str) -> tuple[bool, str]:
        if not self.is_configured():
            return False, "SMTP not configured"

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to_email
        msg.set_content(body)

        try:
            with smtplib.SMTP(self.host, self.port, timeout=10) as smtp:
                if self.starttls:
                    smtp.starttls()
                if self.user:
                    smtp.login(self.user, self.password)
                smtp.send_message(msg)
            return True, ""
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("SMTP send to %s failed: %s", to_email, exc)
            return False, str(exc)[:400]


def _has_rider(a: dict[str, Any]) -> bool:
    return bool(a.get("Rider Name", "").strip())


def _stamped(a: dict[str, Any], column: str) -> bool:
    return parse_datetime(a.get(column, "")) is not None


def determine_notification_status(a: dict[str, Any]) -> str:
    sms, email = _stamped(a, "SMS Sent"), _stamped(a, "Email Sent")
    if sms and email:
        return "both_sent"
    if sms:
        return "sms_sent"
    if email:
        return "email_sent"
    if _stamped(a, "Notified"):
        return "notified"
    if _has_rider(a) and a.get("Status", "") == "Assigned":
        return "pending"
    return "no_rider"


def _is_unnotified(a: dict[str, Any]) -> bool:
    return not any(_stamped(a, c) for c in ("SMS Sent", "Email Sent", "Notified"))


def format_notification_message(assignment: dict[str, Any], request: dict[str, Any] | None = None) -> str:
    request = request or {}
    start = format_time(assignment.get("Start Time", ""))
    end = format_time(assignment.get("End Time", ""))
    when = f"{start} - {end}" if start and end else (start or "TBD")
    end_location = assignment.get("End Location", "") or "TBD"
    if assignment.get("Secondary End Location"):
        end_location = f"{end_location} / {assignment['Secondary End Location']}"

    lines = [
        "🏍️ ESCORT ASSIGNMENT NOTIFICATION",
        "",
        f"Assignment: {assignment.get('Assignment ID', '')}",
        f"Request: {assignment.get('Request ID', '')}",
        f"Rider: {assignment.get('Rider Name', '')}",
        "",
        f"📅 Date: {format_date_mdy(assignment.get('Event Date', '')) or 'TBD'}",
        f"🕐 Time: {when}",
        f"📍 Start: {assignment.get('Start Location', '') or 'TBD'}",
        f"🏁 End: {end_location}",
    ]
    message = "\n".join(lines) + "\n"
    if str(request.get("Courtesy", "")).strip().lower() == "yes":
        message += "\n⭐ **COURTESY** ⭐\n"
    notes = request.get("Special Requirements", "") or assignment.get("Notes", "")
    if notes:
        message += f"\n📝 Notes: {notes}\n"
    return message + f"\n{SIGNATURE}"


def send_assignment_notification(
    store: SheetStore,
    mailer: Mailer,
    assignment_id: str,
    kind: str = "Both",
    now: datetime | None = None,
) -> dict[str, Any]:
    """Sends SMS (via the carrier's email gateway), email, or both to the
    assigned rider and stamps the matching columns for each channel that
    went through."""
    if kind not in NOTIFICATION_TYPES:
        raise ValidationError(f"Notification type must be one of: {', '.join(NOTIFICATION_TYPES)}")
    now = now or local_now()

    assignment = get_assignment(store, assignment_id, use_cache=False)
    rider_name = assignment.get("Rider Name", "").strip()
    if not rider_name:
        raise ValidationError(f"Assignment {assignment_id} has no rider")
    rider = find_rider_by_name(store, rider_name)
    if rider is None:
        raise NotFoundError(f"Rider {rider_name} not found")

    phone = clean_phone(rider.get("Phone Number", ""))
    email = rider.get("Email", "").strip()
    if not phone and not email:
        raise ValidationError(f"{rider_name} has no phone number or email on file")

    request = store.requests().find(normalize_request_id(assignment.get("Request ID", "")), normalize=normalize_request_id)
    body = format_notification_message(assignment, request)

    results: dict[str, str] = {}
    stamps: dict[str, str] = {}

    if kind in ("SMS", "Both"):
        address = rider.get("SMS Gateway Email", "").strip() or sms_gateway_email(phone, rider.get("Carrier", ""))
        if not address:
            results["sms"] = "Phone number must have 10 digits"
        else:
            ok, err = mailer.send(address, SMS_SUBJECT, body)
            results["sms"] = "sent" if ok else err
            if ok:
                stamps["SMS Sent"] = sheet_timestamp(now)

    if kind in ("Email", "Both"):
        if not EMAIL_RE.match(email):
            results["email"] = "No valid email address"
        else:
            subject = f"Assignment {assignment['Assignment ID']} - {assignment.get('Request ID', '')}"
            ok, err = mailer.send(email, subject, body)
            results["email"] = "sent" if ok else err
            if ok:
                stamps["Email Sent"] = sheet_timestamp(now)

    if stamps:
        stamps["Notified"] = sheet_timestamp(now)
        store.update(ASSIGNMENTS_SHEET, assignment["_row"], stamps)
        activity.info("Notification sent for %s", assignment_id, extra={"details": results})

    success = bool(stamps)
    message = "; ".join(f"{k}: {v}" for k, v in results.items())
    return {"success": success, "message": message, "results": results}


def mark_assignment_notified(store: SheetStore, assignment_id: str, now: datetime | None = None) -> None:
    assignment = get_assignment(store, assignment_id, use_cache=False)
    store.update(ASSIGNMENTS_SHEET, assignment["_row"], {"Notified": sheet_timestamp(now or local_now())})


def select_bulk_targets(store: SheetStore, filter_name: str, today: date) -> list[dict[str, Any]]:
    if filter_name not in BULK_FILTERS:
        raise ValidationError(f"Filter must be one of: {', '.join(BULK_FILTERS)}")

    def _open(a: dict[str, Any]) -> bool:
        return bool(a.get("Assignment ID")) and _has_rider(a) and a.get("Status", "") not in CLOSED_STATUSES

    predicates: dict[str, Callable[[dict[str, Any]], bool]] = {
        "all": _open,
        "pending": lambda a: _open(a) and a.get("Status") == "Assigned" and _is_unnotified(a),
        "assigned": lambda a: _open(a) and a.get("Status") == "Assigned",
        "today": lambda a: _open(a) and parse_date(a.get("Event Date", "")) == today,
        "week": lambda a: _open(a) and in_window(parse_date(a.get("Event Date", "")), today, 7),
    }
    return store.assignments(use_cache=False).where(predicates[filter_name])


def send_bulk_notifications(
    store: SheetStore,
    mailer: Mailer,
    filter_name: str,
    kind: str = "Both",
    now: datetime | None = None,
    pause_every: int = 5,
    pause_seconds: float = 1.0,
) -> dict[str, Any]:
    now = now or local_now()
    targets = select_bulk_targets(store, filter_name, now.date())

    successful, failed = 0, 0
    errors: list[str] = []
    for n, a in enumerate(targets, start=1):
        try:
            result = send_assignment_notification(store, mailer, a["Assignment ID"], kind, now)
        except (NotFoundError, ValidationError) as exc:
            result = {"success": False, "message": str(exc)}
        if result["success"]:
            successful += 1
        else:
            failed += 1
            errors.append(f"{a['Assignment ID']}: {result['message']}")
        if pause_seconds and n % pause_every == 0 and n < len(targets):
            time.sleep(pause_seconds)

    activity.info(
        "Bulk notification (%s, %s): %d sent, %d failed",
        filter_name,
        kind,
        successful,
        failed,
    )
    return {
        "success": failed == 0,
        "successful": successful,
        "failed": failed,
        "errors": errors[:10],
        "message": f"Sent {successful} notification(s), {failed} failed",
    }


def assignments_for_notifications(store: SheetStore) -> list[dict[str, Any]]:
    """Assignments that have a rider, with their notification status."""
    out = []
    for a in store.assignments().records:
        if not a.get("Assignment ID") or not _has_rider(a):
            continue
        out.append({**a, "notificationStatus": determine_notification_status(a)})
    return out


def notification_stats(store: SheetStore, today: date) -> dict[str, int]:
    records = [a for a in store.assignments().records if a.get("Assignment ID")]

    def _stamped_today(a: dict[str, Any], column: str) -> bool:
        dt = parse_datetime(a.get(column, ""))
        return dt is not None and dt.date() == today

    return {
        "totalAssignments": len(records),
        "pendingNotifications": sum(1 for a in records if determine_notification_status(a) == "pending"),
        "unnotifiedAssigned": sum(
            1 for a in records if _has_rider(a) and a.get("Status") == "Assigned" and _is_unnotified(a)
        ),
        "smsToday": sum(1 for a in records if _stamped_today(a, "SMS Sent")),
        "emailToday": sum(1 for a in records if _stamped_today(a, "Email Sent")),
    }
