from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

import pytest

from escort.sheets.memory import MemoryWorkbook
from escort.store import SheetStore

TODAY = date(2026, 6, 10)
NOW = datetime(2026, 6, 10, 9, 0)


def _asg(asg_id, request_id, event_date, rider, jp, status, created="06/01/2026 08:00:00", **extra):
    row = {
        "Assignment ID": asg_id,
        "Request ID": request_id,
        "Event Date": event_date,
        "Start Time": "10:00 AM",
        "End Time": "12:00 PM",
        "Start Location": "St. Mark's Chapel",
        "End Location": "Oakwood Cemetery",
        "Rider Name": rider,
        "JP Number": jp,
        "Status": status,
        "Created Date": created,
    }
    row.update(extra)
    return row


def base_records() -> dict[str, list[dict[str, str]]]:
    return {
        "Settings": [
            {"Admin Emails": "admin@example.org", "Dispatcher Emails": "dispatch@example.org"},
        ],
        "Riders": [
            {
                "Rider ID": "JP101",
                "Full Name": "Dana Ortiz",
                "Phone Number": "(555) 201-3344",
                "Carrier": "Verizon",
                "Email": "dana.ortiz@example.org",
                "SMS Gateway Email": "5552013344@vtext.com",
                "Status": "Active",
            },
            {
                "Rider ID": "JP102",
                "Full Name": "Lee Chang",
                "Phone Number": "555-201-7788",
                "Carrier": "AT&T",
                "Email": "",
                "Status": "Active",
            },
            {
                "Rider ID": "JP103",
                "Full Name": "Sam Patel",
                "Phone Number": "5552019900",
                "Carrier": "T-Mobile",
                "Status": "Vacation",
            },
            {
                "Rider ID": "JP104",
                "Full Name": "Ina Brooks",
                "Phone Number": "5552014455",
                "Carrier": "Google Fi",
                "Email": "ina@example.org",
                "Status": "",
            },
        ],
        "Requests": [
            {
                "Request ID": "F-01-26",
                "Date": "06/01/2026",
                "Requester Name": "Grace Holloway",
                "Requester Contact": "555-300-1000",
                "Request Type": "Funeral",
                "Event Date": "06/12/2026",
                "Start Time": "10:00 AM",
                "End Time": "12:00 PM",
                "Start Location": "St. Mark's Chapel",
                "End Location": "Oakwood Cemetery",
                "Riders Needed": "2",
                "Special Requirements": "Hearse leads",
                "Status": "Assigned",
                "Riders Assigned": "Dana Ortiz\nLee Chang",
                "Courtesy": "Yes",
            },
            {
                "Request ID": "F-02-26",
                "Date": "06/03/2026",
                "Requester Name": "Marcus Webb",
                "Requester Contact": "marcus@example.org",
                "Request Type": "Wedding",
                "Event Date": "06/20/2026",
                "Start Time": "3:30 PM",
                "Start Location": "Riverside Hall",
                "End Location": "Lakeview Pavilion",
                "Riders Needed": "3",
                "Status": "New",
            },
            {
                "Request ID": "F-03-26",
                "Date": "06/04/2026",
                "Requester Name": "Mayor's Office",
                "Requester Contact": "555-300-3000",
                "Request Type": "VIP",
                "Event Date": "",
                "Start Location": "City Hall",
                "Riders Needed": "1",
                "Status": "Pending",
            },
            {
                "Request ID": "E-07-26",
                "Date": "05/01/2026",
                "Requester Name": "Jo Kim",
                "Requester Contact": "555-300-4000",
                "Request Type": "Wedding",
                "Event Date": "05/20/2026",
                "Start Location": "Elm Church",
                "Riders Needed": "1",
                "Status": "Completed",
            },
            {
                "Request ID": "F-04-26",
                "Date": "06/05/2026",
                "Requester Name": "Parade Committee",
                "Requester Contact": "555-300-5000",
                "Request Type": "Other",
                "Event Date": "06/15/2026",
                "Start Location": "Depot Street",
                "Riders Needed": "2",
                "Status": "Cancelled",
            },
        ],
        "Assignments": [
            _asg("ASG-0001", "F-01-26", "06/12/2026", "Dana Ortiz", "JP101", "Assigned"),
            _asg(
                "ASG-0002",
                "F-01-26",
                "06/12/2026",
                "Lee Chang",
                "JP102",
                "Confirmed",
                **{"SMS Sent": "06/02/2026 09:20:00", "Notified": "06/02/2026 09:20:00"},
            ),
            _asg("ASG-0003", "E-07-26", "05/20/2026", "Dana Ortiz", "JP101", "Completed", created="05/10/2026 08:00:00"),
            _asg("ASG-0004", "F-04-26", "06/15/2026", "Lee Chang", "JP102", "Cancelled"),
            _asg("ASG-0005", "F-02-26", "not a date", "Dana Ortiz", "JP101", "Assigned"),
            _asg("ASG-0006", "F-02-26", "06/10/2026", "Lee Chang", "JP102", "No Show"),
            _asg("ASG-0007", "", "06/11/2026", "Ina Brooks", "JP104", "Assigned"),
            _asg("ASG-0008", "F-02-26", "07/09/2026", "Ina Brooks", "JP104", "Assigned"),
            _asg("ASG-0009", "F-02-26", "07/11/2026", "Dana Ortiz", "JP101", "Assigned"),
            _asg("ASG-0010", "F-02-26", "08/09/2026", "Lee Chang", "JP102", "Assigned"),
            _asg("ASG-0011", "F-02-26", "08/10/2026", "Lee Chang", "JP102", "Assigned"),
            _asg("ASG-0012", "F-02-26", "06/10/2026", "Dana Ortiz", "JP101", "En Route"),
        ],
        "Users": [],
        "Log": [],
    }


@dataclass
class FakeMailer:
    ok: bool = True
    sent: list[tuple[str, str, str]] = field(default_factory=list)

    def send(self, to_email: str, subject: str, body: str) -> tuple[bool, str]:
        if not self.ok:
            return False, "SMTP not configured"
        self.sent.append((to_email, subject, body))
        return True, ""


@pytest.fixture
def workbook() -> MemoryWorkbook:
    return MemoryWorkbook.from_records(base_records())


@pytest.fixture
def store(workbook) -> SheetStore:
    return SheetStore(workbook)


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()
