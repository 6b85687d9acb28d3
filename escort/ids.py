# escort/ids.py

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Iterable

from escort.formatting import local_now
from escort.sheets.schema import REQUESTS_SHEET
from escort.store import SheetStore

logger = logging.getLogger(__name__)

MONTH_LETTERS = "ABCDEFGHIJKL"

REQUEST_ID_RE = re.compile(r"^[A-L]-\d{2,}-\d{2}$")
_LOOSE_REQUEST_ID_RE = re.compile(r"^([A-La-l])-(\d+)-(\d{2})$")
_ASSIGNMENT_ID_RE = re.compile(r"^ASG-(\d+)$", re.IGNORECASE)

# Any of these non-empty means the row is a real request, not a blank line.
_CONTENT_COLUMNS = ["Requester Name", "Event Date", "Start Location", "Request Type", "Requester Contact"]


def normalize_request_id(value: str) -> str:
    """`a-5-25` -> `A-05-25`. Input that does not look like a request ID
    is returned trimmed but otherwise unchanged."""
    s = str(value or "").strip()
    m = _LOOSE_REQUEST_ID_RE.match(s)
    if not m:
        return s
    letter, seq, year = m.groups()
    return f"{letter.upper()}-{int(seq):02d}-{year}"


def is_valid_request_id(value: str) -> bool:
    return bool(REQUEST_ID_RE.match(str(value or "").strip()))


def next_request_id(existing_ids: Iterable[str], now: datetime) -> str:
    """Next `M-NN-YY` for the month of `now`.

    The sequence restarts for each month letter and year pair.
    """
    letter = MONTH_LETTERS[now.month - 1]
    year = f"{now.year % 100:02d}"

    highest = 0
    for raw in existing_ids:
        m = _LOOSE_REQUEST_ID_RE.match(normalize_request_id(raw))
        if not m:
            continue
        if m.group(1).upper() == letter and m.group(3) == year:
            highest = max(highest, int(m.group(2)))
    return f"{letter}-{highest + 1:02d}-{year}"


def next_assignment_id(existing_ids: Iterable[str]) -> str:
    highest = 0
    for raw in existing_ids:
        m = _ASSIGNMENT_ID_RE.match(str(raw or "").strip())
        if m:
            highest = max(highest, int(m.group(1)))
    return f"ASG-{highest + 1:04d}"


def generate_request_id(store: SheetStore, now: datetime | None = None) -> str:
    now = now or local_now()
    return next_request_id(store.requests(use_cache=False).column_values("Request ID"), now)


def generate_missing_request_ids(store: SheetStore, now: datetime | None = None, dry_run: bool = False) -> list[tuple[int, str]]:
    """Gives an ID to every request row that has content but no valid ID.

    Returns (row_number, new_id) pairs, whether or not they were written.
    """
    now = now or local_now()
    with store.transaction():
        table = store.requests(use_cache=False)
        ids = [normalize_request_id(x) for x in table.column_values("Request ID")]
        filled: list[tuple[int, str]] = []

        for rec in table.records:
            if is_valid_request_id(normalize_request_id(rec.get("Request ID", ""))):
                continue
            if not any(rec.get(c, "") for c in _CONTENT_COLUMNS):
                continue
            new_id = next_request_id(ids, now)
            ids.append(new_id)
            filled.append((rec["_row"], new_id))

        if not dry_run:
            for row_num, new_id in filled:
                store.update(REQUESTS_SHEET, row_num, {"Request ID": new_id})

    for row_num, new_id in filled:
        logger.info("Request row %s given ID %s%s", row_num, new_id, " (dry run)" if dry_run else "")
    return filled
