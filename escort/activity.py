# escort/activity.py

from __future__ import annotations

import json
import logging
import threading

from escort.formatting import local_now, sheet_timestamp
from escort.sheets.schema import LOG_SHEET
from escort.store import SheetStore

ACTIVITY_LOGGER = "escort.activity"

_guard = threading.local()


class SheetLogHandler(logging.Handler):
    """Appends log records to the `Log` tab.

    Extra `details=` passed to the logger call is stored as JSON in the
    Details column. Records emitted while a record is being written are
    dropped, so a failing sheet write cannot log itself in a loop.
    """

    def __init__(self, store: SheetStore, tz_name: str, level: int = logging.INFO):
        super().__init__(level)
        self.store = store
        self.tz_name = tz_name

    def emit(self, record: logging.LogRecord) -> None:
        if getattr(_guard, "active", False):
            return
        _guard.active = True
        try:
            details = getattr(record, "details", None)
            if details is None and record.exc_info:
                details = self.formatException(record.exc_info).splitlines()[-1]
            self.store.append(
                LOG_SHEET,
                {
                    "Timestamp": sheet_timestamp(local_now(self.tz_name)),
                    "Level": record.levelname,
                    "Message": record.getMessage(),
                    "Details": json.dumps(details, default=str) if details is not None else "",
                },
            )
        except Exception:
            self.handleError(record)
        finally:
            _guard.active = False


def attach_sheet_log(store: SheetStore, tz_name: str) -> SheetLogHandler:
    """Routes the activity logger to the Log tab. Idempotent per store."""
    activity = logging.getLogger(ACTIVITY_LOGGER)
    activity.setLevel(logging.INFO)
    for h in activity.handlers:
        if isinstance(h, SheetLogHandler) and h.store is store:
            return h
    handler = SheetLogHandler(store, tz_name)
    activity.addHandler(handler)
    return handler


def detach_sheet_log(handler: SheetLogHandler) -> None:
    logging.getLogger(ACTIVITY_LOGGER).removeHandler(handler)
