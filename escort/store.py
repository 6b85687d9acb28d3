# escort/store.py

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Iterator

from gspread.exceptions import WorksheetNotFound

from escort.errors import EscortError
from escort.sheets.readers import SheetTable
from escort.sheets.schema import (
    ASSIGNMENTS_SHEET,
    CANONICAL_COLUMNS,
    REQUESTS_SHEET,
    RIDERS_SHEET,
    SETTINGS_SHEET,
    USERS_SHEET,
)
from escort.sheets.writers import append_records, update_record

logger = logging.getLogger(__name__)


class SheetStore:
    """Reads and writes tabs of one workbook.

    Reads go through a TTL cache keyed by tab name; every write drops the
    cached copy of the tab it touched. `transaction()` holds the store lock
    so a read-modify-write sequence is not interleaved with another thread
    of this process.
    """

    def __init__(self, workbook: Any, cache_ttl: float = 300.0, clock=time.monotonic):
        self._workbook = workbook
        self._ttl = cache_ttl
        self._clock = clock
        self._cache: dict[str, tuple[float, SheetTable]] = {}
        self._worksheets: dict[str, Any] = {}
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self) -> Iterator["SheetStore"]:
        with self._lock:
            yield self

    def worksheet(self, name: str, create: bool = False) -> Any:
        with self._lock:
            ws = self._worksheets.get(name)
            if ws is not None:
                return ws
            try:
                ws = self._workbook.worksheet(name)
            except WorksheetNotFound:
                if not create:
                    raise
                header = CANONICAL_COLUMNS.get(name, [])
                logger.info("Creating missing sheet %s", name)
                ws = self._workbook.add_worksheet(title=name, rows=1000, cols=max(26, len(header)))
                if header:
                    ws.append_row(header, value_input_option="USER_ENTERED")
            self._worksheets[name] = ws
            return ws

    def table(self, name: str, use_cache: bool = True, required: bool = True) -> SheetTable:
        with self._lock:
            hit = self._cache.get(name)
            if use_cache and hit is not None and self._clock() - hit[0] < self._ttl:
                return hit[1]

            try:
                ws = self.worksheet(name)
            except WorksheetNotFound:
                if required:
                    raise EscortError(f"Sheet '{name}' not found")
                return SheetTable(name=name, header=list(CANONICAL_COLUMNS.get(name, [])))

            table = SheetTable.from_values(name, ws.get_all_values())
            self._cache[name] = (self._clock(), table)
            return table

    def requests(self, use_cache: bool = True) -> SheetTable:
        return self.table(REQUESTS_SHEET, use_cache=use_cache)

    def riders(self, use_cache: bool = True) -> SheetTable:
        return self.table(RIDERS_SHEET, use_cache=use_cache)

    def assignments(self, use_cache: bool = True) -> SheetTable:
        return self.table(ASSIGNMENTS_SHEET, use_cache=use_cache)

    def users(self, use_cache: bool = True) -> SheetTable:
        return self.table(USERS_SHEET, use_cache=use_cache, required=False)

    def settings(self, use_cache: bool = True) -> SheetTable:
        return self.table(SETTINGS_SHEET, use_cache=use_cache, required=False)

    def invalidate(self, name: str | None = None) -> None:
        with self._lock:
            if name is None:
                self._cache.clear()
            else:
                self._cache.pop(name, None)

    def _header_for_write(self, name: str) -> list[str]:
        # tab missing or empty: create it with its canonical header
        ws = self.worksheet(name, create=True)
        header = self.table(name, use_cache=False).header
        if not header and CANONICAL_COLUMNS.get(name):
            ws.append_row(CANONICAL_COLUMNS[name], value_input_option="USER_ENTERED")
            self.invalidate(name)
            header = self.table(name, use_cache=False).header
        return header

    def append(self, name: str, record: dict[str, Any]) -> None:
        self.append_many(name, [record])

    def append_many(self, name: str, records: list[dict[str, Any]]) -> int:
        with self._lock:
            header = self._header_for_write(name)
            written = append_records(self.worksheet(name), header, records)
            self.invalidate(name)
            return written

    def update(self, name: str, row_number: int, changes: dict[str, Any]) -> bool:
        with self._lock:
            header = self.table(name).header
            ok = update_record(self.worksheet(name), header, row_number, changes)
            self.invalidate(name)
            return ok

    def delete(self, name: str, row_number: int) -> None:
        if row_number < 2:
            raise EscortError("Refusing to delete the header row")
        with self._lock:
            self.worksheet(name).delete_rows(row_number)
            self.invalidate(name)
