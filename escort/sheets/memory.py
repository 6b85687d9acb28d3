# escort/sheets/memory.py

from __future__ import annotations

import re
import threading
from pathlib import Path
from typing import Any

import yaml
from gspread.exceptions import WorksheetNotFound

from .schema import CANONICAL_COLUMNS

_A1_RE = re.compile(r"^([A-Za-z]+)(\d+)")


def _cell(x: Any) -> str:
    return str(x) if x is not None else ""


def _col_index(letters: str) -> int:
    n = 0
    for ch in letters.upper():
        n = n * 26 + (ord(ch) - ord("A") + 1)
    return n - 1


class MemoryWorksheet:
    """In-process stand-in for `gspread.Worksheet`.

    Implements only the calls this package makes. Every cell is stored as
    a string, the way `get_all_values()` returns formatted values.
    """

    def __init__(self, title: str, values: list[list[Any]] | None = None):
        self.title = title
        self._values: list[list[str]] = [[_cell(x) for x in r] for r in (values or [])]
        self._lock = threading.Lock()

    def get_all_values(self) -> list[list[str]]:
        with self._lock:
            width = max((len(r) for r in self._values), default=0)
            return [r + [""] * (width - len(r)) for r in self._values]

    def row_values(self, row: int) -> list[str]:
        with self._lock:
            if row < 1 or row > len(self._values):
                return []
            return list(self._values[row - 1])

    def append_row(self, values: list[Any], value_input_option: str | None = None) -> None:
        with self._lock:
            self._values.append([_cell(x) for x in values])

    def append_rows(self, values: list[list[Any]], value_input_option: str | None = None) -> None:
        with self._lock:
            for r in values:
                self._values.append([_cell(x) for x in r])

    def update(
        self,
        range_name: str | None = None,
        values: list[list[Any]] | None = None,
        value_input_option: str | None = None,
    ) -> None:
        m = _A1_RE.match(range_name or "A1")
        if not m:
            raise ValueError(f"Unsupported range: {range_name}")
        col0 = _col_index(m.group(1))
        row0 = int(m.group(2)) - 1

        with self._lock:
            for dr, new_row in enumerate(values or []):
                r = row0 + dr
                while len(self._values) <= r:
                    self._values.append([])
                target = self._values[r]
                needed = col0 + len(new_row)
                if len(target) < needed:
                    target.extend([""] * (needed - len(target)))
                for dc, val in enumerate(new_row):
                    target[col0 + dc] = _cell(val)

    def batch_update(self, data: list[dict[str, Any]], value_input_option: str | None = None) -> None:
        for item in data:
            self.update(range_name=item["range"], values=item["values"], value_input_option=value_input_option)

    def delete_rows(self, start_index: int, end_index: int | None = None) -> None:
        end_index = end_index or start_index
        with self._lock:
            del self._values[start_index - 1 : end_index]


class MemoryWorkbook:
    """In-process stand-in for `gspread.Spreadsheet`."""

    def __init__(self, sheets: dict[str, list[list[Any]]] | None = None):
        self._sheets: dict[str, MemoryWorksheet] = {}
        for title, values in (sheets or {}).items():
            self._sheets[title] = MemoryWorksheet(title, values)

    @classmethod
    def from_records(cls, records_by_sheet: dict[str, list[dict[str, Any]]]) -> "MemoryWorkbook":
        """Builds tabs from lists of dicts; the header is the canonical column
        list for known tabs, followed by any extra keys in first-seen order."""
        sheets: dict[str, list[list[Any]]] = {}
        for title, records in records_by_sheet.items():
            header = list(CANONICAL_COLUMNS.get(title, []))
            for rec in records or []:
                for k in rec:
                    if k not in header:
                        header.append(k)
            rows = [[(rec.get(h, "") if rec.get(h) is not None else "") for h in header] for rec in records or []]
            sheets[title] = [header] + rows
        return cls(sheets)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "MemoryWorkbook":
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_records(data.get("sheets", {}) or {})

    def worksheet(self, title: str) -> MemoryWorksheet:
        try:
            return self._sheets[title]
        except KeyError:
            raise WorksheetNotFound(title)

    def worksheets(self) -> list[MemoryWorksheet]:
        return list(self._sheets.values())

    def add_worksheet(self, title: str, rows: int = 100, cols: int = 26) -> MemoryWorksheet:
        ws = MemoryWorksheet(title)
        self._sheets[title] = ws
        return ws
