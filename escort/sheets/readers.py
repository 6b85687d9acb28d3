# escort/sheets/readers.py

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable

from .schema import CANONICAL_COLUMNS, ID_COLUMNS

ROW_NUMBER_KEY = "_row"


def _header_index(header: list[str]) -> dict[str, int]:
    # first occurrence wins when a header is duplicated
    idx: dict[str, int] = {}
    for i, h in enumerate(header):
        h = h.strip()
        if h and h not in idx:
            idx[h] = i
    return idx


def _rows_to_dicts(header: list[str], rows: list[list[Any]], first_row: int = 2) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for n, r in enumerate(rows, start=first_row):
        row = [(str(x).strip() if x is not None else "") for x in r]
        d: dict[str, Any] = {h: (row[i] if i < len(row) else "") for h, i in _header_index(header).items()}
        d[ROW_NUMBER_KEY] = n
        out.append(d)
    return out


@dataclass
class SheetTable:
    """One read of a tab: header, column map and data rows.

    Records are dicts keyed by header text, plus `_row` (the 1-based sheet
    row number) so callers can write back to the same row.
    """

    name: str
    header: list[str]
    rows: list[list[str]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.columns = _header_index(self.header)
        self.records = _rows_to_dicts(self.header, self.rows)
        self._index: dict[str, dict[str, Any]] | None = None

    @classmethod
    def from_values(cls, name: str, values: list[list[Any]]) -> "SheetTable":
        if not values:
            return cls(name=name, header=[], rows=[])
        header = [str(h).strip() for h in values[0]]
        return cls(name=name, header=header, rows=[list(r) for r in values[1:]])

    def has_column(self, column: str) -> bool:
        return column in self.columns

    def find(self, value: str, column: str | None = None, normalize: Callable[[str], str] | None = None) -> dict[str, Any] | None:
        """Looks a record up by key column. The default key column is
        indexed on first use; other columns are scanned."""
        column = column or ID_COLUMNS.get(self.name, "")
        norm = normalize or (lambda s: s.strip().lower())
        target = norm(str(value or ""))
        if not target or column not in self.columns:
            return None

        if column == ID_COLUMNS.get(self.name) and normalize is None:
            if self._index is None:
                self._index = {}
                for rec in self.records:
                    key = norm(rec.get(column, ""))
                    if key and key not in self._index:
                        self._index[key] = rec
            return self._index.get(target)

        for rec in self.records:
            if norm(rec.get(column, "")) == target:
                return rec
        return None

    def where(self, predicate: Callable[[dict[str, Any]], bool]) -> list[dict[str, Any]]:
        return [r for r in self.records if predicate(r)]

    def column_values(self, column: str) -> list[str]:
        return [r.get(column, "") for r in self.records]


def missing_columns(header: list[str], required: list[str]) -> list[str]:
    """
    Returns the required columns absent from `header`.
    Does not fail; caller decides policy.
    """
    header_set = {h.strip() for h in header if h.strip()}
    return [c for c in required if c not in header_set]


def diagnose_headers(name: str, header: list[str]) -> dict[str, Any]:
    """Reports header problems for a tab against its canonical columns."""
    expected = CANONICAL_COLUMNS.get(name, [])
    cleaned = [h.strip() for h in header]
    while cleaned and not cleaned[-1]:
        cleaned.pop()
    counts = Counter(h for h in cleaned if h)
    present = [h for h in cleaned if h in expected]
    expected_order = [h for h in expected if h in counts]

    return {
        "sheet": name,
        "missing": missing_columns(cleaned, expected),
        "duplicates": sorted(h for h, n in counts.items() if n > 1),
        "blank_positions": [i + 1 for i, h in enumerate(cleaned) if not h],
        "unknown": [h for h in cleaned if h and h not in expected],
        "out_of_order": list(dict.fromkeys(present)) != expected_order,
    }
