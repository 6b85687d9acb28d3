# escort/sheets/writers.py

from __future__ import annotations

from typing import Any

from gspread.utils import rowcol_to_a1

from .readers import _header_index


def build_row(header: list[str], record: dict[str, Any]) -> list[str]:
    """Places record values by header name; unknown keys are dropped."""
    idx = _header_index(header)
    row = [""] * len(header)
    for col, val in record.items():
        if col in idx and val is not None:
            row[idx[col]] = str(val)
    return row


def append_records(ws: Any, header: list[str], records: list[dict[str, Any]]) -> int:
    if not records:
        return 0
    rows = [build_row(header, r) for r in records]
    if len(rows) == 1:
        ws.append_row(rows[0], value_input_option="USER_ENTERED")
    else:
        ws.append_rows(rows, value_input_option="USER_ENTERED")
    return len(rows)


def update_record(ws: Any, header: list[str], row_num: int, changes: dict[str, Any]) -> bool:
    """Writes the cells named in `changes` on one row, in a single batch.

    Other cells of the row are never sent, so their formulas and text stay
    as the sheet holds them.
    Returns False when nothing in `changes` maps to a header column.
    """
    idx = _header_index(header)
    data = [
        {"range": rowcol_to_a1(row_num, idx[col] + 1), "values": [["" if val is None else str(val)]]}
        for col, val in changes.items()
        if col in idx
    ]
    if not data:
        return False

    ws.batch_update(data, value_input_option="USER_ENTERED")
    return True


def append_missing_columns(ws: Any, header: list[str], expected: list[str]) -> list[str]:
    """Appends canonical columns missing from the header row. Existing
    columns are never moved. Returns the columns added."""
    present = {h.strip() for h in header if h.strip()}
    missing = [c for c in expected if c not in present]
    if not missing:
        return []

    trimmed = [h.strip() for h in header]
    while trimmed and not trimmed[-1]:
        trimmed.pop()
    ws.update(range_name="A1", values=[trimmed + missing], value_input_option="USER_ENTERED")
    return missing
