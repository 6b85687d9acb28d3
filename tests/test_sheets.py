import pytest
from gspread.exceptions import WorksheetNotFound

from escort.errors import EscortError
from escort.sheets.memory import MemoryWorkbook, MemoryWorksheet
from escort.sheets.readers import SheetTable, diagnose_headers, missing_columns
from escort.sheets.schema import LOG_COLUMNS, REQUEST_COLUMNS
from escort.sheets.writers import append_missing_columns, build_row, update_record
from escort.store import SheetStore


def test_memory_worksheet_update_and_delete():
    ws = MemoryWorksheet("T", [["A", "B"], ["1", "2"], ["3", "4"]])
    ws.update(range_name="B3", values=[["x", "y"]])
    assert ws.get_all_values() == [["A", "B", ""], ["1", "2", ""], ["3", "x", "y"]]
    ws.delete_rows(2)
    assert ws.row_values(2) == ["3", "x", "y"]
    assert ws.row_values(9) == []


def test_memory_workbook_missing_tab():
    wb = MemoryWorkbook({"A": [["h"]]})
    with pytest.raises(WorksheetNotFound):
        wb.worksheet("B")
    wb.add_worksheet(title="B")
    assert [ws.title for ws in wb.worksheets()] == ["A", "B"]


def test_from_records_uses_canonical_header_then_extras():
    wb = MemoryWorkbook.from_records({"Requests": [{"Request ID": "F-01-26", "Color": "red"}]})
    header = wb.worksheet("Requests").row_values(1)
    assert header == REQUEST_COLUMNS + ["Color"]


def test_table_records_carry_row_numbers_and_first_duplicate_wins():
    table = SheetTable.from_values("Riders", [["Rider ID", "Full Name", "Full Name"], [" JP1 ", "Ann", "Other"], ["JP2"]])
    assert table.records[0] == {"Rider ID": "JP1", "Full Name": "Ann", "_row": 2}
    assert table.records[1] == {"Rider ID": "JP2", "Full Name": "", "_row": 3}
    assert table.find("jp2")["_row"] == 3
    assert table.find("ann", column="Full Name")["Rider ID"] == "JP1"
    assert table.find("") is None
    assert table.find("Ann", column="Nope") is None


def test_missing_columns():
    assert missing_columns([" Request ID ", ""], ["Request ID", "Status"]) == ["Status"]


def test_diagnose_headers():
    report = diagnose_headers("Log", ["Level", "Timestamp", "", "Level", "Extra", "", ""])
    assert report["missing"] == ["Message", "Details"]
    assert report["duplicates"] == ["Level"]
    assert report["blank_positions"] == [3]
    assert report["unknown"] == ["Extra"]
    assert report["out_of_order"] is True

    clean = diagnose_headers("Log", list(LOG_COLUMNS))
    assert not (clean["missing"] or clean["duplicates"] or clean["blank_positions"] or clean["out_of_order"])


def test_build_row_drops_unknown_keys():
    assert build_row(["A", "B", "C"], {"C": 3, "A": None, "Z": 1}) == ["", "", "3"]


def test_update_record_keeps_columns_not_named():
    ws = MemoryWorksheet("T", [["A", "B"], ["1", "2"]])
    header = ["A", "B"]
    # another writer changes B after our read
    ws.update(range_name="B2", values=[["changed"]])
    assert update_record(ws, header, 2, {"A": "new"}) is True
    assert ws.row_values(2) == ["new", "changed"]
    assert update_record(ws, header, 2, {"Z": "x"}) is False


def test_memory_worksheet_batch_update():
    ws = MemoryWorksheet("T", [["A", "B", "C"], ["1", "2", "3"]])
    ws.batch_update([{"range": "A2", "values": [["x"]]}, {"range": "C3", "values": [["z"]]}])
    assert ws.get_all_values() == [["A", "B", "C"], ["x", "2", "3"], ["", "", "z"]]


def test_store_update_writes_only_named_cells(workbook, monkeypatch):
    ws = workbook.worksheet("Requests")
    ws.update(range_name="O2", values=[["=1/2"]])
    writes = []
    real_batch_update = ws.batch_update

    def recording_batch_update(data, value_input_option=None):
        writes.extend(data)
        real_batch_update(data, value_input_option=value_input_option)

    monkeypatch.setattr(ws, "batch_update", recording_batch_update)

    store = SheetStore(workbook)
    store.update("Requests", 2, {"Status": "In Progress", "Last Updated": "06/10/2026 09:00:00"})

    assert writes == [
        {"range": "N2", "values": [["In Progress"]]},
        {"range": "R2", "values": [["06/10/2026 09:00:00"]]},
    ]
    row = store.requests(use_cache=False).find("F-01-26")
    assert row["Notes"] == "=1/2"
    assert row["Special Requirements"] == "Hearse leads"


def test_append_missing_columns_keeps_existing_positions():
    ws = MemoryWorksheet("Log", [["Message", "Timestamp", ""]])
    assert append_missing_columns(ws, ws.row_values(1), LOG_COLUMNS) == ["Level", "Details"]
    assert ws.row_values(1) == ["Message", "Timestamp", "Level", "Details"]
    assert append_missing_columns(ws, ws.row_values(1), LOG_COLUMNS) == []


class Tick:
    def __init__(self):
        self.t = 0.0

    def __call__(self):
        return self.t


def test_store_cache_expires_and_writes_invalidate(workbook):
    tick = Tick()
    store = SheetStore(workbook, cache_ttl=60, clock=tick)
    first = store.riders()
    assert store.riders() is first

    workbook.worksheet("Riders").update(range_name="B2", values=[["Changed Outside"]])
    assert store.riders() is first
    tick.t = 61
    assert store.riders().records[0]["Full Name"] == "Changed Outside"

    store.update("Riders", 2, {"Full Name": "Dana Ortiz"})
    assert store.riders().records[0]["Full Name"] == "Dana Ortiz"


def test_store_missing_sheets():
    store = SheetStore(MemoryWorkbook({}))
    with pytest.raises(EscortError):
        store.requests()
    assert store.users().records == []


def test_store_append_creates_missing_tab():
    wb = MemoryWorkbook({})
    store = SheetStore(wb)
    store.append("Log", {"Level": "INFO", "Message": "hello"})
    assert wb.worksheet("Log").get_all_values() == [LOG_COLUMNS, ["", "INFO", "hello", ""]]


def test_store_refuses_to_delete_header(store):
    with pytest.raises(EscortError):
        store.delete("Riders", 1)
