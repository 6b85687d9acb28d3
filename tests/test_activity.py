import json
import logging

from escort.activity import ACTIVITY_LOGGER, attach_sheet_log, detach_sheet_log


def test_activity_records_land_in_log_tab(store):
    handler = attach_sheet_log(store, "America/Chicago")
    try:
        assert attach_sheet_log(store, "America/Chicago") is handler
        logging.getLogger(ACTIVITY_LOGGER).info("Rider %s added", "JP105", extra={"details": {"name": "Ola"}})
    finally:
        detach_sheet_log(handler)

    rows = store.table("Log").records
    assert len(rows) == 1
    assert rows[0]["Level"] == "INFO"
    assert rows[0]["Message"] == "Rider JP105 added"
    assert json.loads(rows[0]["Details"]) == {"name": "Ola"}
    assert rows[0]["Timestamp"]


def test_detached_handler_stops_writing(store):
    handler = attach_sheet_log(store, "America/Chicago")
    detach_sheet_log(handler)
    logging.getLogger(ACTIVITY_LOGGER).info("not recorded")
    assert store.table("Log").records == []


def test_debug_records_are_not_written(store):
    handler = attach_sheet_log(store, "America/Chicago")
    try:
        logging.getLogger(ACTIVITY_LOGGER).debug("too chatty")
    finally:
        detach_sheet_log(handler)
    assert store.table("Log").records == []
