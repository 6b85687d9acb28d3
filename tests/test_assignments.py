import pytest

from escort.assignments import (
    assignments_for_request,
    current_rider_names,
    get_assignment,
    process_assignment,
    update_assignment_status,
)
from escort.errors import NotFoundError, ValidationError
from escort.request_crud import get_request
from escort.rider_crud import get_rider

from conftest import NOW


def test_reassignment_cancels_dropped_rider_and_adds_new_one(store):
    result = process_assignment(store, "F-01-26", ["Lee Chang", "Sam Patel"], now=NOW)

    assert result["success"] is True
    assert result["status"] == "Assigned"
    assert result["added"] == ["Sam Patel"]
    assert result["removed"] == ["Dana Ortiz"]
    assert result["assignedRidersForNotification"] == [{"assignmentId": "ASG-0013", "riderName": "Sam Patel"}]

    dropped = get_assignment(store, "ASG-0001")
    assert dropped["Status"] == "Cancelled"
    assert dropped["Notes"] == "Cancelled 06/10/2026 09:00:00"

    new = get_assignment(store, "ASG-0013")
    assert new["JP Number"] == "JP103"
    assert new["Event Date"] == "06/12/2026"
    assert new["Start Location"] == "St. Mark's Chapel"
    assert new["Status"] == "Assigned"
    assert new["Created Date"] == "06/10/2026 09:00:00"

    req = get_request(store, "F-01-26")
    assert req["Riders Assigned"] == "Lee Chang\nSam Patel"
    assert req["Status"] == "Assigned"
    assert req["Last Updated"] == "06/10/2026 09:00:00"


def test_fewer_riders_than_needed_is_unassigned(store):
    result = process_assignment(store, "F-01-26", ["Lee Chang"], now=NOW)
    assert result["status"] == "Unassigned"
    assert result["added"] == []
    assert current_rider_names(assignments_for_request(store, "F-01-26")) == ["Lee Chang"]


def test_unchanged_selection_adds_nothing(store):
    before = len(store.assignments().records)
    result = process_assignment(store, "F-01-26", ["Dana Ortiz", "Lee Chang", "Dana Ortiz"], now=NOW)
    assert result["added"] == [] and result["removed"] == []
    assert len(store.assignments(use_cache=False).records) == before


def test_request_id_is_normalized(store):
    result = process_assignment(store, "f-1-26", ["Dana Ortiz", "Lee Chang"], now=NOW)
    assert result["requestId"] == "F-01-26"


def test_unknown_request(store):
    with pytest.raises(NotFoundError):
        process_assignment(store, "L-01-26", ["Dana Ortiz"], now=NOW)


def test_current_rider_names_skips_closed_rows(store):
    # ASG-0006 is No Show
    names = current_rider_names(assignments_for_request(store, "F-02-26"))
    assert names == ["Dana Ortiz", "Ina Brooks", "Lee Chang"]


def test_completing_an_assignment_updates_rider_stats(store):
    rec = update_assignment_status(store, "ASG-0001", "Completed", now=NOW)
    assert rec["Completed Date"] == "06/10/2026 09:00:00"

    dana = get_rider(store, "JP101")
    assert dana["Total Assignments"] == "2"
    assert dana["Last Assignment Date"] == "06/12/2026"


def test_update_assignment_status_validates(store):
    with pytest.raises(ValidationError):
        update_assignment_status(store, "ASG-0001", "Lost", now=NOW)
    with pytest.raises(NotFoundError):
        update_assignment_status(store, "ASG-9999", "Confirmed", now=NOW)


@pytest.mark.parametrize("request_id,status", [("F-04-26", "Cancelled"), ("E-07-26", "Completed")])
def test_closed_request_refuses_riders(store, request_id, status):
    before = len(store.assignments().records)
    with pytest.raises(ValidationError):
        process_assignment(store, request_id, ["Dana Ortiz", "Ina Brooks"], now=NOW)

    assert get_request(store, request_id, use_cache=False)["Status"] == status
    assert len(store.assignments(use_cache=False).records) == before
