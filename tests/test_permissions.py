import pytest

from escort.auth.permissions import (
    PERMISSIONS,
    User,
    can_access_record,
    can_view_page,
    filter_records,
    has_permission,
    nav_items_for,
)

ADMIN = User(email="admin@example.org", name="Admin", role="admin")
DISPATCHER = User(email="dispatch@example.org", name="Dispatch", role="dispatcher")
RIDER = User(email="ina@example.org", name="Ina Brooks", role="rider", rider_id="JP104")


def test_rider_never_has_view_all():
    for resource, actions in PERMISSIONS["rider"].items():
        assert actions.get("view_all", False) is False, resource


@pytest.mark.parametrize(
    "user,resource,action,expected",
    [
        (ADMIN, "users", "delete", True),
        (ADMIN, "system", "edit", True),
        (DISPATCHER, "riders", "edit", False),
        (DISPATCHER, "assignments", "assign", True),
        (DISPATCHER, "users", "view_all", False),
        (RIDER, "assignments", "update_own", True),
        (RIDER, "requests", "create", False),
        (RIDER, "notifications", "send", False),
        (None, "requests", "view_all", False),
    ],
)
def test_has_permission(user, resource, action, expected):
    assert has_permission(user, resource, action) is expected


def test_row_rules_limit_rider_to_own_assignments():
    mine_by_id = {"JP Number": "jp104", "Rider Name": "Someone Else"}
    mine_by_name = {"JP Number": "", "Rider Name": " ina brooks "}
    other = {"JP Number": "JP101", "Rider Name": "Dana Ortiz"}

    assert can_access_record(RIDER, "assignments", mine_by_id)
    assert can_access_record(RIDER, "assignments", mine_by_name, action="update")
    assert not can_access_record(RIDER, "assignments", other)
    assert not can_access_record(RIDER, "assignments", other, action="update")
    assert filter_records(RIDER, "assignments", [mine_by_id, other]) == [mine_by_id]


def test_rider_cannot_see_requests_at_all():
    assert not can_access_record(RIDER, "requests", {"Request ID": "F-01-26"})


def test_staff_see_every_row():
    row = {"JP Number": "JP101", "Rider Name": "Dana Ortiz"}
    assert can_access_record(DISPATCHER, "assignments", row)
    assert can_access_record(DISPATCHER, "assignments", row, action="update")
    assert not can_access_record(DISPATCHER, "riders", {"Rider ID": "JP101"}, action="update")


def test_rider_sees_own_rider_row_by_email():
    assert can_access_record(RIDER, "riders", {"Rider ID": "", "Email": "INA@example.org"})
    assert not can_access_record(RIDER, "riders", {"Rider ID": "JP101", "Email": "dana@example.org"})


def test_page_access():
    assert can_view_page("rider", "my-schedule")
    assert not can_view_page("rider", "requests")
    assert not can_view_page("admin", "my-schedule")
    assert can_view_page("admin", "users")
    assert not can_view_page("dispatcher", "users")
    assert not can_view_page("admin", "nowhere")


def test_nav_items_follow_page_access():
    assert [p for p, _ in nav_items_for("rider")] == ["dashboard", "my-schedule"]
    assert [p for p, _ in nav_items_for("dispatcher")] == [
        "dashboard",
        "requests",
        "assignments",
        "riders",
        "notifications",
        "reports",
    ]
    assert nav_items_for("admin")[-1] == ("users", "Users")
    assert nav_items_for("guest") == []


def test_user_context():
    ctx = RIDER.context()
    assert ctx["role"] == "rider"
    assert ctx["riderId"] == "JP104"
    assert "view_own_assignments" in ctx["permissions"]
