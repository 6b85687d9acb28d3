# escort/sheets/schema.py

REQUESTS_SHEET = "Requests"
RIDERS_SHEET = "Riders"
ASSIGNMENTS_SHEET = "Assignments"
SETTINGS_SHEET = "Settings"
LOG_SHEET = "Log"
USERS_SHEET = "Users"

# Canonical columns per tab.
# Keep this order stable; header repair appends in this order.
REQUEST_COLUMNS: list[str] = [
    "Request ID",
    "Date",
    "Requester Name",
    "Requester Contact",
    "Request Type",
    "Event Date",
    "Start Time",
    "End Time",
    "Start Location",
    "End Location",
    "Secondary End Location",
    "Riders Needed",
    "Special Requirements",
    "Status",
    "Notes",
    "Riders Assigned",
    "Courtesy",
    "Last Updated",
]

RIDER_COLUMNS: list[str] = [
    "Rider ID",
    "Full Name",
    "Phone Number",
    "Carrier",
    "Email",
    "SMS Gateway Email",
    "Status",
    "Certification",
    "Total Assignments",
    "Last Assignment Date",
]

ASSIGNMENT_COLUMNS: list[str] = [
    "Assignment ID",
    "Request ID",
    "Event Date",
    "Start Time",
    "End Time",
    "Start Location",
    "End Location",
    "Secondary End Location",
    "Rider Name",
    "JP Number",
    "Status",
    "Created Date",
    "Notified",
    "SMS Sent",
    "Email Sent",
    "Completed Date",
    "Calendar Event ID",
    "Notes",
]

SETTINGS_COLUMNS: list[str] = ["Admin Emails", "Dispatcher Emails"]

LOG_COLUMNS: list[str] = ["Timestamp", "Level", "Message", "Details"]

USER_COLUMNS: list[str] = [
    "Email",
    "Display Name",
    "Role",
    "Password Hash",
    "Status",
    "Last Login",
]

CANONICAL_COLUMNS: dict[str, list[str]] = {
    REQUESTS_SHEET: REQUEST_COLUMNS,
    RIDERS_SHEET: RIDER_COLUMNS,
    ASSIGNMENTS_SHEET: ASSIGNMENT_COLUMNS,
    SETTINGS_SHEET: SETTINGS_COLUMNS,
    LOG_SHEET: LOG_COLUMNS,
    USERS_SHEET: USER_COLUMNS,
}

# Key column used for ID lookups.
ID_COLUMNS: dict[str, str] = {
    REQUESTS_SHEET: "Request ID",
    RIDERS_SHEET: "Rider ID",
    ASSIGNMENTS_SHEET: "Assignment ID",
    USERS_SHEET: "Email",
}

REQUEST_TYPES: list[str] = ["Wedding", "Funeral", "Float Movement", "VIP", "Other"]

REQUEST_STATUSES: list[str] = [
    "New",
    "Pending",
    "Assigned",
    "Unassigned",
    "In Progress",
    "Completed",
    "Cancelled",
]

RIDER_STATUSES: list[str] = ["Active", "Inactive", "Vacation", "Training", "Suspended"]

ASSIGNMENT_STATUSES: list[str] = [
    "Assigned",
    "Confirmed",
    "En Route",
    "In Progress",
    "Completed",
    "Cancelled",
    "No Show",
]

CLOSED_STATUSES = frozenset({"Completed", "Cancelled", "No Show"})
ASSIGNABLE_REQUEST_STATUSES = frozenset({"New", "Pending", "Assigned", "Unassigned", "In Progress"})
ACTIVE_ASSIGNMENT_STATUSES = frozenset({"Assigned", "Confirmed", "En Route", "In Progress"})
TERMINAL_REQUEST_STATUSES = frozenset({"Completed", "Cancelled"})

CARRIERS: list[str] = [
    "Verizon",
    "AT&T",
    "T-Mobile",
    "Sprint",
    "Virgin Mobile",
    "Boost Mobile",
    "Cricket",
    "Metro PCS",
    "US Cellular",
    "Google Fi",
    "Xfinity Mobile",
    "Spectrum Mobile",
    "Other",
]

# Carrier (lowercased, punctuation stripped) -> email-to-SMS domain.
SMS_GATEWAYS: dict[str, str] = {
    "verizon": "vtext.com",
    "at&t": "txt.att.net",
    "att": "txt.att.net",
    "tmobile": "tmomail.net",
    "sprint": "messaging.sprintpcs.com",
    "virgin mobile": "vmobl.com",
    "boost mobile": "sms.myboostmobile.com",
    "cricket": "sms.cricketwireless.net",
    "metro pcs": "mymetropcs.com",
    "us cellular": "email.uscc.net",
    "google fi": "msg.fi.google.com",
    "xfinity mobile": "vtext.com",
    "spectrum mobile": "vtext.com",
}
DEFAULT_SMS_GATEWAY = "vtext.com"
