"""
Central constants for the Meetup Manager application.
"""
from __future__ import annotations

# Global roles, lowest to highest
GLOBAL_ROLE_LEVELS = {
    "VIEWER": 0,
    "VOLUNTEER": 1,
    "EVENT_LEAD": 2,
    "ADMIN": 3,
    "SUPER_ADMIN": 4,
}

# Roles an admin may hand out from the members screen (SUPER_ADMIN comes from env only)
ASSIGNABLE_ROLES = ("ADMIN", "EVENT_LEAD", "VOLUNTEER", "VIEWER")

EVENT_ROLE_LEVELS = {
    "VIEWER": 0,
    "VOLUNTEER": 1,
    "ORGANIZER": 2,
    "LEAD": 3,
}

EVENT_STATUSES = ("DRAFT", "SCHEDULED", "LIVE", "COMPLETED")
SPEAKER_STATUSES = ("INVITED", "CONFIRMED", "DECLINED", "CANCELLED")
VOLUNTEER_STATUSES = ("PENDING", "CONFIRMED", "ACTIVE", "NO_SHOW")
VENUE_STATUSES = ("INQUIRY", "PENDING", "CONFIRMED", "DECLINED", "CANCELLED")
TASK_STATUSES = ("TODO", "IN_PROGRESS", "BLOCKED", "DONE")
PRIORITIES = ("LOW", "MEDIUM", "HIGH", "CRITICAL")
EMAIL_STATUSES = ("PENDING", "SENT", "FAILED")

AUDIT_ACTIONS = frozenset({"CREATE", "UPDATE", "DELETE"})

# SOP sections in display order
SOP_SECTIONS = ("PRE_EVENT", "ON_DAY", "POST_EVENT")
SECTION_LABELS = {
    "PRE_EVENT": "Pre-Event",
    "ON_DAY": "On-Day",
    "POST_EVENT": "Post-Event",
}

ACCESS_TOKEN_TTL_SECONDS = 7 * 24 * 60 * 60
REFRESH_TOKEN_TTL_DAYS = 30

AUDIT_PAGE_SIZE = 50
