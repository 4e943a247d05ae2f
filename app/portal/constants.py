"""
Central constants for the portal.
"""
from __future__ import annotations

ROLE_ADMINISTRATOR = "administrator"
ROLE_AGENCY_OWNER = "agency_owner"
ROLE_TEAM_MANAGER = "team_manager"
ROLE_TEAM_MEMBER = "team_member"

# Display order matters: the role picker and badges use it.
ROLES: dict[str, str] = {
    ROLE_TEAM_MEMBER: "Team Member",
    ROLE_TEAM_MANAGER: "Team Manager",
    ROLE_AGENCY_OWNER: "Agency Owner",
    ROLE_ADMINISTRATOR: "Administrator",
}

# Roles that must be attached to at least one agency owner
TEAM_ROLES = frozenset({ROLE_TEAM_MEMBER, ROLE_TEAM_MANAGER})

PERMISSIONS: dict[str, str] = {
    "dashboard.view": "Dashboard: view",
    "courses.view": "Classroom: view",
    "courses.edit": "Classroom: manage courses",
    "documents.view": "Downloads: view",
    "documents.edit": "Downloads: manage",
    "events.view": "Events: view",
    "events.edit": "Events: manage",
    "leaderboard.view": "Leaderboard: view + submit",
    "team.view": "Team: view progress",
    "admin.view": "Admin: view shell",
    "admin.users": "Admin: manage users and roles",
}

_MEMBER_PERMISSIONS = ("dashboard.view", "courses.view", "documents.view", "events.view", "leaderboard.view")

ROLE_PERMISSIONS: dict[str, tuple[str, ...]] = {
    ROLE_TEAM_MEMBER: _MEMBER_PERMISSIONS,
    ROLE_TEAM_MANAGER: _MEMBER_PERMISSIONS + ("team.view",),
    ROLE_AGENCY_OWNER: _MEMBER_PERMISSIONS + ("team.view",),
    ROLE_ADMINISTRATOR: tuple(PERMISSIONS),
}

# Object storage
LESSON_VIDEO_BUCKET = "lesson-videos"

# Sales counters summed into total_sales; premiums are tracked but not summed
SALES_COUNT_FIELDS = ("rn_auto", "fire", "life", "health")
SALES_PREMIUM_FIELDS = ("life_premium", "health_premium")
SALES_METRIC_FIELDS = SALES_COUNT_FIELDS + SALES_PREMIUM_FIELDS

LEADERBOARD_WINDOW_MONTHS = 3
LEADERBOARD_SIZE = 10
METRIC_HISTORY_MONTHS = 12
# Per-field ceiling; four counters summed still fit a 32-bit INTEGER
MAX_METRIC_VALUE = 100_000_000

MIN_PASSWORD_LENGTH = 6
