from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from app.portal.constants import ROLE_ADMINISTRATOR, ROLE_AGENCY_OWNER, ROLE_TEAM_MANAGER
from app.portal.models import Profile, TeamAgencyOwner
from app.portal.modules.courses.models import CourseEnrollment
from app.portal.rbac import user_has_role

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


def agency_owner_ids_for(s: "Session", user_id: int) -> list[int]:
    rows = s.query(TeamAgencyOwner.agency_owner_id).filter(TeamAgencyOwner.user_id == user_id).all()
    return [r[0] for r in rows]


def member_ids_for_owners(s: "Session", owner_ids: list[int]) -> list[int]:
    if not owner_ids:
        return []
    rows = s.query(TeamAgencyOwner.user_id).filter(TeamAgencyOwner.agency_owner_id.in_(owner_ids)).all()
    return sorted({r[0] for r in rows})


def visible_member_ids(s: "Session", user: Profile) -> list[int]:
    """
    Administrators see everyone; agency owners see the users linked to them;
    team managers see every user linked to any agency owner they are linked to.
    The first matching role wins.
    """
    if user_has_role(user, ROLE_ADMINISTRATOR):
        return [r[0] for r in s.query(Profile.id).order_by(Profile.id.asc()).all()]
    if user_has_role(user, ROLE_AGENCY_OWNER):
        return member_ids_for_owners(s, [user.id])
    if user_has_role(user, ROLE_TEAM_MANAGER):
        return member_ids_for_owners(s, agency_owner_ids_for(s, user.id))
    return []


@dataclass(frozen=True)
class EnrollmentView:
    course_id: int
    course_title: str
    progress: int
    completed: bool
    enrolled_at: object


@dataclass(frozen=True)
class TeamMemberProgress:
    profile: Profile
    enrollments: list[EnrollmentView]


def team_progress(s: "Session", user: Profile) -> list[TeamMemberProgress]:
    ids = visible_member_ids(s, user)
    if not ids:
        return []
    profiles = s.query(Profile).filter(Profile.id.in_(ids)).order_by(Profile.id.asc()).all()
    enrollments = (
        s.query(CourseEnrollment)
        .filter(CourseEnrollment.user_id.in_(ids))
        .order_by(CourseEnrollment.enrolled_at.asc(), CourseEnrollment.id.asc())
        .all()
    )
    by_user: dict[int, list[EnrollmentView]] = {}
    for e in enrollments:
        by_user.setdefault(e.user_id, []).append(
            EnrollmentView(
                course_id=e.course_id,
                course_title=e.course.title if e.course else "Unknown Course",
                progress=e.progress,
                completed=e.completed,
                enrolled_at=e.enrolled_at,
            )
        )
    return [TeamMemberProgress(profile=p, enrollments=by_user.get(p.id, [])) for p in profiles]
