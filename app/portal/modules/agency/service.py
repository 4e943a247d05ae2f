from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from app.portal.audit import record_event
from app.portal.constants import TEAM_ROLES
from app.portal.models import Profile, TeamAgencyOwner
from app.portal.rbac import assign_role, revoke_role

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

INVITE_ADDED = "added"
INVITE_ALREADY_IN_TEAM = "already_in_team"
INVITE_PENDING_SIGNUP = "pending_signup"


class AgencyError(ValueError):
    pass


def owner_display_name(owner: Profile) -> str:
    return owner.full_name or owner.email


def list_team(s: "Session", owner: Profile) -> list[Profile]:
    """Profiles linked to `owner`, newest first."""
    return (
        s.query(Profile)
        .join(TeamAgencyOwner, TeamAgencyOwner.user_id == Profile.id)
        .filter(TeamAgencyOwner.agency_owner_id == owner.id)
        .order_by(Profile.created_at.desc(), Profile.id.desc())
        .all()
    )


def is_team_member_of(s: "Session", owner: Profile, user: Profile) -> bool:
    return (
        s.query(TeamAgencyOwner.id)
        .filter(TeamAgencyOwner.agency_owner_id == owner.id, TeamAgencyOwner.user_id == user.id)
        .first()
        is not None
    )


def _check_team_role(role_key: str) -> None:
    if role_key not in TEAM_ROLES:
        raise AgencyError(f"Role must be one of: {', '.join(sorted(TEAM_ROLES))}.")


def link_to_owner(s: "Session", user: Profile, owner: Profile, *, actor: Profile | None) -> TeamAgencyOwner:
    link = TeamAgencyOwner(user_id=user.id, agency_owner_id=owner.id)
    s.add(link)
    record_event(
        s,
        actor=actor,
        action="team.link",
        entity_type="Profile",
        entity_id=str(user.id),
        metadata={"agency_owner_id": owner.id, "email": user.email},
    )
    return link


@dataclass(frozen=True)
class InviteResult:
    status: str
    email: str
    role: str
    user: Profile | None = None


def invite_member(s: "Session", owner: Profile, email: str, role_key: str) -> InviteResult:
    """
    Existing user with no agency -> linked to `owner` and given the role.
    Existing user already on a team -> rejected.
    Unknown email -> nothing written; the caller shows the sign-up link.
    """
    _check_team_role(role_key)
    email = (email or "").strip().lower()
    if not email:
        raise AgencyError("Email is required.")

    user = s.query(Profile).filter(Profile.email == email).one_or_none()
    if user is None:
        record_event(
            s,
            actor=owner,
            action="team.invite",
            entity_type="Profile",
            entity_id=email,
            metadata={"role": role_key},
        )
        return InviteResult(status=INVITE_PENDING_SIGNUP, email=email, role=role_key)

    already = s.query(TeamAgencyOwner.id).filter(TeamAgencyOwner.user_id == user.id).first()
    if already is not None:
        return InviteResult(status=INVITE_ALREADY_IN_TEAM, email=email, role=role_key, user=user)

    link_to_owner(s, user, owner, actor=owner)
    assign_role(s, user, role_key, actor=owner)
    return InviteResult(status=INVITE_ADDED, email=email, role=role_key, user=user)


def change_member_role(s: "Session", owner: Profile, member: Profile, role_key: str, action: str) -> bool:
    """Add or remove a team role on one of the owner's own members. Returns False for a no-op."""
    _check_team_role(role_key)
    if not is_team_member_of(s, owner, member):
        raise AgencyError("That user is not on your team.")
    if action == "add":
        return assign_role(s, member, role_key, actor=owner)
    if action == "remove":
        return revoke_role(s, member, role_key, actor=owner)
    raise AgencyError(f"Unknown action {action!r}.")
