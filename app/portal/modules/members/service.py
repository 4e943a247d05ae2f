"""
User administration: directory, filters, account creation, role badges and inline profile edits.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from werkzeug.security import generate_password_hash

from app.portal.audit import record_event
from app.portal.constants import MIN_PASSWORD_LENGTH, ROLE_AGENCY_OWNER, ROLES, TEAM_ROLES
from app.portal.models import Profile, Role, TeamAgencyOwner, UserRole
from app.portal.modules.agency.service import link_to_owner
from app.portal.rbac import assign_role
from app.portal.utils import clean, is_valid_email, is_valid_phone_number, phone_digits

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

EDITABLE_PROFILE_FIELDS = ("first_name", "last_name", "phone_number", "agency_name", "agency_city", "agency_state")
SORT_FIELDS = ("name", "email", "phone", "city", "state", "roles", "agencies")


class MemberError(ValueError):
    pass


# ---------- Directory ----------

@dataclass
class DirectoryRow:
    profile: Profile
    roles: list[str] = field(default_factory=list)
    agency_owner_ids: list[int] = field(default_factory=list)
    agency_owner_names: list[str] = field(default_factory=list)

    @property
    def id(self) -> int:
        return self.profile.id


def owner_label(owner: Profile) -> str:
    """Agency-owner picker label: agency name, else full name, else email."""
    return owner.agency_name or owner.full_name or owner.email


def build_directory(s: "Session") -> list[DirectoryRow]:
    profiles = s.query(Profile).order_by(Profile.created_at.desc(), Profile.id.desc()).all()
    role_rows = s.query(UserRole.user_id, Role.key).join(Role, Role.id == UserRole.role_id).all()
    links = s.query(TeamAgencyOwner).order_by(TeamAgencyOwner.id.asc()).all()

    roles_by_user: dict[int, list[str]] = {}
    for user_id, key in role_rows:
        roles_by_user.setdefault(user_id, []).append(key)

    order = list(ROLES)
    rows: dict[int, DirectoryRow] = {}
    for p in profiles:
        keys = sorted(roles_by_user.get(p.id, []), key=lambda k: order.index(k) if k in order else len(order))
        rows[p.id] = DirectoryRow(profile=p, roles=keys)

    for link in links:
        row = rows.get(link.user_id)
        if row is None or link.agency_owner is None:
            continue
        row.agency_owner_ids.append(link.agency_owner_id)
        row.agency_owner_names.append(link.agency_owner.full_name or link.agency_owner.email)
    return list(rows.values())


def filter_users(
    rows: list[DirectoryRow],
    *,
    role: str | None = None,
    agency_owner_id: int | None = None,
    city: str | None = None,
    state: str | None = None,
    q: str | None = None,
) -> list[DirectoryRow]:
    """Each filter is skipped when empty (or "all")."""
    out = rows
    if role and role != "all":
        out = [r for r in out if role in r.roles]
    if agency_owner_id:
        out = [r for r in out if agency_owner_id in r.agency_owner_ids or r.id == agency_owner_id]
    if city and city != "all":
        out = [r for r in out if r.profile.agency_city == city]
    if state and state != "all":
        out = [r for r in out if r.profile.agency_state == state]
    needle = (q or "").strip().lower()
    if needle:
        out = [
            r
            for r in out
            if needle in (r.profile.email or "").lower()
            or needle in (r.profile.first_name or "").lower()
            or needle in (r.profile.last_name or "").lower()
        ]
    return out


def _sort_key(sort_field: str):
    if sort_field == "name":
        return lambda r: f"{r.profile.first_name or ''} {r.profile.last_name or ''}".lower()
    if sort_field == "email":
        return lambda r: (r.profile.email or "").lower()
    if sort_field == "phone":
        return lambda r: r.profile.phone_number or ""
    if sort_field == "city":
        return lambda r: r.profile.agency_city or ""
    if sort_field == "state":
        return lambda r: r.profile.agency_state or ""
    if sort_field == "roles":
        return lambda r: len(r.roles)
    if sort_field == "agencies":
        return lambda r: len(r.agency_owner_names)
    return None


def sort_users(rows: list[DirectoryRow], sort_field: str | None, direction: str = "asc") -> list[DirectoryRow]:
    """Stable sort; an unknown or empty field leaves the order untouched."""
    key = _sort_key(sort_field or "")
    if key is None:
        return list(rows)
    return sorted(rows, key=key, reverse=(direction == "desc"))


def facets(rows: list[DirectoryRow]) -> tuple[list[str], list[str]]:
    """Sorted unique non-empty cities and states."""
    cities = sorted({r.profile.agency_city for r in rows if r.profile.agency_city})
    states = sorted({r.profile.agency_state for r in rows if r.profile.agency_state})
    return cities, states


@dataclass(frozen=True)
class AgencyOwnerOption:
    id: int
    name: str
    city: str | None
    state: str | None


def agency_owner_options(s: "Session") -> list[AgencyOwnerOption]:
    owners = (
        s.query(Profile)
        .join(UserRole, UserRole.user_id == Profile.id)
        .join(Role, Role.id == UserRole.role_id)
        .filter(Role.key == ROLE_AGENCY_OWNER)
        .order_by(Profile.first_name.asc(), Profile.id.asc())
        .all()
    )
    return [AgencyOwnerOption(id=o.id, name=owner_label(o), city=o.agency_city, state=o.agency_state) for o in owners]


def search_agency_owners(options: list[AgencyOwnerOption], query: str | None) -> list[AgencyOwnerOption]:
    needle = (query or "").strip().lower()
    if not needle:
        return list(options)
    return [
        o
        for o in options
        if needle in o.name.lower()
        or needle in (o.city or "").lower()
        or needle in (o.state or "").lower()
    ]


# ---------- Account creation ----------

def validate_member_payload(payload: dict) -> list[str]:
    errors: list[str] = []
    if not (payload.get("first_name") or "").strip():
        errors.append("First name is required.")
    if not (payload.get("last_name") or "").strip():
        errors.append("Last name is required.")
    email = (payload.get("email") or "").strip()
    if not email:
        errors.append("Email is required.")
    elif not is_valid_email(email):
        errors.append("Invalid email format.")
    if len(payload.get("password") or "") < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    phone = (payload.get("phone_number") or "").strip()
    if phone and not is_valid_phone_number(phone):
        errors.append("Please enter a valid 10-digit US phone number.")

    role = (payload.get("role") or "").strip()
    if role not in ROLES:
        errors.append("Select a valid role.")
    elif role in TEAM_ROLES and not payload.get("agency_owner_ids"):
        errors.append("Please select at least one agency owner for team members and managers.")
    elif role == ROLE_AGENCY_OWNER and not all(
        (payload.get(k) or "").strip() for k in ("agency_name", "agency_city", "agency_state")
    ):
        errors.append("Please provide agency name, city, and state for agency owners.")
    return errors


def create_member(s: "Session", payload: dict, actor: Profile) -> Profile:
    """Create the profile, its agency-owner links and its role. Call validate_member_payload first."""
    email = (payload.get("email") or "").strip().lower()
    if s.query(Profile.id).filter(Profile.email == email).first() is not None:
        raise MemberError("A user with that email already exists.")

    role = payload["role"]
    user = Profile(
        email=email,
        password_hash=generate_password_hash(payload["password"]),
        first_name=(payload.get("first_name") or "").strip(),
        last_name=(payload.get("last_name") or "").strip(),
        phone_number=phone_digits(payload.get("phone_number")) or None,
        is_active=True,
    )
    if role == ROLE_AGENCY_OWNER:
        user.agency_name = clean(payload.get("agency_name"))
        user.agency_city = clean(payload.get("agency_city"))
        user.agency_state = clean(payload.get("agency_state"))
    s.add(user)
    s.flush()

    for owner_id in payload.get("agency_owner_ids") or []:
        owner = s.get(Profile, int(owner_id))
        if owner is None:
            raise MemberError(f"Unknown agency owner {owner_id}.")
        link_to_owner(s, user, owner, actor=actor)

    assign_role(s, user, role, actor=actor)
    record_event(
        s,
        actor=actor,
        action="user.create",
        entity_type="Profile",
        entity_id=str(user.id),
        metadata={"email": user.email, "role": role},
    )
    return user


def split_name(full_name: str) -> tuple[str, str]:
    """First word is the first name; the rest is the last name."""
    parts = (full_name or "").split(" ")
    first = parts[0] or full_name
    return first, " ".join(parts[1:])


def create_agency_owner(s: "Session", full_name: str, email: str, actor: Profile) -> tuple[Profile, bool]:
    """
    Reuse the profile for `email` (renaming it) or create one with a random
    temporary password, then grant agency_owner. Returns (profile, created).
    """
    full_name = (full_name or "").strip()
    email = (email or "").strip().lower()
    if not full_name or not email:
        raise MemberError("Name and email are required.")
    if not is_valid_email(email):
        raise MemberError("Invalid email format.")

    first, last = split_name(full_name)
    user = s.query(Profile).filter(Profile.email == email).one_or_none()
    created = user is None
    if user is None:
        user = Profile(
            email=email,
            password_hash=generate_password_hash(secrets.token_urlsafe(12) + "Aa1!"),
            is_active=True,
        )
        s.add(user)
    user.first_name = first
    user.last_name = last
    s.flush()

    assign_role(s, user, ROLE_AGENCY_OWNER, actor=actor)
    record_event(
        s,
        actor=actor,
        action="user.create_agency_owner",
        entity_type="Profile",
        entity_id=str(user.id),
        metadata={"email": user.email, "created": created},
    )
    return user, created


# ---------- Inline edits ----------

def update_profile_field(s: "Session", user: Profile, field_name: str, value: str | None, actor: Profile) -> Profile:
    """
    Inline edit of one profile column. Phone input is reduced to digits and must
    be exactly ten of them (blank clears it).
    """
    if field_name not in EDITABLE_PROFILE_FIELDS:
        raise MemberError(f"Field {field_name!r} cannot be edited.")

    raw = (value or "").strip()
    if field_name == "phone_number":
        if raw and not is_valid_phone_number(raw):
            raise MemberError("Please enter a valid 10-digit US phone number.")
        new_value = phone_digits(raw) or None
    else:
        new_value = raw or None

    old_value = getattr(user, field_name)
    if old_value == new_value:
        return user
    setattr(user, field_name, new_value)
    record_event(
        s,
        actor=actor,
        action="user.update_field",
        entity_type="Profile",
        entity_id=str(user.id),
        metadata={"field": field_name, "old": old_value, "new": new_value},
    )
    return user
