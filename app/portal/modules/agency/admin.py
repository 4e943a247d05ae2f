from __future__ import annotations

from functools import wraps

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.portal.constants import ROLE_AGENCY_OWNER, ROLE_TEAM_MANAGER, ROLE_TEAM_MEMBER, ROLES
from app.portal.db import commit_or_flash, db_session
from app.portal.models import Profile
from app.portal.modules.agency.service import (
    INVITE_ADDED,
    INVITE_ALREADY_IN_TEAM,
    AgencyError,
    change_member_role,
    invite_member,
    list_team,
    owner_display_name,
)
from app.portal.rbac import require_permission, user_has_role

bp = Blueprint("agency", __name__)


def _agency_owner_only(fn):
    """Non-owners go back to the dashboard with a notice instead of a 403 page."""

    @wraps(fn)
    def wrapped(*args, **kwargs):
        if not user_has_role(g.current_user, ROLE_AGENCY_OWNER):
            flash("Access Denied: you don't have permission to access this page.", "danger")
            return redirect(url_for("routes.dashboard"))
        return fn(*args, **kwargs)

    return wrapped


@bp.get("/agency")
@require_permission("dashboard.view")
@_agency_owner_only
def agency_index():
    s = db_session()
    owner = g.current_user
    return render_template(
        "agency/index.html",
        owner_name=owner_display_name(owner),
        members=list_team(s, owner),
        team_roles=[ROLE_TEAM_MEMBER, ROLE_TEAM_MANAGER],
        role_names=ROLES,
    )


@bp.post("/agency/invite")
@require_permission("dashboard.view")
@_agency_owner_only
def agency_invite():
    s = db_session()
    email = (request.form.get("email") or "").strip()
    role = (request.form.get("role") or ROLE_TEAM_MEMBER).strip()
    try:
        result = invite_member(s, g.current_user, email, role)
    except AgencyError as e:
        flash(str(e), "danger")
        return redirect(url_for("agency.agency_index"))

    if result.status == INVITE_ALREADY_IN_TEAM:
        flash("User Already in Team: this user is already part of a team.", "danger")
        return redirect(url_for("agency.agency_index"))
    if result.status == INVITE_ADDED:
        commit_or_flash(s, f"{result.email} has been added to your team.")
        return redirect(url_for("agency.agency_index"))

    signup_url = url_for("auth.signup_get", _external=True)
    commit_or_flash(s, f"Invitation ready. Send this link to {result.email}: {signup_url} with role: {result.role}")
    return redirect(url_for("agency.agency_index"))


@bp.post("/agency/members/<int:user_id>/roles")
@require_permission("dashboard.view")
@_agency_owner_only
def agency_member_role(user_id: int):
    s = db_session()
    member = s.get(Profile, user_id)
    if not member:
        abort(404)
    role = (request.form.get("role") or "").strip()
    action = (request.form.get("action") or "").strip()
    try:
        changed = change_member_role(s, g.current_user, member, role, action)
    except AgencyError as e:
        flash(str(e), "danger")
        return redirect(url_for("agency.agency_index"))

    if not changed:
        flash(f"No change: {member.email} {'already has' if action == 'add' else 'does not have'} {role}.", "info")
        return redirect(url_for("agency.agency_index"))
    if action == "add":
        commit_or_flash(s, f"{role} role has been assigned to {member.email}.")
    else:
        commit_or_flash(s, f"{role} role has been removed from {member.email}.")
    return redirect(url_for("agency.agency_index"))
