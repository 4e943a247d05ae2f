from datetime import date, datetime, time, timedelta

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.portal.constants import ROLES
from app.portal.db import commit_or_flash, db_session
from app.portal.models import AuditEvent, Profile
from app.portal.modules.courses.models import Course
from app.portal.modules.documents.service import list_documents
from app.portal.modules.events.service import list_all_events
from app.portal.modules.members.service import (
    SORT_FIELDS,
    MemberError,
    agency_owner_options,
    build_directory,
    create_agency_owner,
    create_member,
    facets,
    filter_users,
    search_agency_owners,
    sort_users,
    update_profile_field,
    validate_member_payload,
)
from app.portal.rbac import assign_role, require_permission, revoke_role

bp = Blueprint("admin", __name__)


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def _get_user_or_404(user_id: int) -> Profile:
    user = db_session().get(Profile, user_id)
    if not user:
        abort(404)
    return user


@bp.get("/")
@require_permission("admin.view")
def index():
    """
    User directory (filter/sort over the full list) plus the content overview.
    """
    s = db_session()
    rows = build_directory(s)
    cities, states = facets(rows)

    role = (request.args.get("role") or "all").strip()
    agency_owner_id = request.args.get("agency", type=int)
    city = (request.args.get("city") or "all").strip()
    state = (request.args.get("state") or "all").strip()
    q = (request.args.get("q") or "").strip()
    sort = (request.args.get("sort") or "").strip()
    direction = "desc" if request.args.get("dir") == "desc" else "asc"
    owner_q = (request.args.get("owner_q") or "").strip()

    filtered = filter_users(rows, role=role, agency_owner_id=agency_owner_id, city=city, state=state, q=q)
    filtered = sort_users(filtered, sort, direction)
    owners = agency_owner_options(s)

    return render_template(
        "admin/index.html",
        rows=filtered,
        total=len(rows),
        cities=cities,
        states=states,
        owners=search_agency_owners(owners, owner_q),
        all_owners=owners,
        role_names=ROLES,
        sort_fields=SORT_FIELDS,
        filters={
            "role": role,
            "agency": agency_owner_id,
            "city": city,
            "state": state,
            "q": q,
            "sort": sort,
            "dir": direction,
            "owner_q": owner_q,
        },
        courses=s.query(Course).order_by(Course.created_at.desc(), Course.id.desc()).all(),
        events=list_all_events(s),
        documents=list_documents(s),
    )


@bp.get("/users/new")
@require_permission("admin.users")
def users_new_get():
    s = db_session()
    return render_template("admin/user_new.html", owners=agency_owner_options(s), role_names=ROLES)


@bp.post("/users/new")
@require_permission("admin.users")
def users_new_post():
    s = db_session()
    payload = {
        "first_name": request.form.get("first_name"),
        "last_name": request.form.get("last_name"),
        "email": request.form.get("email"),
        "password": request.form.get("password") or "",
        "phone_number": request.form.get("phone_number"),
        "role": (request.form.get("role") or "").strip(),
        "agency_owner_ids": [v for v in request.form.getlist("agency_owner_ids") if v.strip()],
        "agency_name": request.form.get("agency_name"),
        "agency_city": request.form.get("agency_city"),
        "agency_state": request.form.get("agency_state"),
    }
    errors = validate_member_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("admin.users_new_get"))

    try:
        user = create_member(s, payload, g.current_user)
    except MemberError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("admin.users_new_get"))

    if not commit_or_flash(s, f"{user.email} has been created successfully."):
        return redirect(url_for("admin.users_new_get"))
    return redirect(url_for("admin.index"))


@bp.post("/agency-owners/new")
@require_permission("admin.users")
def agency_owner_new():
    s = db_session()
    name = (request.form.get("name") or "").strip()
    email = (request.form.get("email") or "").strip()
    try:
        create_agency_owner(s, name, email, g.current_user)
    except MemberError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("admin.index"))
    commit_or_flash(s, f"{name} has been created as an agency owner.")
    return redirect(url_for("admin.index"))


@bp.post("/users/<int:user_id>/roles")
@require_permission("admin.users")
def user_role_toggle(user_id: int):
    s = db_session()
    user = _get_user_or_404(user_id)
    role = (request.form.get("role") or "").strip()
    action = (request.form.get("action") or "").strip()
    if role not in ROLES or action not in ("add", "remove"):
        flash("Invalid role change.", "danger")
        return redirect(url_for("admin.index"))

    if action == "add":
        changed = assign_role(s, user, role, actor=g.current_user)
        message = f"{ROLES[role]} role has been assigned to {user.email}."
    else:
        changed = revoke_role(s, user, role, actor=g.current_user)
        message = f"{ROLES[role]} role has been removed from {user.email}."

    if not changed:
        flash(f"No change: {user.email} {'already has' if action == 'add' else 'does not have'} {ROLES[role]}.", "info")
        return redirect(url_for("admin.index"))
    commit_or_flash(s, message)
    return redirect(url_for("admin.index"))


@bp.post("/users/<int:user_id>/field")
@require_permission("admin.users")
def user_field_update(user_id: int):
    """Inline cell edit. JSON callers get JSON back; form posts redirect to the directory."""
    s = db_session()
    user = _get_user_or_404(user_id)
    data = request.get_json(silent=True) if request.is_json else request.form
    data = data or {}
    field_name = (data.get("field") or "").strip()

    try:
        update_profile_field(s, user, field_name, data.get("value"), g.current_user)
    except MemberError as e:
        if request.is_json:
            return {"ok": False, "error": str(e)}, 400
        flash(str(e), "danger")
        return redirect(url_for("admin.index"))

    ok = commit_or_flash(s, None if request.is_json else "User information has been updated.")
    if request.is_json:
        if not ok:
            return {"ok": False, "error": "Update failed."}, 500
        return {"ok": True, "field": field_name, "value": getattr(user, field_name)}
    return redirect(url_for("admin.index"))


@bp.get("/audit")
@require_permission("admin.view")
def audit_list():
    """
    Last 200 audit events with simple filters:
    - action (contains)
    - actor_email (contains)
    - date range (YYYY-MM-DD)
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor_email = (request.args.get("actor_email") or "").strip()
    date_from = _parse_date(request.args.get("date_from") or "")
    date_to = _parse_date(request.args.get("date_to") or "")

    if (request.args.get("date_from") or "").strip() and not date_from:
        flash("date_from must be YYYY-MM-DD", "danger")
    if (request.args.get("date_to") or "").strip() and not date_to:
        flash("date_to must be YYYY-MM-DD", "danger")

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor_email:
        q = q.filter(AuditEvent.actor_user_email.like(f"%{actor_email.lower()}%"))
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        # inclusive end-date
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(200).all()
    return render_template(
        "admin/audit.html",
        events=events,
        action=action,
        actor_email=actor_email,
        date_from=(request.args.get("date_from") or "").strip(),
        date_to=(request.args.get("date_to") or "").strip(),
    )
