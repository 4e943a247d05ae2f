from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.portal.db import commit_or_flash, db_session
from app.portal.modules.events.models import Event
from app.portal.modules.events.service import (
    create_event,
    delete_event,
    list_upcoming_events,
    update_event,
    validate_event_payload,
)
from app.portal.rbac import require_permission, user_has_permission

bp = Blueprint("events", __name__)


def _payload() -> dict:
    return {
        "title": request.form.get("title"),
        "description": request.form.get("description"),
        "event_date": request.form.get("event_date"),
        "registration_url": request.form.get("registration_url"),
    }


def _get_event_or_404(event_id: int) -> Event:
    ev = db_session().get(Event, event_id)
    if not ev:
        abort(404)
    return ev


@bp.get("/events")
@require_permission("events.view")
def events_list():
    s = db_session()
    return render_template(
        "events/list.html",
        events=list_upcoming_events(s),
        can_edit=user_has_permission(g.current_user, "events.edit"),
    )


@bp.get("/events/new")
@require_permission("events.edit")
def event_new_get():
    return render_template("events/form.html", event=None)


@bp.post("/events/new")
@require_permission("events.edit")
def event_new_post():
    s = db_session()
    payload = _payload()
    errors = validate_event_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("events.event_new_get"))

    create_event(s, payload, g.current_user)
    commit_or_flash(s, "Event created successfully.")
    return redirect(url_for("events.events_list"))


@bp.get("/events/<int:event_id>/edit")
@require_permission("events.edit")
def event_edit_get(event_id: int):
    return render_template("events/form.html", event=_get_event_or_404(event_id))


@bp.post("/events/<int:event_id>/edit")
@require_permission("events.edit")
def event_edit_post(event_id: int):
    s = db_session()
    ev = _get_event_or_404(event_id)
    payload = _payload()
    errors = validate_event_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("events.event_edit_get", event_id=ev.id))

    update_event(s, ev, payload, g.current_user)
    commit_or_flash(s, "Event updated successfully.")
    return redirect(url_for("events.events_list"))


@bp.post("/events/<int:event_id>/delete")
@require_permission("events.edit")
def event_delete(event_id: int):
    s = db_session()
    ev = _get_event_or_404(event_id)
    delete_event(s, ev, g.current_user)
    commit_or_flash(s, "Event deleted successfully.")
    return redirect(url_for("events.events_list"))
