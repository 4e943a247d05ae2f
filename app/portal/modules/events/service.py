from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from app.portal.audit import record_event
from app.portal.modules.events.models import Event
from app.portal.utils import clean

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.portal.models import Profile

SOON_DAYS = 7


def parse_event_datetime(value: str | None) -> datetime | None:
    """
    Parse <input type="datetime-local"> values ("YYYY-MM-DDTHH:MM[:SS]").
    Raises ValueError for malformed input.
    """
    raw = (value or "").strip()
    if not raw:
        return None
    return datetime.fromisoformat(raw)


def validate_event_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("title") or "").strip():
        errors.append("Title is required.")
    try:
        if parse_event_datetime(payload.get("event_date")) is None:
            errors.append("Event date and time are required.")
    except ValueError:
        errors.append("Event date must be a valid date and time.")
    return errors


def days_until(event_date: datetime, now: datetime) -> int:
    """Whole days until the event, rounded up (an event later today is 1 day away)."""
    return math.ceil((event_date - now).total_seconds() / 86400)


def is_past(event_date: datetime, now: datetime) -> bool:
    return event_date < now


def is_soon(event_date: datetime, now: datetime) -> bool:
    return 0 <= days_until(event_date, now) <= SOON_DAYS


@dataclass(frozen=True)
class EventView:
    event: Event
    is_past: bool
    is_soon: bool


def list_upcoming_events(s: "Session", now: datetime | None = None) -> list[EventView]:
    now = now or datetime.utcnow()
    rows = (
        s.query(Event)
        .filter(Event.event_date >= now)
        .order_by(Event.event_date.asc(), Event.id.asc())
        .all()
    )
    return [EventView(event=e, is_past=is_past(e.event_date, now), is_soon=is_soon(e.event_date, now)) for e in rows]


def list_all_events(s: "Session") -> list[Event]:
    """Every event, newest first (admin content overview)."""
    return s.query(Event).order_by(Event.event_date.desc(), Event.id.desc()).all()


def _apply(ev: Event, payload: dict) -> None:
    ev.title = (payload.get("title") or "").strip()
    ev.description = clean(payload.get("description"))
    ev.event_date = parse_event_datetime(payload.get("event_date"))  # type: ignore[assignment]
    ev.registration_url = clean(payload.get("registration_url"))


def create_event(s: "Session", payload: dict, user: "Profile") -> Event:
    ev = Event()
    _apply(ev, payload)
    s.add(ev)
    s.flush()
    record_event(
        s,
        actor=user,
        action="event.create",
        entity_type="Event",
        entity_id=str(ev.id),
        metadata={"title": ev.title, "event_date": ev.event_date},
    )
    return ev


def update_event(s: "Session", ev: Event, payload: dict, user: "Profile") -> Event:
    before = {"title": ev.title, "event_date": ev.event_date}
    _apply(ev, payload)
    record_event(
        s,
        actor=user,
        action="event.update",
        entity_type="Event",
        entity_id=str(ev.id),
        metadata={"before": before, "after": {"title": ev.title, "event_date": ev.event_date}},
    )
    return ev


def delete_event(s: "Session", ev: Event, user: "Profile") -> None:
    record_event(
        s,
        actor=user,
        action="event.delete",
        entity_type="Event",
        entity_id=str(ev.id),
        metadata={"title": ev.title},
    )
    s.delete(ev)
