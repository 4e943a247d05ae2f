"""
Monthly sales metrics and the rolling leaderboard.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING

from app.portal.audit import record_event
from app.portal.constants import (
    LEADERBOARD_SIZE,
    LEADERBOARD_WINDOW_MONTHS,
    MAX_METRIC_VALUE,
    METRIC_HISTORY_MONTHS,
    SALES_COUNT_FIELDS,
    SALES_METRIC_FIELDS,
)
from app.portal.modules.leaderboard.models import SalesMetric
from app.portal.utils import parse_count

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.portal.models import Profile


def month_start(d: date) -> date:
    return d.replace(day=1)


def months_ago(d: date, months: int) -> date:
    """Same day `months` calendar months earlier, clamped to the end of a shorter month."""
    total = d.year * 12 + (d.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def parse_metrics_form(form) -> tuple[dict[str, int], list[str]]:
    """Blank or non-numeric counters count as 0; negative or oversized counters are rejected."""
    values = {name: parse_count(form.get(name)) for name in SALES_METRIC_FIELDS}
    errors = []
    if any(v < 0 for v in values.values()):
        errors.append("Please enter valid positive numbers.")
    if any(v > MAX_METRIC_VALUE for v in values.values()):
        errors.append(f"Values must be at most {MAX_METRIC_VALUE:,}.")
    return values, errors


def total_sales(values: dict[str, int]) -> int:
    return sum(int(values.get(name) or 0) for name in SALES_COUNT_FIELDS)


def upsert_month_metrics(
    s: "Session",
    user: "Profile",
    values: dict[str, int],
    *,
    today: date | None = None,
) -> SalesMetric:
    """Insert or overwrite the user's row for the current month."""
    month = month_start(today or date.today())
    row = (
        s.query(SalesMetric)
        .filter(SalesMetric.user_id == user.id, SalesMetric.metric_month == month)
        .one_or_none()
    )
    created = row is None
    if row is None:
        row = SalesMetric(user_id=user.id, metric_month=month)
        s.add(row)
    for name in SALES_METRIC_FIELDS:
        setattr(row, name, int(values.get(name) or 0))
    row.total_sales = total_sales(values)
    s.flush()
    record_event(
        s,
        actor=user,
        action="sales_metric.create" if created else "sales_metric.update",
        entity_type="SalesMetric",
        entity_id=str(row.id),
        metadata={"metric_month": month, **{name: getattr(row, name) for name in SALES_METRIC_FIELDS}},
    )
    return row


def metric_history(s: "Session", user: "Profile") -> list[SalesMetric]:
    return (
        s.query(SalesMetric)
        .filter(SalesMetric.user_id == user.id)
        .order_by(SalesMetric.metric_month.desc())
        .limit(METRIC_HISTORY_MONTHS)
        .all()
    )


@dataclass
class LeaderboardEntry:
    user_id: int
    name: str
    total_sales: int = 0
    rn_auto: int = 0
    fire: int = 0
    life: int = 0
    health: int = 0
    life_premium: int = 0
    health_premium: int = 0


def aggregate_leaderboard(rows: list[SalesMetric], *, limit: int = LEADERBOARD_SIZE) -> list[LeaderboardEntry]:
    """Sum every counter per user, sort by total descending, keep the top `limit`."""
    by_user: dict[int, LeaderboardEntry] = {}
    for r in rows:
        entry = by_user.get(r.user_id)
        if entry is None:
            profile = r.user
            name = f"{profile.first_name or ''} {profile.last_name or ''}".strip() if profile else ""
            entry = LeaderboardEntry(user_id=r.user_id, name=name)
            by_user[r.user_id] = entry
        entry.total_sales += int(r.total_sales or 0)
        for n in SALES_METRIC_FIELDS:
            setattr(entry, n, getattr(entry, n) + int(getattr(r, n) or 0))
    ranked = sorted(by_user.values(), key=lambda e: e.total_sales, reverse=True)
    return ranked[:limit]


def leaderboard(s: "Session", *, today: date | None = None) -> list[LeaderboardEntry]:
    cutoff = months_ago(today or date.today(), LEADERBOARD_WINDOW_MONTHS)
    rows = (
        s.query(SalesMetric)
        .filter(SalesMetric.metric_month >= cutoff)
        .order_by(SalesMetric.total_sales.desc(), SalesMetric.id.asc())
        .all()
    )
    return aggregate_leaderboard(rows)
