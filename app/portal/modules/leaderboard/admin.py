from flask import Blueprint, current_app, flash, g, redirect, render_template, request, url_for
from sqlalchemy.exc import SQLAlchemyError

from app.portal.constants import SALES_METRIC_FIELDS
from app.portal.db import commit_or_flash, db_session
from app.portal.modules.leaderboard.service import (
    leaderboard,
    metric_history,
    parse_metrics_form,
    upsert_month_metrics,
)
from app.portal.rbac import require_permission

bp = Blueprint("leaderboard", __name__)


@bp.get("/leaderboard")
@require_permission("leaderboard.view")
def leaderboard_get():
    s = db_session()
    return render_template(
        "leaderboard/index.html",
        history=metric_history(s, g.current_user),
        entries=leaderboard(s),
        fields=SALES_METRIC_FIELDS,
    )


@bp.post("/leaderboard")
@require_permission("leaderboard.view")
def leaderboard_post():
    s = db_session()
    values, errors = parse_metrics_form(request.form)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("leaderboard.leaderboard_get"))

    try:
        upsert_month_metrics(s, g.current_user, values)
    except SQLAlchemyError as e:
        s.rollback()
        current_app.logger.exception("Sales metrics save failed (request_id=%s)", getattr(g, "request_id", None))
        flash(f"Error: {getattr(e, 'orig', None) or e}", "danger")
        return redirect(url_for("leaderboard.leaderboard_get"))
    commit_or_flash(s, "Sales metrics saved successfully.")
    return redirect(url_for("leaderboard.leaderboard_get"))
