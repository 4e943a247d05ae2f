from flask import Blueprint, g, render_template

from app.portal.db import db_session
from app.portal.modules.team.service import team_progress
from app.portal.rbac import require_permission

bp = Blueprint("team", __name__)


@bp.get("/team")
@require_permission("team.view")
def team_index():
    s = db_session()
    return render_template("team/index.html", members=team_progress(s, g.current_user))
