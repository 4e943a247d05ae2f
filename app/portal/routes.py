import mimetypes

from flask import Blueprint, abort, current_app, g, redirect, render_template, send_file, url_for

from app.portal.db import db_session
from app.portal.modules.courses.models import Course
from app.portal.modules.documents.models import Document
from app.portal.modules.events.models import Event
from app.portal.rbac import require_permission
from app.portal.storage import LocalStorage, StorageError, storage_from_config

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    if getattr(g, "current_user", None):
        return redirect(url_for("routes.dashboard"))
    return render_template("public/index.html")


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for load-balancer probes. No DB access.
    """
    return "ok", 200


@bp.get("/dashboard")
@require_permission("dashboard.view")
def dashboard():
    s = db_session()
    stats = {
        "courses": s.query(Course).count(),
        "documents": s.query(Document).count(),
        "events": s.query(Event).count(),
    }
    return render_template("dashboard.html", profile=g.current_user, stats=stats)


@bp.get("/storage/<token>")
def storage_object(token: str):
    """Serve a locally stored object for a signed, unexpired token (lesson video playback)."""
    storage = storage_from_config(current_app.config)
    if not isinstance(storage, LocalStorage):
        abort(404)
    try:
        key = storage.unsign_key(token)
        fobj = storage.open(key)
    except StorageError as e:
        current_app.logger.warning("Signed storage URL rejected: %s", e)
        abort(404)
    mimetype = mimetypes.guess_type(key)[0] or "application/octet-stream"
    return send_file(fobj, mimetype=mimetype, conditional=True, download_name=key.rsplit("/", 1)[-1])
