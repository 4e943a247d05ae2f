from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from blinker import Namespace
from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from app.portal.audit import record_event
from app.portal.constants import MIN_PASSWORD_LENGTH, ROLE_TEAM_MEMBER
from app.portal.db import db_session
from app.portal.models import Profile
from app.portal.rbac import assign_role, user_roles
from app.portal.utils import is_valid_email

bp = Blueprint("auth", __name__)

# Auth state changes: sender is the Flask app, kwargs are event= and user=.
_signals = Namespace()
auth_state_changed = _signals.signal("auth-state-changed")
SIGNED_UP = "SIGNED_UP"
SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"

_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def _safe_next(nxt: str) -> str | None:
    # Only local paths, to avoid open redirects.
    if nxt.startswith("/") and not nxt.startswith("//"):
        return nxt
    return None


@auth_state_changed.connect
def _audit_auth_state(sender, event: str, user: Profile, **extra) -> None:
    """Every auth state change lands in the audit trail (committed with the caller's session)."""
    s = db_session()
    record_event(
        s,
        actor=user,
        action=f"auth.{event.lower()}",
        entity_type="Profile",
        entity_id=str(user.id),
        metadata={"email": user.email},
    )


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(Profile, int(user_id))
    except SQLAlchemyError as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None
        return

    if not user or not user.is_active:
        session.pop("user_id", None)
        g.current_user = None
        return
    g.current_user = user


@bp.get("/login")
def login_get():
    if getattr(g, "current_user", None):
        return redirect(url_for("routes.dashboard"))
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/login.html", next=nxt)


@bp.post("/login")
def login_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.login_get", next=nxt or None))

    _record_attempt(ip)

    try:
        s = db_session()
        user = s.query(Profile).filter(Profile.email == email).one_or_none()
        if not user or not user.is_active or not check_password_hash(user.password_hash, password):
            record_event(
                s,
                actor=None,
                action="auth.login_failed",
                entity_type="Profile",
                entity_id=email,
                reason="Invalid credentials",
                metadata={"email": email},
            )
            s.commit()
            flash("Invalid email or password.", "danger")
            return redirect(url_for("auth.login_get", next=nxt or None))

        session.clear()
        session["user_id"] = user.id
        _login_attempts[ip].clear()
        auth_state_changed.send(current_app._get_current_object(), event=SIGNED_IN, user=user)
        s.commit()
    except SQLAlchemyError:
        current_app.logger.exception("Login POST failed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise

    flash("Welcome back!", "success")
    return redirect(_safe_next(nxt) or url_for("routes.dashboard"))


@bp.get("/signup")
def signup_get():
    if getattr(g, "current_user", None):
        return redirect(url_for("routes.dashboard"))
    return render_template("auth/signup.html")


def validate_signup(first_name: str, last_name: str, email: str, password: str) -> list[str]:
    errors = []
    if not first_name:
        errors.append("First name is required.")
    if not last_name:
        errors.append("Last name is required.")
    if not email:
        errors.append("Email is required.")
    elif not is_valid_email(email):
        errors.append("Invalid email format.")
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    return errors


@bp.post("/signup")
def signup_post():
    first_name = (request.form.get("first_name") or "").strip()
    last_name = (request.form.get("last_name") or "").strip()
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""

    errors = validate_signup(first_name, last_name, email, password)
    s = db_session()
    if not errors and s.query(Profile.id).filter(Profile.email == email).first() is not None:
        errors.append("An account with this email already exists.")
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("auth.signup_get"))

    try:
        user = Profile(
            email=email,
            password_hash=generate_password_hash(password),
            first_name=first_name,
            last_name=last_name,
            is_active=True,
        )
        s.add(user)
        s.flush()
        assign_role(s, user, ROLE_TEAM_MEMBER, actor=user)
        auth_state_changed.send(current_app._get_current_object(), event=SIGNED_UP, user=user)
        s.commit()
    except SQLAlchemyError as e:
        s.rollback()
        current_app.logger.exception("Signup failed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        flash(f"Error: {getattr(e, 'orig', None) or e}", "danger")
        return redirect(url_for("auth.signup_get"))

    session.clear()
    session["user_id"] = user.id
    flash("Account created! Welcome to the portal.", "success")
    return redirect(url_for("routes.dashboard"))


@bp.route("/logout", methods=["GET", "POST"])
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        auth_state_changed.send(current_app._get_current_object(), event=SIGNED_OUT, user=user)
        s.commit()
    session.pop("user_id", None)
    return redirect(url_for("routes.index"))


@bp.get("/session")
def session_info():
    """Current user + role labels as JSON ({"user": null} when signed out)."""
    user = getattr(g, "current_user", None)
    if not user:
        return {"user": None, "roles": []}
    return {
        "user": {
            "id": user.id,
            "email": user.email,
            "first_name": user.first_name,
            "last_name": user.last_name,
        },
        "roles": user_roles(user),
    }
