from app.portal.auth import SIGNED_IN, SIGNED_OUT, SIGNED_UP, auth_state_changed
from app.portal.db import session_scope
from app.portal.models import AuditEvent, Profile


def _actions(app):
    with session_scope(app) as s:
        return [e.action for e in s.query(AuditEvent).order_by(AuditEvent.id.asc()).all()]


def test_login_failure_is_audited(app, client, make_user):
    make_user("member@example.com", "team_member")
    r = client.post("/auth/login", data={"email": "member@example.com", "password": "wrong"})
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]
    assert client.get("/auth/session").json["user"] is None
    assert "auth.login_failed" in _actions(app)


def test_login_sends_signed_in(app, client, make_user, login):
    make_user("member@example.com", "team_member")
    seen = []

    def receiver(sender, event, user, **extra):
        seen.append((event, user.email))

    with auth_state_changed.connected_to(receiver):
        login("member@example.com")
        client.post("/auth/logout")

    assert seen == [(SIGNED_IN, "member@example.com"), (SIGNED_OUT, "member@example.com")]
    actions = _actions(app)
    assert "auth.signed_in" in actions
    assert "auth.signed_out" in actions


def test_login_ignores_offsite_next(client, make_user):
    make_user("member@example.com", "team_member")
    r = client.post(
        "/auth/login",
        data={"email": "member@example.com", "password": "secret-pw", "next": "//evil.example.com/"},
    )
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard")


def test_login_follows_local_next(client, make_user):
    make_user("member@example.com", "team_member")
    r = client.post(
        "/auth/login",
        data={"email": "member@example.com", "password": "secret-pw", "next": "/events"},
    )
    assert r.headers["Location"].endswith("/events")


def test_login_rate_limit(client, make_user):
    make_user("member@example.com", "team_member")
    for _ in range(5):
        client.post("/auth/login", data={"email": "member@example.com", "password": "wrong"})

    r = client.post(
        "/auth/login",
        data={"email": "member@example.com", "password": "secret-pw"},
        follow_redirects=True,
    )
    assert b"Too many login attempts" in r.data
    assert client.get("/auth/session").json["user"] is None


def test_signup_creates_team_member(app, client):
    seen = []

    def receiver(sender, event, user, **extra):
        seen.append(event)

    with auth_state_changed.connected_to(receiver):
        r = client.post(
            "/auth/signup",
            data={"first_name": "Sam", "last_name": "Seller", "email": "Sam@Example.com", "password": "abcdef"},
        )
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard")
    assert seen == [SIGNED_UP]

    info = client.get("/auth/session").json
    assert info["user"]["email"] == "sam@example.com"
    assert info["roles"] == ["team_member"]

    actions = _actions(app)
    assert "user.role_add" in actions
    assert "auth.signed_up" in actions


def test_signup_rejects_duplicate_email(app, client, make_user):
    make_user("taken@example.com", "team_member")
    r = client.post(
        "/auth/signup",
        data={"first_name": "A", "last_name": "B", "email": "taken@example.com", "password": "abcdef"},
        follow_redirects=True,
    )
    assert b"already exists" in r.data
    with session_scope(app) as s:
        assert s.query(Profile).filter(Profile.email == "taken@example.com").count() == 1


def test_signup_validation(app, client):
    r = client.post(
        "/auth/signup",
        data={"first_name": "", "last_name": "B", "email": "not-an-email", "password": "abc"},
        follow_redirects=True,
    )
    assert b"First name is required." in r.data
    assert b"Invalid email format." in r.data
    assert b"Password must be at least 6 characters." in r.data
    with session_scope(app) as s:
        assert s.query(Profile).count() == 0


def test_session_info_signed_out(client):
    assert client.get("/auth/session").json == {"user": None, "roles": []}


def test_logout_clears_session(client, make_user, login):
    make_user("member@example.com", "team_member")
    login("member@example.com")
    assert client.get("/auth/session").json["user"]["email"] == "member@example.com"
    r = client.post("/auth/logout")
    assert r.status_code == 302
    assert client.get("/auth/session").json["user"] is None
