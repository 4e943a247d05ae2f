import pytest

from app.portal.config import load_config


@pytest.fixture()
def csrf_client(app):
    app.config["CSRF_ENABLED"] = True
    return app.test_client()


def test_post_without_token_is_rejected(csrf_client, make_user):
    make_user("rep@example.com", "team_member")
    # sign-in is exempt
    r = csrf_client.post("/auth/login", data={"email": "rep@example.com", "password": "secret-pw"})
    assert r.status_code == 302

    r = csrf_client.post("/leaderboard", data={"rn_auto": "1"})
    assert r.status_code == 400

    r = csrf_client.post("/admin/courses/reorder", json={"active_id": 1, "over_id": 2})
    assert r.status_code == 400
    assert r.json["ok"] is False


def test_post_with_token_is_accepted(csrf_client, make_user):
    make_user("rep@example.com", "team_member")
    csrf_client.post("/auth/login", data={"email": "rep@example.com", "password": "secret-pw"})
    # sign-in resets the session; the next page issues a fresh token
    csrf_client.get("/dashboard")
    with csrf_client.session_transaction() as sess:
        token = sess["csrf_token"]

    r = csrf_client.post("/leaderboard", data={"rn_auto": "1", "csrf_token": token})
    assert r.status_code == 302

    r = csrf_client.post("/leaderboard", data={"rn_auto": "1"}, headers={"X-CSRF-Token": token})
    assert r.status_code == 302


def test_load_config_defaults(monkeypatch):
    for k in ("SECRET_KEY", "ENV", "DATABASE_URL", "CSRF_ENABLED", "MAX_VIDEO_UPLOAD_BYTES", "SIGNED_URL_TTL"):
        monkeypatch.delenv(k, raising=False)
    cfg = load_config()
    assert cfg["DATABASE_URL"] == "sqlite:///portal.db"
    assert cfg["CSRF_ENABLED"] is True
    assert cfg["SIGNED_URL_TTL"] == 3600
    assert cfg["MAX_VIDEO_UPLOAD_BYTES"] == 500 * 1024 * 1024
    assert cfg["SESSION_COOKIE_SECURE"] is False


def test_load_config_overrides(monkeypatch):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("CSRF_ENABLED", "false")
    monkeypatch.setenv("SIGNED_URL_TTL", "not-a-number")
    monkeypatch.setenv("MAX_VIDEO_UPLOAD_BYTES", "1048576")
    cfg = load_config()
    assert cfg["CSRF_ENABLED"] is False
    assert cfg["SIGNED_URL_TTL"] == 3600
    assert cfg["MAX_CONTENT_LENGTH"] == 1048576 + 10 * 1024 * 1024
    assert cfg["SESSION_COOKIE_SECURE"] is True


def test_production_requires_postgres(monkeypatch, tmp_path):
    from app.portal import create_app

    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "a-strong-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'x.db'}")
    with pytest.raises(RuntimeError):
        create_app()
