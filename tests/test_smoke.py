def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_ok(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_public_index(client):
    r = client.get("/")
    assert r.status_code == 200
    assert b"Sign in" in r.data


def test_login_and_admin_access(client, make_user, login):
    make_user("admin@example.com", "administrator")

    # Anonymous goes to the login page
    r = client.get("/admin/")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]

    login("admin@example.com")

    r = client.get("/admin/")
    assert r.status_code == 200
    r = client.get("/dashboard")
    assert r.status_code == 200
    assert b"Admin" in r.data


def test_member_cannot_open_admin(client, make_user, login):
    make_user("member@example.com", "team_member")
    login("member@example.com")

    r = client.get("/admin/")
    assert r.status_code == 403

    r = client.get("/dashboard")
    assert r.status_code == 200
    assert b'href="/admin/"' not in r.data


def test_unknown_page_is_404(client):
    r = client.get("/no-such-page")
    assert r.status_code == 404
