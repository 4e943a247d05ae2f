import pytest
from werkzeug.security import generate_password_hash

from app.portal import auth as portal_auth
from app.portal import create_app
from app.portal.db import session_scope
from app.portal.models import Base, Profile, TeamAgencyOwner
from app.portal.rbac import sync_roles_and_permissions

PASSWORD = "secret-pw"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    monkeypatch.setenv("CSRF_ENABLED", "0")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        sync_roles_and_permissions(s)

    portal_auth._login_attempts.clear()
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(app):
    """make_user(email, *role_keys, owners=[owner_id, ...], **profile_fields) -> user id"""

    def _make(email, *role_keys, owners=(), **fields):
        with session_scope(app) as s:
            roles = sync_roles_and_permissions(s)
            u = Profile(email=email, password_hash=generate_password_hash(PASSWORD), is_active=True, **fields)
            for key in role_keys:
                u.roles.append(roles[key])
            s.add(u)
            s.flush()
            for owner_id in owners:
                s.add(TeamAgencyOwner(user_id=u.id, agency_owner_id=owner_id))
            return u.id

    return _make


@pytest.fixture()
def login(client):
    def _login(email, password=PASSWORD):
        r = client.post("/auth/login", data={"email": email, "password": password}, follow_redirects=False)
        assert r.status_code == 302
        return r

    return _login


@pytest.fixture()
def admin(make_user, login):
    user_id = make_user("admin@example.com", "administrator", first_name="Ada", last_name="Admin")
    login("admin@example.com")
    return user_id
