import pytest

from scripts.release import release_database_url
from scripts.start import gunicorn_argv


def test_gunicorn_argv_defaults(monkeypatch):
    for k in ("PORT", "GUNICORN_WORKERS", "GUNICORN_TIMEOUT"):
        monkeypatch.delenv(k, raising=False)
    argv = gunicorn_argv()
    assert argv[:2] == ["gunicorn", "app.wsgi:app"]
    assert argv[argv.index("--bind") + 1] == "0.0.0.0:8080"
    assert argv[argv.index("--workers") + 1] == "2"
    assert argv[argv.index("--timeout") + 1] == "300"


def test_gunicorn_argv_overrides_and_rejects_bad_port(monkeypatch):
    monkeypatch.setenv("PORT", "5000")
    monkeypatch.setenv("GUNICORN_WORKERS", "4")
    argv = gunicorn_argv()
    assert argv[argv.index("--bind") + 1] == "0.0.0.0:5000"
    assert argv[argv.index("--workers") + 1] == "4"

    monkeypatch.setenv("PORT", "70000")
    with pytest.raises(SystemExit):
        gunicorn_argv()
    monkeypatch.setenv("PORT", "web")
    with pytest.raises(SystemExit):
        gunicorn_argv()


def test_release_database_url_guardrails(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError):
        release_database_url()

    monkeypatch.setenv("DATABASE_URL", "sqlite:///portal.db")
    monkeypatch.setenv("ENV", "production")
    with pytest.raises(RuntimeError):
        release_database_url()

    monkeypatch.setenv("ENV", "development")
    assert release_database_url() == "sqlite:///portal.db"
