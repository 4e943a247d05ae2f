#!/usr/bin/env python3
"""
Container entrypoint: migrate and seed, then exec gunicorn on app.wsgi:app.

Environment:
    PORT                listen port (default 8080)
    GUNICORN_WORKERS    worker processes (default 2)
    GUNICORN_TIMEOUT    worker timeout in seconds (default 300, long enough for video uploads)
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _env_int(name: str, default: int, *, low: int = 1, high: int | None = None) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise SystemExit(f"{name}={raw!r} is not an integer.") from None
    if value < low or (high is not None and value > high):
        raise SystemExit(f"{name}={value} is outside {low}..{high or 'inf'}.")
    return value


def gunicorn_argv() -> list[str]:
    port = _env_int("PORT", 8080, high=65535)
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(_env_int("GUNICORN_WORKERS", 2)),
        "--timeout", str(_env_int("GUNICORN_TIMEOUT", 300)),
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    argv = gunicorn_argv()

    from scripts.release import run_release

    try:
        run_release()
    except Exception as e:
        print(f"Portal release failed, not starting web workers: {e}", flush=True)
        sys.exit(1)

    print(f"Starting portal: {' '.join(argv[1:])}", flush=True)
    # gunicorn takes over this PID and receives container signals directly.
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
