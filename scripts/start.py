#!/usr/bin/env python3
"""
Container entry point: release, then hand the process over to gunicorn.

Reads PORT, WEB_CONCURRENCY and GUNICORN_TIMEOUT from the environment.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.meetup.config import Settings, load_settings  # noqa: E402

DEFAULT_PORT = 8080


def parse_port(raw: str | None) -> int:
    if not (raw or "").strip():
        return DEFAULT_PORT
    port = int(raw.strip())
    if not 1 <= port <= 65535:
        raise ValueError(f"PORT out of range: {port}")
    return port


def gunicorn_argv(settings: Settings, port: int) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        f"--bind=0.0.0.0:{port}",
        f"--workers={settings.web_workers}",
        f"--timeout={settings.web_timeout}",
        "--access-logfile=-",
        "--error-logfile=-",
    ]


def main() -> None:
    try:
        port = parse_port(os.environ.get("PORT"))
    except ValueError as e:
        sys.exit(f"[start] invalid PORT: {e}")

    from scripts.release import run_release

    run_release()

    argv = gunicorn_argv(load_settings(), port)
    print(f"[start] {' '.join(argv)}", flush=True)
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
