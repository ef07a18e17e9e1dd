# Ensure the repository root is on sys.path so `print_relay` can be imported in tests.

import sys
from pathlib import Path

import pytest


def _ensure_repo_root_on_syspath() -> None:
    # This file lives at: <repo_root>/tests/conftest.py
    # We want to add <repo_root> to sys.path (if not already present).
    here = Path(__file__).resolve()
    repo_root = here.parent.parent
    repo_str = str(repo_root)
    if repo_str not in sys.path:
        sys.path.insert(0, repo_str)


_ensure_repo_root_on_syspath()

SECRET = "s3cret-for-tests"


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = str(tmp_path / "jobs.db")
    # Store calls made outside a request (other threads, helpers) use the same file
    monkeypatch.setenv("PRINTRELAY_DB_PATH", path)
    yield path
    from print_relay.core import db

    db.close_db()


@pytest.fixture
def app(db_path):
    from print_relay import create_app

    app = create_app(
        {
            "TESTING": True,
            "PRINTRELAY_SECRET": SECRET,
            "PRINTRELAY_DB_PATH": db_path,
            "PRINTRELAY_LONG_POLL_MAX_WAIT": 0.3,
            "PRINTRELAY_LONG_POLL_INTERVAL": 0.05,
            "PRINTRELAY_MAX_REQUEST_SECONDS": 1.0,
        }
    )
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth():
    return {"x-print-secret": SECRET}
