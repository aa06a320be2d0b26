# Shared fixtures: a throwaway sqlite file, audit log and app per test.

import pytest
from fastapi.testclient import TestClient

import db
from audit_log import AuditLog
from journal_api import create_app
from tokens import TokenStore

TOKEN = "secret-token-123"


@pytest.fixture
def conn(tmp_path):
    path = tmp_path / "app.db"
    db.init(path)
    connection = db.connect(path)
    yield connection
    connection.close()


@pytest.fixture
def audit(tmp_path):
    log = AuditLog.open(tmp_path / "logs" / "app.log")
    yield log
    log.close()


@pytest.fixture
def make_client(conn, audit, tmp_path):
    def _make(tokens=(), **kwargs):
        app = create_app(conn, TokenStore(tokens), audit, static_dir=tmp_path / "static")
        return TestClient(app, **kwargs)

    return _make


@pytest.fixture
def client(make_client):
    """Client against an app with auth disabled."""
    return make_client()


@pytest.fixture
def auth_client(make_client):
    return make_client(tokens=[TOKEN])
