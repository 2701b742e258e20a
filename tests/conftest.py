"""
Shared pytest fixtures for the Approval Workflow Service test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_user: factory that inserts a User row (password: user_password)
    - approvers: three approvers A, B, C
    - ticket / reprint_request: fresh subject records created via the API
"""

import itertools

import pytest

from app import create_app
from app.models import db as _db
from app.models.auth import User
from app.utils.crypto import hash_password

TEST_PASSWORD = "s3cret-pass"

_seq = itertools.count(1)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    app.config["API_AUTH_ENABLED"] = "false"
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Insert a user directly; returns the User."""

    def _make(first_name=None, role="user", status="active", password=TEST_PASSWORD):
        n = next(_seq)
        user = User(
            first_name=first_name or f"User{n}",
            last_name="Tester",
            username=f"user{n}",
            email=f"user{n}@example.com",
            password_hash=hash_password(password, rounds=4),
            role=role,
            status=status,
        )
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def user_password():
    """Plain-text password every ``make_user`` account is created with."""
    return TEST_PASSWORD


@pytest.fixture()
def approvers(make_user):
    """Three approvers named A, B and C (ids returned in that order)."""
    return [make_user(first_name=name).id for name in ("Alice", "Bob", "Carol")]


@pytest.fixture()
def ticket(client):
    res = client.post("/api/v1/tickets", json={"title": "Laptop purchase", "priority": "high"})
    assert res.status_code == 201
    return res.get_json()


@pytest.fixture()
def reprint_request(client, ticket):
    res = client.post(
        "/api/v1/reprint-requests",
        json={"ticket_id": ticket["id"], "reason": "Smudged print", "copies": 2},
    )
    assert res.status_code == 201
    return res.get_json()


@pytest.fixture()
def make_workflow(client):
    """Create a workflow with ``nodes`` = [(name, approval_type, user_ids), ...].

    Returns (workflow_json, [node_json, ...]).
    """

    def _make(name, nodes, is_active=True):
        res = client.post("/api/v1/workflows", json={"name": name, "is_active": is_active})
        assert res.status_code == 201
        wf = res.get_json()
        created = []
        for node_name, approval_type, user_ids in nodes:
            res = client.post(
                f"/api/v1/workflows/{wf['id']}/nodes",
                json={"name": node_name, "approval_type": approval_type, "user_ids": user_ids},
            )
            assert res.status_code == 201
            created.append(res.get_json())
        return wf, created

    return _make
