"""
Shared pytest fixtures for the Cryptofolio test suite.

Every fixture points at one throwaway SQLite file created per test run;
the configured database is never opened.
"""

import os
import pytest
import tempfile
import bcrypt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from cryptofolio.database import Base, get_db
from cryptofolio.main import app

# registers every table on Base.metadata
from cryptofolio.models import User, Wallet, Transaction, PriceCache  # noqa: F401

LOGIN_CREDS = {"username": "admin", "password": "password"}


def _add_admin(engine):
    """Insert the account auth_client logs in with."""
    db = sessionmaker(bind=engine)()
    try:
        db.add(User(
            username=LOGIN_CREDS["username"],
            password_hash=bcrypt.hashpw(b"password", bcrypt.gensalt()).decode("utf-8"),
        ))
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@pytest.fixture(scope="session")
def test_engine():
    """Engine bound to a temp .db file with all tables created."""
    tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    tmp.close()
    engine = create_engine(
        f"sqlite:///{tmp.name}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    _add_admin(engine)
    yield engine
    engine.dispose()
    os.unlink(tmp.name)


@pytest.fixture(scope="session")
def session_factory(test_engine):
    return sessionmaker(bind=test_engine)


@pytest.fixture(scope="session")
def auth_client(session_factory):
    """TestClient logged in as admin, with get_db routed to the temp database."""

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)
    r = client.post("/api/login", json=LOGIN_CREDS)
    assert r.status_code == 200, r.text
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def anon_client(auth_client):
    """A client with its own (empty) cookie jar, sharing the test database."""
    return TestClient(app)


@pytest.fixture
def test_db(session_factory):
    """Plain session on the temp database, for seeding and direct queries."""
    db = session_factory()
    yield db
    db.close()
