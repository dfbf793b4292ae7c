import sys
import os
import tempfile
import pytest

# make sure the repository root is on sys.path for test collection
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Use a dedicated sqlite file; concurrency tests need a real file, not :memory:
test_db_path = os.path.join(tempfile.mkdtemp(prefix="qredirect-tests-"), "test.db")
os.environ["DATABASE_URL"] = f"sqlite:///{test_db_path}"
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.pop("BASE_URL", None)
os.environ.pop("FALLBACK_URL", None)
os.environ.pop("QR_LOGO_PATH", None)

from fastapi.testclient import TestClient

from backend.qredirect.db import Base, get_engine, get_session_local, reset_engine
from backend.qredirect import models  # Ensure models are imported so table metadata is registered
from backend.qredirect import namespaces


@pytest.fixture(scope="session", autouse=True)
def prepare_db():
    reset_engine()
    yield
    Base.metadata.drop_all(bind=get_engine())
    reset_engine()


@pytest.fixture(autouse=True)
def clean_db():
    # Fresh tables for every test
    Base.metadata.drop_all(bind=get_engine())
    Base.metadata.create_all(bind=get_engine())
    yield


@pytest.fixture
def db():
    session = get_session_local()()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    """Create users directly; the password hash is irrelevant for core tests."""
    counter = {"n": 0}

    def _make(email=None, name="Test User"):
        counter["n"] += 1
        email = email or f"user{counter['n']}@example.com"
        return namespaces.register_user(db, name=name, email=email, hashed_password="not-a-real-hash")

    return _make


@pytest.fixture
def client():
    from backend.qredirect.main import app
    with TestClient(app) as c:
        yield c


@pytest.fixture
def register_and_login(client):
    def _register(email="alice@example.com", password="password123", name="Alice"):
        r = client.post("/auth/register", json={"name": name, "email": email, "password": password})
        assert r.status_code == 201, r.text
        r2 = client.post("/auth/login", json={"email": email, "password": password})
        assert r2.status_code == 200, r2.text
        return {"Authorization": f"Bearer {r2.json()['access_token']}"}

    return _register
