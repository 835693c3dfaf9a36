"""Shared test fixtures for the product catalog API test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, inline deferred work)
- db_session: clean database per test (tables created/dropped)
- upload_dir: per-test UPLOAD_FOLDER
- client: Flask test client
- seed_data: a user and a product line
- principal / auth_headers: the seeded user as caller
- make_upload: write a file into the upload folder, return its reference
"""

import pytest
from werkzeug.security import generate_password_hash

from productdb import create_app
from productdb.extensions import db as _db
from productdb.models.product_line import ProductLine
from productdb.models.user import User
from productdb.services import auth_service


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture(autouse=True)
def upload_dir(app, tmp_path):
    """Point UPLOAD_FOLDER at a fresh temp dir for every test."""
    folder = tmp_path / "uploads"
    folder.mkdir()
    original = app.config["UPLOAD_FOLDER"]
    app.config["UPLOAD_FOLDER"] = str(folder)
    yield folder
    app.config["UPLOAD_FOLDER"] = original


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def make_upload(upload_dir):
    """Write a file into the upload folder and return its reference."""

    def _make(name, content=b"file-content"):
        (upload_dir / name).write_bytes(content)
        return f"uploads/{name}"

    return _make


@pytest.fixture
def seed_data(app, db_session):
    """Seed a user and one product line.

    Returns plain IDs so tests can use them across app contexts.
    """
    user = User(
        email="tester@example.com",
        password_hash=generate_password_hash("testpass123"),
        display_name="Test User",
        user_role="user",
    )
    _db.session.add(user)
    _db.session.flush()

    line = ProductLine(
        name="Drives",
        type_of_products="Electric drives",
        created_by=user.id,
        updated_by=user.id,
    )
    _db.session.add(line)
    _db.session.commit()

    return {
        "user": user,
        "user_id": user.id,
        "product_line_id": line.id,
        "product_line_name": line.name,
    }


@pytest.fixture
def principal(seed_data):
    return auth_service.Principal(
        id=seed_data["user_id"],
        display_name="Test User",
        email="tester@example.com",
    )


@pytest.fixture
def auth_headers(app, seed_data):
    token = auth_service.generate_token(seed_data["user"])
    return {"Authorization": f"Bearer {token}"}
