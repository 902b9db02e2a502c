# conftest.py

import os
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from werkzeug.security import generate_password_hash

# Set testing environment BEFORE importing app so app.py picks TestingConfig
os.environ["FLASK_ENV"] = "testing"

from app import app as flask_app  # noqa: E402
from flask_app.models import Shift, ShiftType, User, UserRole, db  # noqa: E402


@pytest.fixture(scope="function")
def app():
    """Create and configure a test Flask application with a fresh schema"""
    flask_app.config.update(
        {
            "TESTING": True,
            "WTF_CSRF_ENABLED": False,
            "SECRET_KEY": "test-secret-key-for-testing-only",
            "MONITORING_ENABLED": False,
            "ENABLE_FILE_LOGGING": False,
            "ENABLE_CONSOLE_LOGGING": False,
            "LOG_LEVEL": "DEBUG",
            "USER_MERGE_TIMEOUT_SECONDS": 60,
            "USER_MERGE_ISOLATION_LEVEL": "SERIALIZABLE",
            "USER_MERGE_REQUIRE_CONFIRM_EMAIL": True,
        }
    )

    # Re-initialize logging with updated config to pick up LOG_LEVEL=DEBUG
    from flask_app.utils.logging_config import setup_logging

    setup_logging(flask_app)

    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    """Create a test client for the Flask application"""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask application"""
    return app.test_cli_runner()


@pytest.fixture
def make_user(app):
    """Factory creating committed accounts"""
    counter = {"n": 0}

    def _make_user(email=None, role=UserRole.VOLUNTEER, **fields):
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            name=fields.pop("name", f"User {counter['n']}"),
            role=role,
            password_hash=generate_password_hash("userpass123"),
            **fields,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def admin_user(make_user):
    """Committed admin account"""
    return make_user(email="admin@example.com", role=UserRole.ADMIN, name="Admin User")


@pytest.fixture
def target_user(make_user):
    return make_user(email="target@example.com", name="Target Person", first_name="Target", last_name="Person")


@pytest.fixture
def source_user(make_user):
    return make_user(email="source@example.com", name="Source Person", first_name="Source", last_name="Person")


@pytest.fixture
def shift_type(app):
    shift_type = ShiftType(name="Kitchen", description="Kitchen prep")
    db.session.add(shift_type)
    db.session.commit()
    return shift_type


@pytest.fixture
def make_shift(shift_type):
    """Factory creating committed shifts on consecutive days"""
    counter = {"n": 0}

    def _make_shift(location="Downtown"):
        counter["n"] += 1
        start = datetime(2024, 1, 1, 9, 0) + timedelta(days=counter["n"])
        shift = Shift(
            shift_type_id=shift_type.id,
            location=location,
            start=start,
            end=start + timedelta(hours=3),
            capacity=5,
        )
        db.session.add(shift)
        db.session.commit()
        return shift

    return _make_shift


@pytest.fixture
def logged_in_admin(client, admin_user):
    """Test client with the admin account in the session"""
    with client.session_transaction() as sess:
        sess["_user_id"] = str(admin_user.id)
        sess["_fresh"] = True
    return client, admin_user


@pytest.fixture
def logged_in_volunteer(client, make_user):
    """Test client with a non-admin account in the session"""
    volunteer = make_user(email="volunteer@example.com")
    with client.session_transaction() as sess:
        sess["_user_id"] = str(volunteer.id)
        sess["_fresh"] = True
    return client, volunteer


@pytest.fixture
def mock_merge_metrics():
    """Silence Prometheus side effects of merges"""
    with patch("flask_app.user_merge.service.metrics") as mock_metrics:
        yield mock_metrics


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers and ensure testing environment"""
    os.environ["FLASK_ENV"] = "testing"

    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers"""
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.slow)
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
