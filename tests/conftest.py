"""Shared pytest fixtures for bp-buddy tests."""

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from src.api_client import BPBuddyAPI
from src.errors import NetworkError
from src.models import Reading
from src.notifier import NotificationBus
from src.reading_cache import ReadingCache
from src.session import AppContext
from src.session_storage import SessionStorage

SERVER_USER = {
    "_id": "abc123",
    "userId": "user_1",
    "email": "jane@example.com",
    "name": "Jane",
    "profile": {"age": 54},
    "createdAt": "2024-01-01T08:00:00Z",
    "lastLogin": "2024-01-10T08:00:00Z",
}


def server_reading(
    reading_id: str, timestamp: str, systolic: int = 120, diastolic: int = 80
) -> dict:
    """Reading in the backend wire shape."""
    return {
        "_id": reading_id,
        "userId": "user_1",
        "systolic": systolic,
        "diastolic": diastolic,
        "pulse": 70,
        "notes": "",
        "tags": [],
        "timestamp": timestamp,
        "createdAt": timestamp,
        "updatedAt": timestamp,
    }


@pytest.fixture
def sample_reading() -> Reading:
    """Create a sample blood pressure reading for testing."""
    return Reading(
        timestamp=datetime(2024, 1, 15, 10, 30, 0),
        systolic=120,
        diastolic=80,
        pulse=72,
        note="morning",
        tags={"home"},
    )


@pytest.fixture
def high_bp_reading() -> Reading:
    """Create a high blood pressure reading."""
    return Reading(
        timestamp=datetime(2024, 1, 15, 12, 0, 0),
        systolic=160,
        diastolic=100,
        pulse=85,
    )


@pytest.fixture
def mock_api() -> MagicMock:
    """API client double whose create_reading echoes a server record."""
    api = MagicMock(spec=BPBuddyAPI)
    api.token = None
    api.get_readings.return_value = []

    counter = {"n": 0}

    def create_reading(user_id, payload):
        counter["n"] += 1
        return {
            "_id": f"srv_{counter['n']}",
            "userId": user_id,
            **payload,
            "createdAt": "2024-01-15T10:30:00Z",
            "updatedAt": "2024-01-15T10:30:00Z",
        }

    api.create_reading.side_effect = create_reading
    api.update_reading.return_value = {"updatedAt": "2024-01-20T08:00:00"}
    api.login.return_value = {"user": dict(SERVER_USER), "token": "tok-123"}
    api.register.return_value = {"user": dict(SERVER_USER), "token": "tok-123"}
    return api


@pytest.fixture
def failing_api(mock_api) -> MagicMock:
    """API client double that cannot reach the server."""
    mock_api.create_reading.side_effect = NetworkError("API call failed: connection refused")
    return mock_api


@pytest.fixture
def bus() -> NotificationBus:
    return NotificationBus()


@pytest.fixture
def cache(mock_api, bus) -> ReadingCache:
    return ReadingCache(mock_api, bus)


@pytest.fixture
def db_path(tmp_path) -> str:
    """Create a temporary database path for testing."""
    return str(tmp_path / "test_bp_buddy.db")


@pytest.fixture
def storage(db_path) -> SessionStorage:
    return SessionStorage(db_path)


@pytest.fixture
def context(mock_api, storage) -> AppContext:
    return AppContext(mock_api, storage)
