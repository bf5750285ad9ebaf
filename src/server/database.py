"""In-memory database for the BP Buddy backend.

Users are keyed by ``userId``; readings are kept per user. Records are
plain dicts in the JSON wire shape so route handlers can return them as-is.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _sort_key(timestamp: str) -> datetime:
    """Comparable datetime for an ISO timestamp (aware values normalized to UTC)."""
    parsed = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def normalize_timestamp(value: str | int | float) -> str:
    """Stored ISO form of a client timestamp.

    Accepts ISO strings (naive values are kept as sent, aware ones are
    converted to UTC with a ``Z`` suffix) and epoch milliseconds.

    Raises:
        ValueError: If the value cannot be read as a point in time
    """
    if isinstance(value, bool):
        raise ValueError(f"Unsupported timestamp: {value!r}")
    if isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError) as e:
            raise ValueError(f"Timestamp out of range: {value!r}") from e
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"Unsupported timestamp: {value!r}")

    if parsed.tzinfo is None:
        return parsed.isoformat()
    return parsed.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class InMemoryDatabase:
    """Users and readings held in process memory."""

    def __init__(self) -> None:
        self.users: dict[str, dict] = {}
        self.readings: dict[str, list[dict]] = {}

    # ---- users ----

    def get_user_by_email(self, email: str) -> dict | None:
        email = email.lower()
        return next((u for u in self.users.values() if u["email"] == email), None)

    def get_user(self, user_id: str) -> dict | None:
        return self.users.get(user_id)

    def create_user(
        self,
        email: str,
        name: str,
        password_hash: str,
        profile: dict | None = None,
    ) -> dict:
        """Store a new user; the caller checks email uniqueness first."""
        user_id = f"user_{uuid.uuid4().hex[:12]}"
        now = _now()
        user = {
            "_id": uuid.uuid4().hex,
            "userId": user_id,
            "email": email.lower(),
            "name": name,
            "password": password_hash,
            "profile": dict(profile or {}),
            "createdAt": now,
            "updatedAt": now,
            "lastLogin": now,
        }
        self.users[user_id] = user
        logger.info(f"Created user {user_id} ({user['email']})")
        return user

    def touch_last_login(self, user_id: str) -> dict | None:
        user = self.users.get(user_id)
        if user is not None:
            user["lastLogin"] = _now()
        return user

    def update_profile(self, user_id: str, profile: dict) -> dict | None:
        """Merge ``profile`` into the stored profile."""
        user = self.users.get(user_id)
        if user is None:
            return None
        user["profile"] = {**user.get("profile", {}), **profile}
        user["updatedAt"] = _now()
        return user

    # ---- readings ----

    def create_reading(self, user_id: str, reading: dict) -> dict:
        now = _now()
        document = {
            "_id": uuid.uuid4().hex,
            "userId": user_id,
            "systolic": reading["systolic"],
            "diastolic": reading["diastolic"],
            "pulse": reading.get("pulse"),
            "notes": reading.get("notes") or "",
            "tags": list(reading.get("tags") or []),
            "timestamp": reading.get("timestamp") or now,
            "createdAt": now,
            "updatedAt": now,
        }
        self.readings.setdefault(user_id, []).append(document)
        return document

    def get_readings(
        self,
        user_id: str,
        start_date: str | None = None,
        end_date: str | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        """Readings for a user, newest first, optionally bounded and limited."""
        readings = list(self.readings.get(user_id, []))

        if start_date:
            start = _sort_key(start_date)
            readings = [r for r in readings if _sort_key(r["timestamp"]) >= start]
        if end_date:
            end = _sort_key(end_date)
            readings = [r for r in readings if _sort_key(r["timestamp"]) <= end]

        readings.sort(key=lambda r: _sort_key(r["timestamp"]), reverse=True)

        if limit:
            readings = readings[:limit]
        return readings

    def _find_reading(self, reading_id: str) -> tuple[list[dict], dict] | None:
        for readings in self.readings.values():
            for document in readings:
                if document["_id"] == reading_id:
                    return readings, document
        return None

    def update_reading(self, reading_id: str, updates: dict) -> dict | None:
        found = self._find_reading(reading_id)
        if found is None:
            return None
        _, document = found
        document.update(updates)
        document["updatedAt"] = _now()
        return document

    def delete_reading(self, reading_id: str) -> bool:
        found = self._find_reading(reading_id)
        if found is None:
            return False
        readings, document = found
        readings.remove(document)
        return True
