"""Data models for BP Buddy."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any

NOTE_CATEGORIES = ("general", "symptoms", "medication", "lifestyle", "doctor", "reminder")
RECURRENCE_OPTIONS = ("none", "daily", "weekly", "monthly")


def new_local_id() -> str:
    """Client-side identifier for records the server has not confirmed."""
    return f"local_{uuid.uuid4().hex}"


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse an API timestamp into a naive local datetime.

    The server sends ISO strings, usually UTC with a trailing ``Z``.
    Aware values are converted to local time so calendar dates match
    what the user saw when logging.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


@dataclass
class Reading:
    """Blood pressure reading held by the session cache."""

    systolic: int  # mmHg
    diastolic: int  # mmHg
    timestamp: datetime = field(default_factory=datetime.now)
    pulse: int | None = None  # bpm
    note: str = ""
    tags: set[str] = field(default_factory=set)
    id: str = field(default_factory=new_local_id)
    server_id: str | None = None
    user_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        # Streak dates are local calendar dates; keep every timestamp naive local
        self.timestamp = parse_timestamp(self.timestamp)

    @property
    def is_confirmed(self) -> bool:
        """True once the backend has stored this reading."""
        return self.server_id is not None

    @property
    def calendar_date(self) -> date:
        return self.timestamp.date()

    @property
    def category(self) -> str:
        """Blood pressure category according to WHO/ESC classification."""
        if self.systolic < 120 and self.diastolic < 80:
            return "optimal"
        elif self.systolic < 130 and self.diastolic < 85:
            return "normal"
        elif self.systolic < 140 and self.diastolic < 90:
            return "high_normal"
        elif self.systolic < 160 and self.diastolic < 100:
            return "grade1_hypertension"
        elif self.systolic < 180 and self.diastolic < 110:
            return "grade2_hypertension"
        else:
            return "grade3_hypertension"

    def to_payload(self) -> dict:
        """Body of the ``reading`` field for POST /api/readings."""
        return {
            "systolic": self.systolic,
            "diastolic": self.diastolic,
            "pulse": self.pulse,
            "notes": self.note,
            "tags": sorted(self.tags),
            "timestamp": self.timestamp.isoformat(),
        }

    def confirmed_by(self, data: dict) -> Reading:
        """Copy of this draft carrying the identifiers the server assigned."""
        return replace(
            self,
            id=str(data["_id"]),
            server_id=str(data["_id"]),
            user_id=data.get("userId"),
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )

    @classmethod
    def from_api(cls, data: dict) -> Reading:
        """Build a reading from the backend wire shape."""
        server_id = data.get("_id") or data.get("id")
        return cls(
            id=str(server_id) if server_id else new_local_id(),
            server_id=str(server_id) if server_id else None,
            user_id=data.get("userId"),
            systolic=int(data["systolic"]),
            diastolic=int(data["diastolic"]),
            pulse=int(data["pulse"]) if data.get("pulse") is not None else None,
            note=data.get("notes") or data.get("note") or "",
            tags=set(data.get("tags") or []),
            timestamp=parse_timestamp(data.get("timestamp")) or datetime.now(),
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "server_id": self.server_id,
            "timestamp": self.timestamp.isoformat(),
            "systolic": self.systolic,
            "diastolic": self.diastolic,
            "pulse": self.pulse,
            "category": self.category,
            "note": self.note,
            "tags": sorted(self.tags),
        }

    def __str__(self) -> str:
        """Human-readable representation."""
        pulse = f", Pulse: {self.pulse} bpm" if self.pulse is not None else ""
        return f"BP: {self.systolic}/{self.diastolic} mmHg{pulse}, Category: {self.category}"


@dataclass
class Reminder:
    enabled: bool
    date: datetime
    recurring: str = "none"

    def __post_init__(self) -> None:
        if self.recurring not in RECURRENCE_OPTIONS:
            raise ValueError(f"Unknown recurrence: {self.recurring}")


@dataclass
class Note:
    """Free-form note kept alongside readings (never synced to the backend)."""

    title: str
    content: str
    category: str = "general"
    tags: set[str] = field(default_factory=set)
    is_favorite: bool = False
    reminder: Reminder | None = None
    id: str = field(default_factory=new_local_id)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        if self.category not in NOTE_CATEGORIES:
            raise ValueError(f"Unknown note category: {self.category}")

    def matches(self, query: str) -> bool:
        """Case-insensitive match against title, content and tags."""
        needle = query.lower()
        return (
            needle in self.title.lower()
            or needle in self.content.lower()
            or any(needle in tag.lower() for tag in self.tags)
        )


@dataclass
class StreakData:
    """Consecutive-day logging streak derived from the reading set."""

    current_streak: int = 0
    best_streak: int = 0
    last_reading_date: date | None = None

    def to_dict(self) -> dict:
        return {
            "current_streak": self.current_streak,
            "best_streak": self.best_streak,
            "last_reading_date": (
                self.last_reading_date.isoformat() if self.last_reading_date else None
            ),
        }


@dataclass
class User:
    """Account as returned by the auth endpoints (password never included)."""

    user_id: str
    email: str
    name: str
    profile: dict[str, Any] = field(default_factory=dict)
    record_id: str | None = None
    created_at: str | None = None
    last_login: str | None = None

    @classmethod
    def from_api(cls, data: dict) -> User:
        return cls(
            user_id=data["userId"],
            email=data["email"],
            name=data.get("name", ""),
            profile=dict(data.get("profile") or {}),
            record_id=data.get("_id"),
            created_at=data.get("createdAt"),
            last_login=data.get("lastLogin"),
        )

    def to_api(self) -> dict:
        """Serialize back to the wire shape for local persistence."""
        return {
            "_id": self.record_id,
            "userId": self.user_id,
            "email": self.email,
            "name": self.name,
            "profile": self.profile,
            "createdAt": self.created_at,
            "lastLogin": self.last_login,
        }


@dataclass
class Session:
    """Snapshot of authentication state handed to subscribers."""

    is_authenticated: bool = False
    user: User | None = None
    token: str | None = None
    is_loading: bool = False
    error: str | None = None
