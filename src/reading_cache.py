"""In-memory reading and note cache for the current session.

The cache is the single source of truth the user-facing layer renders
from. Readings are saved to the backend first; when the backend cannot
be reached the draft is kept locally instead (a degraded insert). Such
local-only readings are never reconciled with the server and are lost
when the process exits. Notes are purely local.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime

from src.api_client import BPBuddyAPI
from src.errors import BPBuddyError, NotFoundError
from src.models import Note, Reading, StreakData, parse_timestamp
from src.notifier import NotificationBus
from src.streak import advance, apply_freshness, compute_streak

logger = logging.getLogger(__name__)

ANONYMOUS_USER = "anonymous"

_NOTE_IMMUTABLE_FIELDS = {"id", "created_at", "updated_at"}
_READING_UPDATE_FIELDS = {"systolic", "diastolic", "pulse", "note", "tags"}


class ReadingCache:
    """Readings (newest first), notes and derived streak for one user."""

    def __init__(self, api: BPBuddyAPI, bus: NotificationBus):
        """Initialize the cache.

        Args:
            api: Remote accessor used to load and save readings
            bus: Bus notified after every mutation
        """
        self._api = api
        self._bus = bus
        self._readings: list[Reading] = []
        self._notes: list[Note] = []
        self._streak = StreakData()
        self.user_id: str = ANONYMOUS_USER

    # ---- readings ----

    def load_for_user(self, user_id: str) -> int:
        """Replace cached readings with the user's readings from the backend.

        A failed fetch leaves the cache empty; it is logged, not raised.

        Returns:
            Number of readings loaded
        """
        self.user_id = user_id
        logger.info(f"Loading readings for user {user_id}")
        try:
            raw = self._api.get_readings(user_id)
            readings = [Reading.from_api(item) for item in raw]
        except (BPBuddyError, KeyError, ValueError) as e:
            logger.error(f"Failed to fetch readings for {user_id}: {e}")
            readings = []

        self._readings = sorted(readings, key=lambda r: r.timestamp, reverse=True)
        self._streak = compute_streak(self._readings)
        logger.info(f"Loaded {len(self._readings)} readings, streak: {self._streak}")
        self._bus.notify()
        return len(self._readings)

    def add_reading(self, draft: Reading) -> Reading:
        """Save a reading remotely and insert it into the newest-first cache.

        No validation happens here. If the backend save fails the draft
        itself is inserted, keeping its client-generated id.

        Args:
            draft: Reading as entered by the user

        Returns:
            The reading now held by the cache
        """
        try:
            data = self._api.create_reading(self.user_id, draft.to_payload())
            reading = draft.confirmed_by(data)
            logger.info(f"Saved reading {reading.id}: {reading}")
        except BPBuddyError as e:
            reading = draft
            logger.warning(f"Backend save failed, keeping reading locally: {e}")
        except (KeyError, TypeError, ValueError) as e:
            reading = draft
            logger.warning(f"Unexpected save response, keeping reading locally: {e!r}")

        self._insert(reading)
        self._bus.notify()
        return reading

    def _insert(self, reading: Reading) -> None:
        # Newest-first; a backdated reading goes after every later one
        index = 0
        while index < len(self._readings) and self._readings[index].timestamp > reading.timestamp:
            index += 1
        self._readings = self._readings[:index] + [reading] + self._readings[index:]

        last = self._streak.last_reading_date
        if last is not None and reading.calendar_date < last:
            self._streak = compute_streak(self._readings)
        else:
            self._streak = advance(self._streak, reading.timestamp)

    def list_readings(self) -> list[Reading]:
        """All readings, newest first (a copy)."""
        return list(self._readings)

    def latest(self) -> Reading | None:
        return self._readings[0] if self._readings else None

    def recent(self, n: int) -> list[Reading]:
        """Last ``n`` readings, newest first."""
        return self._readings[: max(n, 0)]

    def streak(self, today: date | datetime | None = None) -> StreakData:
        """Streak data with the elapsed-time freshness rule applied."""
        return apply_freshness(self._streak, today)

    def get_reading(self, reading_id: str) -> Reading:
        for reading in self._readings:
            if reading.id == reading_id:
                return reading
        raise NotFoundError(f"Reading not found: {reading_id}")

    def update_reading(self, reading_id: str, **updates) -> Reading:
        """Change the values or annotations of a cached reading.

        Confirmed readings are updated on the backend first. The timestamp
        cannot be changed here, so the streak stays as it is.

        Raises:
            NotFoundError: If no cached reading has this id
            ValueError: If a field other than systolic, diastolic, pulse,
                note or tags is given
            NetworkError: If the backend rejects the update
        """
        bad_fields = set(updates) - _READING_UPDATE_FIELDS
        if bad_fields:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(bad_fields))}")

        reading = self.get_reading(reading_id)
        if "tags" in updates:
            updates["tags"] = set(updates["tags"])

        updated_at = datetime.now()
        if reading.is_confirmed:
            payload = {("notes" if key == "note" else key): value for key, value in updates.items()}
            if "tags" in payload:
                payload["tags"] = sorted(payload["tags"])
            data = self._api.update_reading(reading.server_id, payload)
            updated_at = parse_timestamp(data.get("updatedAt")) or updated_at

        updated = replace(reading, **updates, updated_at=updated_at)
        self._readings = [updated if r.id == reading_id else r for r in self._readings]
        logger.info(f"Updated reading {reading_id}: {updated}")
        self._bus.notify()
        return updated

    def delete_reading(self, reading_id: str) -> None:
        """Remove a reading, on the backend too when it was confirmed.

        Raises:
            NotFoundError: If no cached reading has this id
            NetworkError: If the backend delete fails (the cache is left as is)
        """
        reading = self.get_reading(reading_id)
        if reading.is_confirmed:
            self._api.delete_reading(reading.server_id)

        self._readings = [r for r in self._readings if r.id != reading_id]
        self._streak = compute_streak(self._readings)
        logger.info(f"Deleted reading {reading_id}")
        self._bus.notify()

    def statistics(self) -> dict:
        """Summary of the cached readings."""
        if not self._readings:
            return {
                "total_readings": 0,
                "first_reading": None,
                "last_reading": None,
                "avg_systolic": None,
                "avg_diastolic": None,
                "avg_pulse": None,
            }

        pulses = [r.pulse for r in self._readings if r.pulse is not None]
        count = len(self._readings)
        return {
            "total_readings": count,
            "first_reading": self._readings[-1].timestamp.isoformat(),
            "last_reading": self._readings[0].timestamp.isoformat(),
            "avg_systolic": round(sum(r.systolic for r in self._readings) / count, 1),
            "avg_diastolic": round(sum(r.diastolic for r in self._readings) / count, 1),
            "avg_pulse": round(sum(pulses) / len(pulses), 1) if pulses else None,
        }

    def clear(self) -> None:
        """Drop readings, notes and streak (called on logout)."""
        self._readings = []
        self._notes = []
        self._streak = StreakData()
        self.user_id = ANONYMOUS_USER
        logger.info("User data cleared")
        self._bus.notify()

    # ---- notes ----

    def add_note(self, note: Note) -> Note:
        self._notes = [note, *self._notes]
        logger.info(f"Added note: {note.title}")
        self._bus.notify()
        return note

    def get_note(self, note_id: str) -> Note:
        for note in self._notes:
            if note.id == note_id:
                return note
        raise NotFoundError(f"Note not found: {note_id}")

    def update_note(self, note_id: str, **updates) -> Note:
        """Apply field updates to a note and bump ``updated_at``.

        Raises:
            NotFoundError: If no note has this id
            ValueError: If an unknown or immutable field is given
        """
        bad_fields = _NOTE_IMMUTABLE_FIELDS.intersection(updates)
        if bad_fields:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(bad_fields))}")

        note = self.get_note(note_id)
        try:
            updated = replace(note, **updates, updated_at=datetime.now())
        except TypeError as e:
            raise ValueError(str(e)) from e

        self._notes = [updated if n.id == note_id else n for n in self._notes]
        logger.info(f"Updated note: {updated.title}")
        self._bus.notify()
        return updated

    def delete_note(self, note_id: str) -> None:
        self.get_note(note_id)
        self._notes = [n for n in self._notes if n.id != note_id]
        logger.info(f"Deleted note: {note_id}")
        self._bus.notify()

    def toggle_favorite(self, note_id: str) -> Note:
        note = self.get_note(note_id)
        return self.update_note(note_id, is_favorite=not note.is_favorite)

    def all_notes(self) -> list[Note]:
        return list(self._notes)

    def notes_by_category(self, category: str) -> list[Note]:
        return [n for n in self._notes if n.category == category]

    def favorite_notes(self) -> list[Note]:
        return [n for n in self._notes if n.is_favorite]

    def notes_with_reminders(self) -> list[Note]:
        return [n for n in self._notes if n.reminder is not None and n.reminder.enabled]

    def search_notes(self, query: str) -> list[Note]:
        return [n for n in self._notes if n.matches(query)]
