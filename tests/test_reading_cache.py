"""Tests for ReadingCache - readings, notes and streak bookkeeping."""

from datetime import date, datetime, timedelta, timezone

import pytest

from src.errors import NetworkError, NotFoundError
from src.models import Note, Reading, Reminder, StreakData
from src.reading_cache import ReadingCache
from tests.conftest import server_reading


def reading_at(year: int, month: int, day: int, hour: int = 9, **kwargs) -> Reading:
    return Reading(
        systolic=kwargs.pop("systolic", 120),
        diastolic=kwargs.pop("diastolic", 80),
        timestamp=datetime(year, month, day, hour, 0, 0),
        **kwargs,
    )


class TestAddReading:
    """Tests for add_reading."""

    def test_confirmed_reading_uses_server_id(self, cache, mock_api, sample_reading):
        """A saved reading carries the id assigned by the server."""
        reading = cache.add_reading(sample_reading)

        assert reading.id == "srv_1"
        assert reading.server_id == "srv_1"
        assert reading.is_confirmed
        assert cache.list_readings() == [reading]
        mock_api.create_reading.assert_called_once_with("anonymous", sample_reading.to_payload())

    def test_uses_loaded_user_id(self, cache, mock_api, sample_reading):
        cache.load_for_user("user_1")
        cache.add_reading(sample_reading)
        assert mock_api.create_reading.call_args[0][0] == "user_1"

    def test_degraded_insert_on_failure(self, failing_api, bus, sample_reading):
        """A failed save keeps the draft with its client-generated id."""
        cache = ReadingCache(failing_api, bus)
        reading = cache.add_reading(sample_reading)

        assert reading is sample_reading
        assert reading.id.startswith("local_")
        assert not reading.is_confirmed
        assert cache.list_readings() == [sample_reading]
        assert cache.streak(today=date(2024, 1, 15)).current_streak == 1

    def test_degraded_insert_is_not_retried(self, failing_api, bus, sample_reading):
        cache = ReadingCache(failing_api, bus)
        cache.add_reading(sample_reading)
        cache.add_reading(reading_at(2024, 1, 16))

        assert failing_api.create_reading.call_count == 2

    def test_newest_first(self, cache):
        """list_readings is ordered newest timestamp first."""
        for day in (1, 2, 3):
            cache.add_reading(reading_at(2024, 1, day))

        timestamps = [r.timestamp for r in cache.list_readings()]
        assert timestamps == sorted(timestamps, reverse=True)
        assert cache.latest().timestamp == datetime(2024, 1, 3, 9, 0)

    def test_backdated_reading_keeps_order(self, cache):
        """A backdated reading is placed after later ones."""
        cache.add_reading(reading_at(2024, 1, 5))
        cache.add_reading(reading_at(2024, 1, 1))

        timestamps = [r.timestamp for r in cache.list_readings()]
        assert timestamps == sorted(timestamps, reverse=True)

    def test_notifies_once_per_insert(self, cache, bus, sample_reading):
        calls = []
        bus.subscribe(lambda: calls.append(1))

        cache.add_reading(sample_reading)

        assert calls == [1]

    def test_list_returns_copy(self, cache, sample_reading):
        cache.add_reading(sample_reading)
        cache.list_readings().clear()
        assert len(cache.list_readings()) == 1

    def test_aware_draft_into_loaded_cache(self, cache, mock_api):
        """A UTC draft sorts and dates alongside readings loaded from the server."""
        mock_api.get_readings.return_value = [
            server_reading("a", "2024-01-01T09:00:00Z"),
            server_reading("b", "2024-01-03T09:00:00Z"),
        ]
        cache.load_for_user("user_1")
        aware = datetime(2024, 1, 2, 9, 0, tzinfo=timezone.utc)

        reading = cache.add_reading(Reading(systolic=125, diastolic=82, timestamp=aware))

        local = aware.astimezone().replace(tzinfo=None)
        assert reading.timestamp == local
        assert [r.id for r in cache.list_readings()] == ["b", reading.id, "a"]
        assert cache.streak(today=local.date() + timedelta(days=1)).best_streak == 3

    def test_save_reply_without_id_keeps_draft(self, cache, mock_api, sample_reading):
        """An unusable save reply falls back to a degraded insert."""
        mock_api.create_reading.side_effect = None
        mock_api.create_reading.return_value = {"userId": "anonymous", "systolic": 120}

        reading = cache.add_reading(sample_reading)

        assert reading is sample_reading
        assert not reading.is_confirmed
        assert cache.list_readings() == [sample_reading]
        assert cache.streak(today=date(2024, 1, 15)) == StreakData(1, 1, date(2024, 1, 15))


class TestRecentAndLatest:
    def test_latest_empty(self, cache):
        assert cache.latest() is None

    def test_recent(self, cache):
        for day in range(1, 6):
            cache.add_reading(reading_at(2024, 1, day))

        recent = cache.recent(2)
        assert [r.timestamp.day for r in recent] == [5, 4]

    def test_recent_more_than_available(self, cache, sample_reading):
        cache.add_reading(sample_reading)
        assert len(cache.recent(10)) == 1

    def test_recent_zero(self, cache, sample_reading):
        cache.add_reading(sample_reading)
        assert cache.recent(0) == []


class TestStreakTracking:
    """Streak behavior as readings are added."""

    def test_consecutive_days(self, cache):
        """Readings 01-01..03 give current == best == 3."""
        for day in (1, 2, 3):
            cache.add_reading(reading_at(2024, 1, day))

        streak = cache.streak(today=date(2024, 1, 3))
        assert streak == StreakData(3, 3, date(2024, 1, 3))

    def test_gap_after_run(self, cache):
        """Then 01-05 gives current 1, best 3."""
        for day in (1, 2, 3, 5):
            cache.add_reading(reading_at(2024, 1, day))

        streak = cache.streak(today=date(2024, 1, 5))
        assert streak.current_streak == 1
        assert streak.best_streak == 3

    def test_same_day_repeat(self, cache):
        """A second reading the same day changes neither counter."""
        cache.add_reading(reading_at(2024, 1, 1))
        cache.add_reading(reading_at(2024, 1, 2, hour=8))
        before = cache.streak(today=date(2024, 1, 2))

        cache.add_reading(reading_at(2024, 1, 2, hour=20))

        assert cache.streak(today=date(2024, 1, 2)) == before

    def test_stale_streak_reports_zero(self, cache):
        """A missed day zeroes the current streak when queried."""
        for day in (1, 2, 3):
            cache.add_reading(reading_at(2024, 1, day))

        streak = cache.streak(today=date(2024, 1, 6))
        assert streak.current_streak == 0
        assert streak.best_streak == 3

    def test_best_streak_never_decreases(self, cache):
        days = [1, 2, 3, 3, 7, 8, 20, 2, 21, 22, 23, 24]
        best = 0
        for day in days:
            cache.add_reading(reading_at(2024, 1, day))
            current_best = cache.streak(today=date(2024, 1, day)).best_streak
            assert current_best >= best
            best = current_best
        assert best == 5

    def test_backdated_reading_does_not_corrupt_streak(self, cache):
        """A backdated insert keeps the streak ending at the latest day."""
        for day in (10, 11, 12):
            cache.add_reading(reading_at(2024, 1, day))

        cache.add_reading(reading_at(2024, 1, 2))

        streak = cache.streak(today=date(2024, 1, 12))
        assert streak == StreakData(3, 3, date(2024, 1, 12))

    def test_backdated_reading_filling_gap(self, cache):
        """Filling a gap with a backdated reading joins the two runs."""
        for day in (1, 2, 4, 5):
            cache.add_reading(reading_at(2024, 1, day))

        cache.add_reading(reading_at(2024, 1, 3))

        assert cache.streak(today=date(2024, 1, 5)) == StreakData(5, 5, date(2024, 1, 5))

    def test_today_default(self, cache):
        now = datetime.now()
        cache.add_reading(Reading(systolic=118, diastolic=76, timestamp=now - timedelta(days=1)))
        cache.add_reading(Reading(systolic=118, diastolic=76, timestamp=now))
        assert cache.streak().current_streak == 2


class TestLoadForUser:
    """Tests for loading readings from the backend."""

    def test_load_sorts_and_computes_streak(self, cache, mock_api, bus):
        mock_api.get_readings.return_value = [
            server_reading("a", "2024-01-01T09:00:00"),
            server_reading("c", "2024-01-03T09:00:00"),
            server_reading("b", "2024-01-02T09:00:00"),
        ]
        calls = []
        bus.subscribe(lambda: calls.append(1))

        count = cache.load_for_user("user_1")

        assert count == 3
        assert [r.id for r in cache.list_readings()] == ["c", "b", "a"]
        assert cache.streak(today=date(2024, 1, 3)).current_streak == 3
        assert cache.user_id == "user_1"
        assert calls == [1]
        mock_api.get_readings.assert_called_once_with("user_1")

    def test_load_failure_leaves_cache_empty(self, cache, mock_api, sample_reading):
        cache.add_reading(sample_reading)
        mock_api.get_readings.side_effect = NetworkError("API call failed: timeout")

        count = cache.load_for_user("user_1")

        assert count == 0
        assert cache.list_readings() == []

    def test_load_skips_to_empty_on_malformed_data(self, cache, mock_api):
        mock_api.get_readings.return_value = [{"_id": "x"}]
        assert cache.load_for_user("user_1") == 0


class TestUpdateReading:
    """Tests for editing cached readings."""

    def test_confirmed_reading_updated_remotely(self, cache, mock_api, sample_reading):
        saved = cache.add_reading(sample_reading)

        updated = cache.update_reading(saved.id, systolic=135, note="retaken", tags=["clinic"])

        mock_api.update_reading.assert_called_once_with(
            "srv_1", {"systolic": 135, "notes": "retaken", "tags": ["clinic"]}
        )
        assert updated.systolic == 135
        assert updated.note == "retaken"
        assert updated.tags == {"clinic"}
        assert updated.updated_at == datetime(2024, 1, 20, 8, 0)
        assert updated.timestamp == saved.timestamp
        assert cache.get_reading(saved.id) == updated

    def test_local_reading_not_sent(self, failing_api, bus, sample_reading):
        cache = ReadingCache(failing_api, bus)
        draft = cache.add_reading(sample_reading)

        updated = cache.update_reading(draft.id, pulse=64)

        failing_api.update_reading.assert_not_called()
        assert updated.pulse == 64
        assert cache.list_readings() == [updated]

    def test_unknown_reading(self, cache):
        with pytest.raises(NotFoundError):
            cache.update_reading("missing", systolic=120)

    def test_rejects_timestamp(self, cache, sample_reading):
        saved = cache.add_reading(sample_reading)
        with pytest.raises(ValueError):
            cache.update_reading(saved.id, timestamp=datetime(2024, 1, 1))

    def test_backend_failure_leaves_cache(self, cache, mock_api, sample_reading):
        saved = cache.add_reading(sample_reading)
        mock_api.update_reading.side_effect = NetworkError("Reading not found", status_code=404)

        with pytest.raises(NetworkError):
            cache.update_reading(saved.id, systolic=140)

        assert cache.get_reading(saved.id).systolic == 120

    def test_notifies(self, cache, bus, sample_reading):
        saved = cache.add_reading(sample_reading)
        calls = []
        bus.subscribe(lambda: calls.append(1))

        cache.update_reading(saved.id, diastolic=78)

        assert calls == [1]


class TestDeleteReading:
    """Tests for removing cached readings."""

    def test_confirmed_reading_deleted_remotely(self, cache, mock_api, sample_reading):
        saved = cache.add_reading(sample_reading)

        cache.delete_reading(saved.id)

        mock_api.delete_reading.assert_called_once_with("srv_1")
        assert cache.list_readings() == []
        assert cache.latest() is None

    def test_local_reading_not_sent(self, failing_api, bus, sample_reading):
        cache = ReadingCache(failing_api, bus)
        draft = cache.add_reading(sample_reading)

        cache.delete_reading(draft.id)

        failing_api.delete_reading.assert_not_called()
        assert cache.list_readings() == []

    def test_streak_recomputed(self, cache):
        """Deleting the middle day of a run splits it."""
        saved = [cache.add_reading(reading_at(2024, 1, day)) for day in (1, 2, 3)]

        cache.delete_reading(saved[1].id)

        assert cache.streak(today=date(2024, 1, 3)) == StreakData(1, 1, date(2024, 1, 3))

    def test_deleting_latest_moves_last_date_back(self, cache):
        saved = [cache.add_reading(reading_at(2024, 1, day)) for day in (1, 2)]

        cache.delete_reading(saved[1].id)

        assert cache.streak(today=date(2024, 1, 1)) == StreakData(1, 1, date(2024, 1, 1))

    def test_deleting_only_reading_resets_streak(self, cache, sample_reading):
        saved = cache.add_reading(sample_reading)
        cache.delete_reading(saved.id)
        assert cache.streak() == StreakData()

    def test_backend_failure_keeps_reading(self, cache, mock_api, sample_reading):
        saved = cache.add_reading(sample_reading)
        mock_api.delete_reading.side_effect = NetworkError("API call failed: timeout")

        with pytest.raises(NetworkError):
            cache.delete_reading(saved.id)

        assert cache.list_readings() == [saved]
        assert cache.streak(today=date(2024, 1, 15)).current_streak == 1

    def test_unknown_reading(self, cache):
        with pytest.raises(NotFoundError):
            cache.delete_reading("missing")

    def test_notifies(self, cache, bus, sample_reading):
        saved = cache.add_reading(sample_reading)
        calls = []
        bus.subscribe(lambda: calls.append(1))

        cache.delete_reading(saved.id)

        assert calls == [1]


class TestStatistics:
    def test_empty(self, cache):
        stats = cache.statistics()
        assert stats["total_readings"] == 0
        assert stats["avg_systolic"] is None

    def test_values(self, cache):
        cache.add_reading(reading_at(2024, 1, 1, systolic=120, diastolic=80, pulse=60))
        cache.add_reading(reading_at(2024, 1, 2, systolic=130, diastolic=85))

        stats = cache.statistics()

        assert stats["total_readings"] == 2
        assert stats["avg_systolic"] == 125.0
        assert stats["avg_diastolic"] == 82.5
        assert stats["avg_pulse"] == 60.0
        assert stats["first_reading"] == "2024-01-01T09:00:00"
        assert stats["last_reading"] == "2024-01-02T09:00:00"


class TestClear:
    def test_clear_empties_everything(self, cache, bus, sample_reading):
        """After clear, readings and notes are empty and the streak is zero."""
        cache.load_for_user("user_1")
        cache.add_reading(sample_reading)
        cache.add_note(Note(title="Dizzy", content="after lunch", category="symptoms"))
        calls = []
        bus.subscribe(lambda: calls.append(1))

        cache.clear()

        assert cache.list_readings() == []
        assert cache.all_notes() == []
        assert cache.streak() == StreakData()
        assert cache.user_id == "anonymous"
        assert calls == [1]


class TestNotes:
    """Tests for in-memory note CRUD."""

    @pytest.fixture
    def notes(self, cache):
        first = cache.add_note(
            Note(title="Lisinopril", content="10mg daily", category="medication", tags={"meds"})
        )
        second = cache.add_note(
            Note(
                title="Cardiologist",
                content="Bring log",
                category="doctor",
                reminder=Reminder(enabled=True, date=datetime(2024, 2, 1, 9, 0)),
            )
        )
        third = cache.add_note(Note(title="Walk", content="30 minutes", category="lifestyle"))
        return first, second, third

    def test_add_newest_first(self, cache, notes):
        assert [n.title for n in cache.all_notes()] == ["Walk", "Cardiologist", "Lisinopril"]

    def test_notes_never_hit_api(self, cache, mock_api, notes):
        assert mock_api.method_calls == []

    def test_update(self, cache, notes):
        first = notes[0]
        updated = cache.update_note(first.id, content="20mg daily")

        assert updated.content == "20mg daily"
        assert updated.updated_at >= first.updated_at
        assert cache.get_note(first.id).content == "20mg daily"

    def test_update_unknown_note(self, cache):
        with pytest.raises(NotFoundError):
            cache.update_note("missing", title="x")

    def test_update_rejects_id(self, cache, notes):
        with pytest.raises(ValueError):
            cache.update_note(notes[0].id, id="other")

    def test_update_rejects_unknown_field(self, cache, notes):
        with pytest.raises(ValueError):
            cache.update_note(notes[0].id, colour="red")

    def test_update_rejects_bad_category(self, cache, notes):
        with pytest.raises(ValueError):
            cache.update_note(notes[0].id, category="gossip")

    def test_delete(self, cache, notes):
        cache.delete_note(notes[1].id)
        assert notes[1].id not in [n.id for n in cache.all_notes()]

    def test_delete_unknown_note(self, cache):
        with pytest.raises(NotFoundError):
            cache.delete_note("missing")

    def test_toggle_favorite(self, cache, notes):
        assert cache.toggle_favorite(notes[2].id).is_favorite is True
        assert [n.title for n in cache.favorite_notes()] == ["Walk"]
        assert cache.toggle_favorite(notes[2].id).is_favorite is False
        assert cache.favorite_notes() == []

    def test_search_matches_title_content_and_tags(self, cache, notes):
        assert [n.title for n in cache.search_notes("LISINO")] == ["Lisinopril"]
        assert [n.title for n in cache.search_notes("bring")] == ["Cardiologist"]
        assert [n.title for n in cache.search_notes("meds")] == ["Lisinopril"]
        assert cache.search_notes("nothing") == []

    def test_filter_by_category(self, cache, notes):
        assert [n.title for n in cache.notes_by_category("doctor")] == ["Cardiologist"]
        assert cache.notes_by_category("symptoms") == []

    def test_notes_with_reminders(self, cache, notes):
        assert [n.title for n in cache.notes_with_reminders()] == ["Cardiologist"]

    def test_each_mutation_notifies(self, cache, bus, notes):
        calls = []
        bus.subscribe(lambda: calls.append(1))

        cache.update_note(notes[0].id, title="ACE inhibitor")
        cache.toggle_favorite(notes[0].id)
        cache.delete_note(notes[0].id)

        assert len(calls) == 3
