"""Persistent key-value storage for the authenticated session.

Holds the bearer token and the serialized user under fixed keys so a
session survives process restarts. Backed by a single SQLite table.
"""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

USER_TOKEN_KEY = "user_token"
USER_DATA_KEY = "user_data"
REMEMBER_EMAIL_KEY = "remember_email"


class SessionStorage:
    """Small SQLite-backed key-value store."""

    def __init__(self, db_path: str = "data/bp_buddy.db"):
        """Initialize session storage.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS session_values (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """
            )
            conn.commit()
            logger.debug(f"Session storage initialized at {self.db_path}")

    def get(self, key: str) -> str | None:
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("SELECT value FROM session_values WHERE key = ?", (key,))
            row = cursor.fetchone()
            return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO session_values (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, datetime.now().isoformat()),
            )
            conn.commit()

    def remove(self, *keys: str) -> None:
        """Delete the given keys in one transaction."""
        with sqlite3.connect(self.db_path) as conn:
            conn.executemany("DELETE FROM session_values WHERE key = ?", [(k,) for k in keys])
            conn.commit()

    def save_session(self, token: str, user: dict) -> None:
        """Persist token and user together."""
        with sqlite3.connect(self.db_path) as conn:
            now = datetime.now().isoformat()
            conn.executemany(
                """
                INSERT INTO session_values (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                [
                    (USER_TOKEN_KEY, token, now),
                    (USER_DATA_KEY, json.dumps(user), now),
                ],
            )
            conn.commit()

    def load_session(self) -> tuple[str, dict] | None:
        """Return (token, user) if both are stored, else None."""
        token = self.get(USER_TOKEN_KEY)
        user_data = self.get(USER_DATA_KEY)
        if not token or not user_data:
            return None
        try:
            return token, json.loads(user_data)
        except json.JSONDecodeError as e:
            logger.warning(f"Stored user data is corrupt, ignoring: {e}")
            return None

    def clear_session(self) -> None:
        """Remove token and user; the remembered email is kept."""
        self.remove(USER_TOKEN_KEY, USER_DATA_KEY)
