"""HTTP client for the BP Buddy backend.

Thin wrapper around ``requests``: every call targets a single base URL,
carries the bearer token when one is set, and turns any failure into a
``NetworkError`` holding the server-provided message when there is one.
There is no retry; callers decide how to fall back.
"""

from __future__ import annotations

import logging
from typing import Any

import requests
from requests.exceptions import RequestException

from src.errors import NetworkError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:3001"


class BPBuddyAPI:
    """Remote accessor for the auth and readings endpoints."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        """Initialize the API client.

        Args:
            base_url: Backend root, without the ``/api`` suffix
            timeout: Optional per-request timeout in seconds (None waits forever)
            session: Optional preconfigured ``requests.Session``
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.token: str | None = None
        self._http = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(
        self,
        method: str,
        endpoint: str,
        json: dict | None = None,
        params: dict | None = None,
    ) -> dict[str, Any]:
        """Issue a request and return the decoded JSON body.

        Raises:
            NetworkError: On transport failure or a non-2xx response
        """
        url = f"{self.base_url}/api/{endpoint}"
        logger.debug(f"{method} {url}")

        try:
            response = self._http.request(
                method,
                url,
                json=json,
                params=params,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except RequestException as e:
            logger.error(f"API request to {url} failed: {e}")
            raise NetworkError(f"API call failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.ok:
            message = (
                data.get("error") if isinstance(data, dict) else None
            ) or f"API call failed: {response.reason}"
            logger.debug(f"{method} {url} -> {response.status_code}: {message}")
            raise NetworkError(message, status_code=response.status_code)

        return data if isinstance(data, dict) else {"data": data}

    # ---- auth ----

    def register(
        self,
        email: str,
        password: str,
        name: str,
        profile: dict | None = None,
    ) -> dict:
        """POST /api/auth/register, returning ``{"user": ..., "token": ...}``."""
        body = {"email": email, "password": password, "name": name, "profile": profile}
        result = self._request("POST", "auth/register", json=body)
        return self._expect_data(result, "Registration failed")

    def login(self, email: str, password: str) -> dict:
        """POST /api/auth/login, returning ``{"user": ..., "token": ...}``."""
        body = {"email": email, "password": password}
        result = self._request("POST", "auth/login", json=body)
        return self._expect_data(result, "Login failed")

    def logout(self) -> None:
        self._request("POST", "auth/logout")

    def verify(self) -> dict:
        """GET /api/auth/verify, returning ``{"userId": ..., "email": ...}``."""
        result = self._request("GET", "auth/verify")
        return self._expect_data(result, "Token verification failed")

    def update_profile(self, profile: dict) -> dict:
        return self._expect_data(
            self._request("PUT", "auth/profile", json={"profile": profile}),
            "Profile update failed",
        )

    # ---- readings ----

    def get_readings(
        self,
        user_id: str,
        start_date: str | None = None,
        end_date: str | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        """GET /api/readings/<user_id>.

        Args:
            user_id: Owner of the readings
            start_date: Optional ISO lower bound on timestamp
            end_date: Optional ISO upper bound on timestamp
            limit: Optional maximum number of readings

        Returns:
            Readings in wire shape, newest first as sent by the server
        """
        params = {
            key: value
            for key, value in (("startDate", start_date), ("endDate", end_date), ("limit", limit))
            if value is not None
        }
        result = self._request("GET", f"readings/{user_id}", params=params or None)
        return list(result.get("data") or [])

    def create_reading(self, user_id: str, reading: dict) -> dict:
        """POST /api/readings, returning the stored reading in wire shape."""
        body = {"userId": user_id, "reading": reading}
        result = self._request("POST", "readings", json=body)
        return self._expect_data(result, "Failed to save reading")

    def update_reading(self, reading_id: str, updates: dict) -> dict:
        """PUT /api/readings/<reading_id>, returning the stored reading."""
        result = self._request("PUT", f"readings/{reading_id}", json=updates)
        return self._expect_data(result, "Failed to update reading")

    def delete_reading(self, reading_id: str) -> None:
        self._request("DELETE", f"readings/{reading_id}")

    @staticmethod
    def _expect_data(result: dict, fallback_message: str) -> Any:
        if not result.get("success") or result.get("data") is None:
            raise NetworkError(result.get("error") or fallback_message)
        return result["data"]
