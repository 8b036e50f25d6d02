"""REST client for the backend endpoints the gating engine consumes.

All calls are JSON over HTTP(S) with a bearer token (except the public
maintenance status). Responses wrapped as ``{"success": ..., "data": ...}``
are unwrapped to their ``data`` member.

Uses stdlib ``urllib.request``; no extra dependencies required.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

from pydantic import ValidationError

from entitlement_gate.models import MaintenanceConfig, Notification

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """Raised when a backend call fails (transport, HTTP status or bad JSON)."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class BackendClient:
    """Thin JSON client over the backend REST surface.

    Usage::

        client = BackendClient("https://api.example.com/api", token="eyJ...")
        count = client.unread_count()
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def is_authenticated(self) -> bool:
        return bool(self._token)

    def set_token(self, token: str | None) -> None:
        self._token = token

    # --- Maintenance ---

    def maintenance_status(self) -> dict[str, Any]:
        """Public maintenance status (no token sent)."""
        return _expect_mapping(
            self._request("GET", "/maintenance/status", auth=False), "maintenance status",
        )

    def maintenance_check(self) -> dict[str, Any]:
        """Per-user maintenance check for the token's owner."""
        return _expect_mapping(
            self._request("GET", "/maintenance/check"), "maintenance check",
        )

    def get_maintenance_settings(self) -> MaintenanceConfig:
        return MaintenanceConfig.model_validate(
            self._request("GET", "/maintenance/settings"),
        )

    def update_maintenance_settings(self, **fields: Any) -> MaintenanceConfig:
        """PUT partial settings; keyword names use the wire (camelCase) keys."""
        data = self._request("PUT", "/maintenance/settings", body=fields)
        settings = data.get("settings", data) if isinstance(data, dict) else data
        return MaintenanceConfig.model_validate(settings)

    def affected_count(self) -> int:
        data = _expect_mapping(
            self._request("GET", "/maintenance/affected-count"), "affected-count",
        )
        return _as_count(data.get("affectedCount"), "affected-count")

    # --- Notifications ---

    def unread_count(self) -> int:
        data = _expect_mapping(
            self._request("GET", "/notifications/unread-count"), "unread-count",
        )
        return _as_count(data.get("count"), "unread-count")

    def latest_unread(self) -> Notification | None:
        """The single most recent unread notification, or None."""
        query = urllib.parse.urlencode({"limit": 1, "unreadOnly": "true"})
        data = self._request("GET", f"/notifications?{query}")
        if not isinstance(data, list) or not data:
            return None
        try:
            return Notification.model_validate(data[0])
        except ValidationError as e:
            raise BackendError(f"Unexpected notification payload: {e}") from e

    def mark_read(self, notification_id: str) -> None:
        self._request("POST", f"/notifications/{notification_id}/read")

    def mark_all_read(self) -> None:
        self._request("POST", "/notifications/mark-all-read")

    def dismiss(self, notification_id: str) -> None:
        self._request("POST", f"/notifications/{notification_id}/dismiss")

    # --- Transport ---

    def _request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        auth: bool = True,
    ) -> Any:
        headers = {"Accept": "application/json"}
        data: bytes | None = None
        if body is not None:
            data = json.dumps(body, default=str).encode("utf-8")
            headers["Content-Type"] = "application/json"
        if auth and self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        req = urllib.request.Request(
            self._base_url + path,
            data=data,
            headers=headers,
            method=method,
        )
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:  # noqa: S310
                raw = resp.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            raise BackendError(
                f"{method} {path} failed with HTTP {e.code}", status=e.code,
            ) from e
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            raise BackendError(f"{method} {path} failed: {e}") from e
        except UnicodeDecodeError as e:
            raise BackendError(f"{method} {path} returned undecodable body") from e

        if not raw.strip():
            return {}
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise BackendError(f"{method} {path} returned invalid JSON") from e

        if isinstance(payload, dict) and "data" in payload and "success" in payload:
            return payload["data"]
        return payload


def _expect_mapping(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise BackendError(f"Unexpected {what} payload: {data!r}")
    return data


def _as_count(value: Any, what: str) -> int:
    """Non-negative integer count; a missing value is zero."""
    if value is None or value == "":
        return 0
    try:
        return max(0, int(value))
    except (TypeError, ValueError) as e:
        raise BackendError(f"Unexpected {what} count: {value!r}") from e
