"""Error types raised by the HubSpot contact sync engine."""

from __future__ import annotations

from typing import Any


class HubSpotSyncError(RuntimeError):
    """Base contact sync error."""


class SyncValidationError(HubSpotSyncError):
    """Raised when required settings or message fields are missing."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"missing required field: {field}")


class HubSpotRequestError(HubSpotSyncError):
    """Raised when a HubSpot request fails.

    ``status_code`` is None for network-level failures.
    """

    def __init__(
        self,
        *,
        method: str,
        path: str,
        status_code: int | None,
        message: str = "",
    ) -> None:
        self.method = method
        self.path = path
        self.status_code = status_code
        self.message = message
        status = status_code if status_code is not None else "network error"
        detail = f": {message}" if message else ""
        super().__init__(f"cannot {method} {path} ({status}){detail}")

    @property
    def retryable(self) -> bool:
        return (
            self.status_code is None
            or self.status_code == 429
            or self.status_code >= 500
        )


class ContactConflictError(HubSpotSyncError):
    """Raised when contact creation returns 409 (the email already exists)."""

    def __init__(self, body: Any) -> None:
        self.body = body
        super().__init__("contact already exists")


class ConflictParseError(HubSpotSyncError):
    """Raised when a 409 body does not identify the existing contact."""

    def __init__(self, body: Any) -> None:
        self.body = body
        super().__init__(f"cannot parse contact conflict response: {body!r}")
