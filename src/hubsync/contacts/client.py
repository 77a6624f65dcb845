"""Async HTTP client wrapper for the HubSpot contacts and events APIs.

Provides HubSpotClient with retry logic (tenacity, 3 attempts, exponential
backoff 1-10s). Only network failures, 429 and 5xx responses are retried;
the last error is re-raised unchanged. Statuses with business meaning are
surfaced explicitly instead of as generic errors:

- contact lookup 404 -> None
- contact create 409 -> ContactConflictError carrying the response body

The client holds no account state: every call takes the API key, so a single
instance can serve every tenant in the process.
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import quote, urlsplit

import httpx
import structlog
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from src.hubsync.contacts.exceptions import ContactConflictError, HubSpotRequestError
from src.hubsync.contacts.schemas import NormalizedProperty, RemoteContact

logger = structlog.get_logger(__name__)

DEFAULT_TRACK_URL = "https://track.hubspot.com/v1"
DEFAULT_CONTACT_URL = "https://api.hubapi.com/contacts/v1"


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, HubSpotRequestError) and exc.retryable


def _properties_body(properties: list[NormalizedProperty]) -> dict[str, Any]:
    return {"properties": [prop.model_dump() for prop in properties]}


class HubSpotClient:
    """Async client for HubSpot's v1 contacts API and enterprise events endpoint.

    Args:
        contact_url: Base URL of the contacts API.
        track_url: Base URL of the events endpoint.
        timeout: Per-request timeout in seconds.
        max_attempts: Attempts per request, including the first one.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
        wait: Optional tenacity wait strategy between attempts.
    """

    def __init__(
        self,
        contact_url: str = DEFAULT_CONTACT_URL,
        track_url: str = DEFAULT_TRACK_URL,
        *,
        timeout: float = 10.0,
        max_attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
        wait: wait_base | None = None,
    ) -> None:
        self._contact_url = contact_url.rstrip("/")
        self._track_url = track_url.rstrip("/")
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._transport = transport
        self._wait = wait or wait_exponential(multiplier=1, min=1, max=10)

    def _client(self) -> httpx.AsyncClient:
        """Create a new httpx client for one request."""
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=self._wait,
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
        allowed: tuple[int, ...] = (),
    ) -> httpx.Response:
        """Send a request with retries.

        Any status outside 2xx and ``allowed`` raises HubSpotRequestError. The
        error path omits the query string so API keys never reach logs.
        """
        path = urlsplit(url).path
        headers = {"Accept": "application/json"}

        async for attempt in self._retrying():
            with attempt:
                try:
                    async with self._client() as client:
                        response = await client.request(
                            method,
                            url,
                            params=params,
                            json=json_body,
                            headers=headers,
                        )
                except httpx.HTTPError as exc:
                    logger.warning(
                        "hubspot.request_failed",
                        method=method,
                        path=path,
                        error=str(exc),
                    )
                    raise HubSpotRequestError(
                        method=method, path=path, status_code=None, message=str(exc)
                    ) from exc

                if response.is_success or response.status_code in allowed:
                    return response

                logger.warning(
                    "hubspot.bad_status",
                    method=method,
                    path=path,
                    status_code=response.status_code,
                )
                raise HubSpotRequestError(
                    method=method,
                    path=path,
                    status_code=response.status_code,
                    message=_error_message(response),
                )
        raise AssertionError("unreachable")  # pragma: no cover

    @staticmethod
    def _json(response: httpx.Response, method: str) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise HubSpotRequestError(
                method=method,
                path=response.request.url.path,
                status_code=response.status_code,
                message="malformed JSON response",
            ) from exc

    # ── Schema ──────────────────────────────────────────────────────────

    async def get_properties(self, api_key: str) -> list[dict[str, Any]]:
        """GET /properties: every contact property definition on the account."""
        response = await self._request(
            "GET",
            f"{self._contact_url}/properties",
            params={"hapikey": api_key},
        )
        body = self._json(response, "GET")
        if not isinstance(body, list):
            raise HubSpotRequestError(
                method="GET",
                path=response.request.url.path,
                status_code=response.status_code,
                message="expected a list of properties",
            )
        logger.debug("hubspot.properties_retrieved", count=len(body))
        return body

    # ── Contacts ────────────────────────────────────────────────────────

    async def get_contact_by_email(self, api_key: str, email: str) -> RemoteContact | None:
        """GET /contact/email/{email}/profile. Returns None on 404."""
        response = await self._request(
            "GET",
            f"{self._contact_url}/contact/email/{quote(email, safe='@')}/profile",
            params={"hapikey": api_key},
            allowed=(404,),
        )
        if response.status_code == 404:
            logger.debug("hubspot.contact_not_found")
            return None

        body = self._json(response, "GET")
        try:
            contact = RemoteContact.model_validate(body)
        except ValidationError as exc:
            raise HubSpotRequestError(
                method="GET",
                path=response.request.url.path,
                status_code=response.status_code,
                message="malformed contact profile",
            ) from exc
        logger.debug("hubspot.contact_found", vid=contact.vid)
        return contact

    async def create_contact(
        self, api_key: str, properties: list[NormalizedProperty]
    ) -> dict[str, Any] | None:
        """POST /contact. Raises ContactConflictError on 409."""
        response = await self._request(
            "POST",
            f"{self._contact_url}/contact",
            params={"hapikey": api_key},
            json_body=_properties_body(properties),
            allowed=(409,),
        )
        if response.status_code == 409:
            raise ContactConflictError(self._json(response, "POST"))

        body = self._json(response, "POST")
        logger.info(
            "hubspot.contact_created",
            vid=body.get("vid") if isinstance(body, dict) else None,
        )
        return body

    async def update_contact(
        self, api_key: str, vid: str, properties: list[NormalizedProperty]
    ) -> None:
        """POST /contact/vid/{vid}/profile."""
        await self._request(
            "POST",
            f"{self._contact_url}/contact/vid/{quote(str(vid))}/profile",
            params={"hapikey": api_key},
            json_body=_properties_body(properties),
        )
        logger.info("hubspot.contact_updated", vid=vid, properties=len(properties))

    async def create_or_update_contact(
        self, api_key: str, email: str, properties: list[NormalizedProperty]
    ) -> dict[str, Any] | None:
        """POST /contact/createOrUpdate/email/{email}."""
        response = await self._request(
            "POST",
            f"{self._contact_url}/contact/createOrUpdate/email/{quote(email, safe='@')}",
            params={"hapikey": api_key},
            json_body=_properties_body(properties),
        )
        body = self._json(response, "POST")
        logger.info(
            "hubspot.contact_upserted",
            vid=body.get("vid") if isinstance(body, dict) else None,
            is_new=body.get("isNew") if isinstance(body, dict) else None,
        )
        return body

    # ── Events ──────────────────────────────────────────────────────────

    async def track_event(self, params: dict[str, Any]) -> None:
        """GET /event on the tracking host; None-valued parameters are omitted."""
        query = {key: value for key, value in params.items() if value is not None}
        await self._request("GET", f"{self._track_url}/event", params=query)
        logger.info("hubspot.event_tracked", event_name=query.get("_n"))


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])[:200]
    return ""
