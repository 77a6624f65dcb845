"""Unit tests for HubSpotClient.

Tests cover:
- Wire contract: paths, hapikey query parameter, JSON property bodies
- Status mapping: 404 lookup -> None, 409 create -> ContactConflictError
- Error messages for non-2xx responses
- Retry behaviour: 5xx / 429 / network errors retried, 4xx not
- Malformed response bodies
- Events endpoint: None parameters omitted
"""

from __future__ import annotations

import httpx
import pytest
from tenacity import wait_none

from src.hubsync.contacts.client import HubSpotClient
from src.hubsync.contacts.exceptions import ContactConflictError, HubSpotRequestError
from src.hubsync.contacts.schemas import NormalizedProperty

CONTACT_URL = "https://api.hubapi.com/contacts/v1"
TRACK_URL = "https://track.hubspot.com/v1"

PROPERTIES = [
    NormalizedProperty(property="email", value="jd@example.com"),
    NormalizedProperty(property="firstname", value="John"),
]


# ── Wire contract ──────────────────────────────────────────────────────────


class TestWireContract:
    async def test_get_properties(self, client, fake_hubspot):
        properties = await client.get_properties("demo")

        request = fake_hubspot.requests[0]
        assert request.method == "GET"
        assert request.url.path == "/contacts/v1/properties"
        assert request.url.params["hapikey"] == "demo"
        assert request.headers["accept"] == "application/json"
        assert properties == fake_hubspot.properties

    async def test_get_contact_by_email(self, client, fake_hubspot):
        fake_hubspot.add_contact("jd@example.com", {"lifecyclestage": "lead"})

        contact = await client.get_contact_by_email("demo", "jd@example.com")

        assert fake_hubspot.requests[0].url.path == (
            "/contacts/v1/contact/email/jd@example.com/profile"
        )
        assert contact.vid == "1001"
        assert contact.property_value("lifecyclestage") == "lead"

    async def test_create_contact_sends_property_list(self, client, fake_hubspot):
        body = await client.create_contact("demo", PROPERTIES)

        request = fake_hubspot.writes()[0]
        assert request.url.path == "/contacts/v1/contact"
        assert request.url.params["hapikey"] == "demo"
        assert fake_hubspot.body(request) == {
            "properties": [
                {"property": "email", "value": "jd@example.com"},
                {"property": "firstname", "value": "John"},
            ]
        }
        assert body == {"vid": 1001}

    async def test_update_contact(self, client, fake_hubspot):
        vid = fake_hubspot.add_contact("jd@example.com")

        await client.update_contact("demo", vid, PROPERTIES[1:])

        request = fake_hubspot.writes()[0]
        assert request.url.path == f"/contacts/v1/contact/vid/{vid}/profile"
        assert fake_hubspot.contacts["jd@example.com"]["properties"]["firstname"] == "John"

    async def test_create_or_update_contact(self, client, fake_hubspot):
        body = await client.create_or_update_contact("demo", "jd@example.com", PROPERTIES)

        request = fake_hubspot.writes()[0]
        assert request.url.path == "/contacts/v1/contact/createOrUpdate/email/jd@example.com"
        assert body == {"vid": 1001, "isNew": True}

    async def test_email_is_path_escaped(self, client, fake_hubspot):
        await client.get_contact_by_email("demo", "j d+x@example.com")

        raw_path = fake_hubspot.requests[0].url.raw_path.decode()
        assert "/contact/email/j%20d%2Bx@example.com/profile" in raw_path

    async def test_track_event_omits_none_params(self, client, fake_hubspot):
        await client.track_event(
            {"_a": "62515", "_n": "Signed Up", "_m": None, "email": "jd@example.com"}
        )

        request = fake_hubspot.requests[0]
        assert request.url.host == "track.hubspot.com"
        assert request.url.path == "/v1/event"
        assert dict(request.url.params) == {
            "_a": "62515",
            "_n": "Signed Up",
            "email": "jd@example.com",
        }


# ── Status mapping ─────────────────────────────────────────────────────────


class TestStatusMapping:
    async def test_missing_contact_returns_none(self, client):
        assert await client.get_contact_by_email("demo", "nobody@example.com") is None

    async def test_create_conflict_raises_with_body(self, client, fake_hubspot):
        fake_hubspot.add_contact("jd@example.com")

        with pytest.raises(ContactConflictError) as exc_info:
            await client.create_contact("demo", PROPERTIES)

        assert exc_info.value.body["status"] == "error"
        assert '"vid": 1001' in exc_info.value.body["message"]

    async def test_unauthorized_error_message(self, client, fake_hubspot):
        fake_hubspot.queue(
            "GET",
            "/contacts/v1/properties",
            httpx.Response(401, json={"status": "error", "message": "invalid API key"}),
        )

        with pytest.raises(HubSpotRequestError) as exc_info:
            await client.get_properties("bad-key")

        error = exc_info.value
        assert error.status_code == 401
        assert str(error) == "cannot GET /contacts/v1/properties (401): invalid API key"
        assert "bad-key" not in str(error)

    async def test_update_of_unknown_vid_raises(self, client):
        with pytest.raises(HubSpotRequestError) as exc_info:
            await client.update_contact("demo", "9999", PROPERTIES)

        assert exc_info.value.status_code == 404


# ── Retries ────────────────────────────────────────────────────────────────


class TestRetries:
    async def test_server_error_is_retried(self, client, fake_hubspot):
        fake_hubspot.queue("GET", "/contacts/v1/properties", httpx.Response(500))

        properties = await client.get_properties("demo")

        assert len(fake_hubspot.calls("GET", "/contacts/v1/properties")) == 2
        assert properties == fake_hubspot.properties

    async def test_rate_limit_is_retried(self, client, fake_hubspot):
        fake_hubspot.queue("GET", "/contacts/v1/properties", httpx.Response(429))

        await client.get_properties("demo")

        assert len(fake_hubspot.requests) == 2

    async def test_gives_up_after_max_attempts(self, client, fake_hubspot):
        for _ in range(3):
            fake_hubspot.queue("GET", "/contacts/v1/properties", httpx.Response(503))

        with pytest.raises(HubSpotRequestError) as exc_info:
            await client.get_properties("demo")

        assert exc_info.value.status_code == 503
        assert len(fake_hubspot.requests) == 3

    async def test_client_errors_are_not_retried(self, client, fake_hubspot):
        fake_hubspot.queue("GET", "/contacts/v1/properties", httpx.Response(400))

        with pytest.raises(HubSpotRequestError):
            await client.get_properties("demo")

        assert len(fake_hubspot.requests) == 1

    async def test_network_errors_are_retried(self):
        attempts: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        client = HubSpotClient(
            CONTACT_URL,
            TRACK_URL,
            transport=httpx.MockTransport(handler),
            wait=wait_none(),
        )

        with pytest.raises(HubSpotRequestError) as exc_info:
            await client.track_event({"_n": "Signed Up"})

        assert exc_info.value.status_code is None
        assert exc_info.value.retryable
        assert len(attempts) == 3

    async def test_max_attempts_is_configurable(self, fake_hubspot):
        fake_hubspot.queue("GET", "/contacts/v1/properties", httpx.Response(502))
        client = HubSpotClient(
            CONTACT_URL,
            TRACK_URL,
            max_attempts=1,
            transport=fake_hubspot.transport(),
            wait=wait_none(),
        )

        with pytest.raises(HubSpotRequestError):
            await client.get_properties("demo")

        assert len(fake_hubspot.requests) == 1


# ── Malformed bodies ───────────────────────────────────────────────────────


class TestMalformedResponses:
    async def test_non_json_properties_body(self, client, fake_hubspot):
        fake_hubspot.queue(
            "GET", "/contacts/v1/properties", httpx.Response(200, content=b"<html>")
        )

        with pytest.raises(HubSpotRequestError, match="malformed JSON response"):
            await client.get_properties("demo")

    async def test_properties_body_must_be_a_list(self, client, fake_hubspot):
        fake_hubspot.queue(
            "GET", "/contacts/v1/properties", httpx.Response(200, json={"results": []})
        )

        with pytest.raises(HubSpotRequestError, match="expected a list"):
            await client.get_properties("demo")

    async def test_profile_without_vid(self, client, fake_hubspot):
        fake_hubspot.queue(
            "GET",
            "/contacts/v1/contact/email/jd@example.com/profile",
            httpx.Response(200, json={"properties": {}}),
        )

        with pytest.raises(HubSpotRequestError, match="malformed contact profile"):
            await client.get_contact_by_email("demo", "jd@example.com")
