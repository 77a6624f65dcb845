"""Test fixtures for the HubSpot contact sync engine.

Provides:
- FakeHubSpot: in-memory stand-in for the contacts and events APIs, served
  through httpx.MockTransport and recording every request
- A HubSpotClient wired to the fake with no retry backoff
- A fresh PropertySchemaCache and ContactSyncEngine per test
"""

from __future__ import annotations

import json
import re
from typing import Any

import httpx
import pytest
from tenacity import wait_none

from src.hubsync.contacts import ContactSyncEngine, HubSpotClient, PropertySchemaCache
from src.hubsync.contacts.schemas import IntegrationSettings, LifecycleStage

CONTACT_URL = "https://api.hubapi.com/contacts/v1"
TRACK_URL = "https://track.hubspot.com/v1"

DEFAULT_PROPERTIES: list[dict[str, Any]] = [
    {"name": "firstname", "type": "string"},
    {"name": "lastname", "type": "string"},
    {"name": "last_name", "type": "string"},
    {"name": "company", "type": "string"},
    {"name": "email", "type": "string"},
    {"name": "phone", "type": "string"},
    {"name": "city", "type": "string"},
    {"name": "zip", "type": "string"},
    {"name": "jobtitle", "type": "string"},
    {"name": "address", "type": "string"},
    {"name": "age", "type": "number"},
    {"name": "offerextractdate", "type": "date"},
    {"name": "createdate", "type": "datetime"},
    {"name": "lifecyclestage", "type": "enumeration"},
    {"name": "hs_analytics_source", "type": "enumeration", "readOnlyValue": True},
]

_PROFILE = re.compile(r"^/contacts/v1/contact/email/(?P<email>[^/]+)/profile$")
_UPDATE = re.compile(r"^/contacts/v1/contact/vid/(?P<vid>[^/]+)/profile$")
_UPSERT = re.compile(r"^/contacts/v1/contact/createOrUpdate/email/(?P<email>[^/]+)$")


class FakeHubSpot:
    """In-memory HubSpot serving the v1 contacts and events endpoints.

    Like the real API, a lifecycle stage write that would move a contact
    backwards is ignored unless the stage was cleared first.
    """

    def __init__(self, properties: list[dict[str, Any]] | None = None) -> None:
        self.properties = list(properties if properties is not None else DEFAULT_PROPERTIES)
        self.contacts: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.queued: dict[tuple[str, str], list[httpx.Response]] = {}
        self._next_vid = 1001

    # ── Test helpers ────────────────────────────────────────────────────

    def add_contact(self, email: str, properties: dict[str, Any] | None = None, **extra: Any) -> str:
        vid = str(self._next_vid)
        self._next_vid += 1
        self.contacts[email] = {"vid": vid, "properties": {**(properties or {}), **extra, "email": email}}
        return vid

    def queue(self, method: str, path: str, response: httpx.Response) -> None:
        """Serve ``response`` for the next matching request instead of the default."""
        self.queued.setdefault((method, path), []).append(response)

    def calls(self, method: str | None = None, path_prefix: str = "") -> list[httpx.Request]:
        return [
            request
            for request in self.requests
            if (method is None or request.method == method)
            and request.url.path.startswith(path_prefix)
        ]

    def writes(self) -> list[httpx.Request]:
        return self.calls("POST")

    @staticmethod
    def body(request: httpx.Request) -> dict[str, Any]:
        return json.loads(request.content)

    @classmethod
    def sent_properties(cls, request: httpx.Request) -> dict[str, Any]:
        return {item["property"]: item["value"] for item in cls.body(request)["properties"]}

    def contact_by_vid(self, vid: str) -> dict[str, Any] | None:
        for contact in self.contacts.values():
            if contact["vid"] == vid:
                return contact
        return None

    # ── Transport ───────────────────────────────────────────────────────

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method, path = request.method, request.url.path

        queued = self.queued.get((method, path))
        if queued:
            return queued.pop(0)

        if method == "GET" and path == "/v1/event":
            return httpx.Response(200)

        if method == "GET" and path == "/contacts/v1/properties":
            return httpx.Response(200, json=self.properties)

        match = _PROFILE.match(path)
        if method == "GET" and match:
            contact = self.contacts.get(match["email"])
            if contact is None:
                return httpx.Response(404, json={"status": "error", "message": "contact does not exist"})
            return httpx.Response(200, json=self._render(contact))

        if method == "POST" and path == "/contacts/v1/contact":
            props = self.sent_properties(request)
            email = props.get("email")
            if email in self.contacts:
                existing = self.contacts[email]
                message = json.dumps({"property": {"vid": int(existing["vid"])}, "error": "CONTACT_EXISTS"})
                return httpx.Response(409, json={"status": "error", "message": message})
            vid = self.add_contact(email, props)
            return httpx.Response(200, json={"vid": int(vid)})

        match = _UPDATE.match(path)
        if method == "POST" and match:
            contact = self.contact_by_vid(match["vid"])
            if contact is None:
                return httpx.Response(404, json={"status": "error", "message": "resource not found"})
            self._apply(contact, self.sent_properties(request))
            return httpx.Response(204)

        match = _UPSERT.match(path)
        if method == "POST" and match:
            email = match["email"]
            contact = self.contacts.get(email)
            props = self.sent_properties(request)
            if contact is None:
                vid = self.add_contact(email, props)
                return httpx.Response(200, json={"vid": int(vid), "isNew": True})
            self._apply(contact, props)
            return httpx.Response(200, json={"vid": int(contact["vid"]), "isNew": False})

        return httpx.Response(404, json={"status": "error", "message": f"no route {method} {path}"})

    @staticmethod
    def _apply(contact: dict[str, Any], props: dict[str, Any]) -> None:
        current = contact["properties"]
        for name, value in props.items():
            if name == "lifecyclestage":
                old = LifecycleStage.parse(current.get(name))
                new = LifecycleStage.parse(value)
                if old is not None and new is not None and new.rank < old.rank:
                    continue
            current[name] = value

    @staticmethod
    def _render(contact: dict[str, Any]) -> dict[str, Any]:
        return {
            "vid": int(contact["vid"]),
            "properties": {
                name: {"value": value} for name, value in contact["properties"].items()
            },
        }


@pytest.fixture
def fake_hubspot() -> FakeHubSpot:
    """Fresh in-memory HubSpot with the default property schema."""
    return FakeHubSpot()


@pytest.fixture
def client(fake_hubspot: FakeHubSpot) -> HubSpotClient:
    """HubSpotClient routed to the fake, retrying without backoff."""
    return HubSpotClient(
        CONTACT_URL,
        TRACK_URL,
        transport=fake_hubspot.transport(),
        wait=wait_none(),
    )


@pytest.fixture
def cache(client: HubSpotClient) -> PropertySchemaCache:
    return PropertySchemaCache(client.get_properties)


@pytest.fixture
def settings() -> IntegrationSettings:
    return IntegrationSettings(portal_id=62515, api_key="demo")


@pytest.fixture
def engine(
    settings: IntegrationSettings,
    client: HubSpotClient,
    cache: PropertySchemaCache,
) -> ContactSyncEngine:
    return ContactSyncEngine(settings, client, cache)
