"""
Unit tests for HttpRegistrationBackend.

Uses httpx.MockTransport to verify:
- Routes and request bodies
- Bearer token injection
- Wire payload conversion into domain types
- Transport failures mapped to TransportError
"""

import asyncio
import json
from collections.abc import Callable
from typing import Optional

import httpx
import pytest

from src.adapters.backend.http import BearerTokenAuth, HttpRegistrationBackend
from src.config.settings import Settings
from src.domain.exceptions import NotFoundError, TransportError
from src.domain.identity import EventRegistered, InvalidFields, NotFound, OrgOnly
from src.domain.schema import FieldType, Operator, OptionsSource, RuleAction

BASE_URL = "https://backend.test/api"

FORM_JSON = {
    "enabled": True,
    "title": "ACE 2025",
    "fields": [
        {"id": "email", "type": "email", "label": "Email", "order": 1, "required": True, "isIdentifier": True},
        {"id": "pais", "type": "select", "label": "País", "order": 2, "optionsSource": "countries"},
        {
            "id": "indicativo_pais",
            "type": "text",
            "label": "Indicativo",
            "order": 3,
            "hidden": True,
            "autoCalculated": True,
            "dependsOn": "pais",
        },
        {
            "id": "ciudad",
            "type": "select",
            "label": "Ciudad",
            "order": 4,
            "defaultValue": "No aplica",
            "options": [{"value": "Medellín|Antioquia", "label": "Medellín", "parentValue": "Antioquia"}],
            "conditionalLogic": [
                {"action": "show", "conditions": [{"field": "pais", "operator": "equals", "value": "CO"}]},
                {"action": "require", "conditions": []},
            ],
        },
        {"id": "edad", "type": "number", "label": "Edad", "order": 5, "validation": {"min": 18}, "options": None},
    ],
}

ATTENDEE_JSON = {
    "_id": "att-1",
    "organizationId": "org-1",
    "email": "ana@example.com",
    "registrationData": {"email": "ana@example.com", "documento": "123", "tags": ["a", "b"]},
}


def make_backend(
    handler: Callable[[httpx.Request], httpx.Response], token: Optional[str] = "secret"
) -> HttpRegistrationBackend:
    client = httpx.AsyncClient(
        base_url=BASE_URL,
        transport=httpx.MockTransport(handler),
        auth=BearerTokenAuth(lambda: token),
    )
    return HttpRegistrationBackend(client)


class Recorder:
    """Handler that records requests and replies with a fixed response."""

    def __init__(self, status_code: int = 200, body: Optional[object] = None) -> None:
        self.status_code = status_code
        self.body = body
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.body is None:
            return httpx.Response(self.status_code)
        return httpx.Response(self.status_code, json=self.body)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self) -> dict:
        return json.loads(self.last.content)


class TestFetchRegistrationForm:
    """Tests for GET /orgs/slug/{slug}/registration-form."""

    def test_parses_camel_case_form(self) -> None:
        recorder = Recorder(body=FORM_JSON)
        backend = make_backend(recorder)

        schema = asyncio.run(backend.fetch_registration_form("acme"))

        assert recorder.last.method == "GET"
        assert recorder.last.url.path == "/api/orgs/slug/acme/registration-form"
        assert schema.title == "ACE 2025"
        dial = schema.get("indicativo_pais")
        assert dial.hidden and dial.auto_calculated and dial.depends_on == "pais"
        assert schema.get("pais").options_source == OptionsSource.COUNTRIES
        ciudad = schema.get("ciudad")
        assert ciudad.default_value == "No aplica"
        assert ciudad.options[0].parent_value == "Antioquia"
        assert len(ciudad.conditional_logic) == 1
        assert ciudad.conditional_logic[0].action == RuleAction.SHOW
        assert ciudad.conditional_logic[0].conditions[0].operator == Operator.EQUALS
        assert schema.get("edad").type == FieldType.NUMBER
        assert schema.get("edad").validation.min == 18
        assert schema.identifier_fields[0].id == "email"

    def test_sends_bearer_token(self) -> None:
        recorder = Recorder(body=FORM_JSON)
        asyncio.run(make_backend(recorder).fetch_registration_form("acme"))
        assert recorder.last.headers["Authorization"] == "Bearer secret"

    def test_no_token_no_header(self) -> None:
        recorder = Recorder(body=FORM_JSON)
        asyncio.run(make_backend(recorder, token=None).fetch_registration_form("acme"))
        assert "Authorization" not in recorder.last.headers

    def test_unwraps_registration_form_key(self) -> None:
        recorder = Recorder(body={"registrationForm": FORM_JSON})
        schema = asyncio.run(make_backend(recorder).fetch_registration_form("acme"))
        assert len(schema.fields) == 5

    def test_empty_body_is_not_found(self) -> None:
        with pytest.raises(NotFoundError):
            asyncio.run(make_backend(Recorder()).fetch_registration_form("acme"))

    def test_malformed_form_is_transport_error(self) -> None:
        recorder = Recorder(body={"fields": [{"id": "x", "type": "hologram"}]})
        with pytest.raises(TransportError):
            asyncio.run(make_backend(recorder).fetch_registration_form("acme"))


class TestIdentifierChecks:
    """Tests for the matching service outcomes."""

    def test_event_registered(self) -> None:
        recorder = Recorder(
            body={
                "isRegistered": True,
                "orgAttendee": ATTENDEE_JSON,
                "eventUser": {"_id": "eu-1", "eventId": "evt-1", "attendeeId": "att-1"},
            }
        )
        backend = make_backend(recorder)

        result = asyncio.run(backend.check_registration_by_identifiers("evt-1", {"documento": "123"}))

        assert recorder.last.url.path == "/api/events/evt-1/check-registration-by-identifiers"
        assert recorder.last_json() == {"identifierFields": {"documento": "123"}}
        assert isinstance(result, EventRegistered)
        assert result.attendee.id == "att-1"
        assert result.event_user.id == "eu-1"
        assert result.attendee.registration_data == {"email": "ana@example.com", "documento": "123"}

    def test_org_only(self) -> None:
        recorder = Recorder(body={"isRegistered": False, "orgAttendee": ATTENDEE_JSON})
        result = asyncio.run(make_backend(recorder).check_registration_by_identifiers("evt-1", {}))
        assert isinstance(result, OrgOnly)
        assert result.attendee.organization_id == "org-1"

    def test_invalid_fields(self) -> None:
        recorder = Recorder(body={"status": "INVALID_FIELDS", "mismatched": ["email"]})
        result = asyncio.run(make_backend(recorder).check_registration_by_identifiers("evt-1", {}))
        assert result == InvalidFields(("email",))

    def test_not_found(self) -> None:
        recorder = Recorder(body={"status": "USER_NOT_FOUND", "message": "No match"})
        result = asyncio.run(make_backend(recorder).check_registration_by_identifiers("evt-1", {}))
        assert result == NotFound("No match")

    def test_org_scope(self) -> None:
        recorder = Recorder(body={"found": True, "orgAttendee": ATTENDEE_JSON})
        result = asyncio.run(
            make_backend(recorder).check_org_registration_by_identifiers("org-1", {"documento": "123"})
        )
        assert recorder.last.url.path == "/api/events/org/org-1/check-registration-by-identifiers"
        assert recorder.last_json() == {"identifierFields": {"documento": "123"}}
        assert isinstance(result, OrgOnly)

    def test_org_scope_invalid_fields(self) -> None:
        recorder = Recorder(body={"found": False, "reason": "INVALID_FIELDS", "mismatched": ["documento"]})
        result = asyncio.run(make_backend(recorder).check_org_registration_by_identifiers("org-1", {}))
        assert result == InvalidFields(("documento",))

    def test_find_registration(self) -> None:
        recorder = Recorder(body={"found": True, "attendee": ATTENDEE_JSON, "eventUser": None})
        found = asyncio.run(make_backend(recorder).find_registration("evt-1", {"documento": "123"}))
        assert recorder.last_json() == {"eventId": "evt-1", "identifiers": {"documento": "123"}}
        assert found.found and not found.is_registered


class TestRegistrationCalls:
    """Tests for register/update/associate/recover routes."""

    def test_register_with_session(self) -> None:
        recorder = Recorder(
            status_code=201,
            body={"eventUser": {"_id": "eu-2", "eventId": "evt-1", "attendeeId": "att-1"}},
        )
        event_user = asyncio.run(
            make_backend(recorder).register_with_session("evt-1", "ana@example.com", {"a": 1}, "sess-1")
        )
        assert recorder.last.url.path == "/api/events/evt-1/register-with-firebase"
        assert recorder.last_json() == {
            "email": "ana@example.com",
            "formData": {"a": 1},
            "firebaseUID": "sess-1",
        }
        assert event_user.id == "eu-2"

    def test_register_with_session_sends_name(self) -> None:
        recorder = Recorder(body={"eventUser": {"_id": "eu-2", "eventId": "evt-1"}})
        asyncio.run(
            make_backend(recorder).register_with_session(
                "evt-1", "ana@example.com", {"nombre": "Ana"}, "sess-1", name="Ana"
            )
        )
        assert recorder.last_json() == {
            "email": "ana@example.com",
            "name": "Ana",
            "formData": {"nombre": "Ana"},
            "firebaseUID": "sess-1",
        }

    def test_register(self) -> None:
        recorder = Recorder(body={"_id": "eu-3", "eventId": "evt-1"})
        event_user = asyncio.run(make_backend(recorder).register("evt-1", "ana@example.com", {}))
        assert recorder.last.url.path == "/api/events/evt-1/register"
        assert event_user.id == "eu-3"

    def test_update_registration(self) -> None:
        recorder = Recorder(body={"orgAttendee": ATTENDEE_JSON})
        attendee = asyncio.run(make_backend(recorder).update_registration("att-1", {"nombre": "Ana"}))
        assert recorder.last.method == "PATCH"
        assert recorder.last_json() == {"attendeeId": "att-1", "formData": {"nombre": "Ana"}}
        assert attendee.id == "att-1"

    def test_associate_session(self) -> None:
        recorder = Recorder(body={"success": True})
        asyncio.run(make_backend(recorder).associate_session("evt-1", "ana@example.com", "sess-1"))
        assert recorder.last.url.path == "/api/events/evt-1/associate-firebase-uid"
        assert recorder.last_json() == {"email": "ana@example.com", "firebaseUID": "sess-1"}

    def test_upsert_org_attendee(self) -> None:
        recorder = Recorder(body={"orgAttendee": ATTENDEE_JSON})
        asyncio.run(
            make_backend(recorder).upsert_org_attendee(
                "org-1", "ana@example.com", {"nombre": "Ana"}, name="Ana", session_id="sess-1"
            )
        )
        assert recorder.last.url.path == "/api/org-attendees/advanced-register"
        assert recorder.last_json() == {
            "organizationId": "org-1",
            "email": "ana@example.com",
            "formData": {"nombre": "Ana"},
            "name": "Ana",
            "firebaseUID": "sess-1",
        }

    def test_recover_access(self) -> None:
        recorder = Recorder(body={"sent": False})
        sent = asyncio.run(make_backend(recorder).recover_access("org-1", {"documento": "123"}))
        assert recorder.last.url.path == "/api/org-attendees/recover-access"
        assert recorder.last_json() == {
            "organizationId": "org-1",
            "identifierFields": {"documento": "123"},
        }
        assert sent is False


class TestTransportErrors:
    """Every transport failure surfaces as TransportError."""

    @pytest.mark.parametrize("status_code", [400, 404, 500, 503])
    def test_error_status(self, status_code: int) -> None:
        backend = make_backend(Recorder(status_code=status_code, body={"message": "nope"}))
        with pytest.raises(TransportError):
            asyncio.run(backend.check_registration_by_identifiers("evt-1", {}))

    def test_connection_error(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError) as exc_info:
            asyncio.run(make_backend(refuse).fetch_registration_form("acme"))
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    def test_invalid_json(self) -> None:
        def garbage(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>")

        with pytest.raises(TransportError):
            asyncio.run(make_backend(garbage).fetch_registration_form("acme"))


class TestFromSettings:
    def test_client_uses_settings(self) -> None:
        settings = Settings(backend_base_url=BASE_URL, backend_api_token="tok", backend_timeout_seconds=3)
        backend = HttpRegistrationBackend.from_settings(settings)
        try:
            assert str(backend._client.base_url) == BASE_URL + "/"
            assert backend._client.timeout.read == 3
        finally:
            asyncio.run(backend.aclose())
