"""
HTTP registration backend adapter - Implements RegistrationBackend over httpx.

Every call goes through ``_request``, which attaches the bearer token,
raises on non-2xx responses and converts any httpx failure (connect,
timeout, HTTP status) or malformed body into the domain's
``TransportError``. "No match" answers from the matching service are
ordinary 200 responses and never become errors.
"""

import logging
from collections.abc import Generator, Mapping
from typing import Any, Callable, Optional

import httpx
from pydantic import BaseModel, ValidationError

from src.config.settings import Settings
from src.domain.exceptions import NotFoundError, TransportError
from src.domain.identity import Attendee, EventUser, FoundRegistration, IdentityMatchResult
from src.domain.schema import FormSchema, Value

from .payloads import (
    AttendeePayload,
    EventCheckPayload,
    EventUserPayload,
    FormSchemaPayload,
    FoundRegistrationPayload,
    OrgCheckPayload,
)

logger = logging.getLogger(__name__)


class BearerTokenAuth(httpx.Auth):
    """Adds ``Authorization: Bearer <token>`` when the provider returns a token."""

    def __init__(self, token_provider: Callable[[], Optional[str]]) -> None:
        self._token_provider = token_provider

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        token = self._token_provider()
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        yield request


class HttpRegistrationBackend:
    """
    Implements RegistrationBackend protocol against the registration REST API.

    Uses structural subtyping - no explicit inheritance from Protocol.
    The caller owns the ``httpx.AsyncClient`` lifecycle (see ``aclose``).
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpRegistrationBackend":
        token = settings.backend_api_token
        client = httpx.AsyncClient(
            base_url=settings.backend_base_url,
            timeout=settings.backend_timeout_seconds,
            auth=BearerTokenAuth(lambda: token),
        )
        return cls(client)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, json: Optional[Any] = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("Backend %s %s returned %d", method, path, e.response.status_code)
            raise TransportError(
                f"{method} {path} failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error("Backend %s %s failed: %s", method, path, e)
            raise TransportError(f"{method} {path} failed: {e}") from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"{method} {path} returned invalid JSON") from e

    @staticmethod
    def _parse(model: type[BaseModel], body: Any, what: str) -> Any:
        try:
            return model.model_validate(body or {})
        except ValidationError as e:
            logger.error("Unexpected %s payload: %s", what, e)
            raise TransportError(f"Unexpected {what} payload") from e

    async def fetch_registration_form(self, org_slug: str) -> FormSchema:
        body = await self._request("GET", f"/orgs/slug/{org_slug}/registration-form")
        if not body:
            raise NotFoundError(f"Organization {org_slug} has no registration form")
        # some deployments wrap the form in {"registrationForm": {...}}
        if isinstance(body, dict) and "registrationForm" in body:
            body = body["registrationForm"]
        payload: FormSchemaPayload = self._parse(FormSchemaPayload, body, "registration form")
        return payload.to_domain()

    async def check_registration_by_identifiers(
        self, event_id: str, identifiers: Mapping[str, Value]
    ) -> IdentityMatchResult:
        body = await self._request(
            "POST",
            f"/events/{event_id}/check-registration-by-identifiers",
            json={"identifierFields": dict(identifiers)},
        )
        payload: EventCheckPayload = self._parse(EventCheckPayload, body, "registration check")
        return payload.to_result()

    async def check_org_registration_by_identifiers(
        self, org_id: str, identifiers: Mapping[str, Value]
    ) -> IdentityMatchResult:
        body = await self._request(
            "POST",
            f"/events/org/{org_id}/check-registration-by-identifiers",
            json={"identifierFields": dict(identifiers)},
        )
        payload: OrgCheckPayload = self._parse(OrgCheckPayload, body, "organization check")
        return payload.to_result()

    async def find_registration(
        self, event_id: str, identifiers: Mapping[str, Value]
    ) -> FoundRegistration:
        body = await self._request(
            "POST",
            "/events/find-registration",
            json={"eventId": event_id, "identifiers": dict(identifiers)},
        )
        payload: FoundRegistrationPayload = self._parse(
            FoundRegistrationPayload, body, "registration lookup"
        )
        return payload.to_domain()

    async def upsert_org_attendee(
        self,
        org_id: str,
        email: str,
        values: Mapping[str, Value],
        name: Optional[str] = None,
        session_id: Optional[str] = None,
        attendee_id: Optional[str] = None,
    ) -> Attendee:
        request: dict[str, Any] = {
            "organizationId": org_id,
            "email": email,
            "formData": dict(values),
        }
        if name:
            request["name"] = name
        if session_id:
            request["firebaseUID"] = session_id
        if attendee_id:
            request["attendeeId"] = attendee_id
        body = await self._request("POST", "/org-attendees/advanced-register", json=request)
        if isinstance(body, dict) and "orgAttendee" in body:
            body = body["orgAttendee"]
        payload: AttendeePayload = self._parse(AttendeePayload, body, "attendee")
        return payload.to_domain()

    async def register(self, event_id: str, email: str, values: Mapping[str, Value]) -> EventUser:
        body = await self._request(
            "POST",
            f"/events/{event_id}/register",
            json={"email": email, "formData": dict(values)},
        )
        return self._event_user(body)

    async def register_with_session(
        self,
        event_id: str,
        email: str,
        values: Mapping[str, Value],
        session_id: str,
        name: Optional[str] = None,
    ) -> EventUser:
        request: dict[str, Any] = {"email": email, "formData": dict(values), "firebaseUID": session_id}
        if name:
            request["name"] = name
        body = await self._request(
            "POST", f"/events/{event_id}/register-with-firebase", json=request
        )
        return self._event_user(body)

    async def update_registration(self, attendee_id: str, values: Mapping[str, Value]) -> Attendee:
        body = await self._request(
            "PATCH",
            "/events/update-registration",
            json={"attendeeId": attendee_id, "formData": dict(values)},
        )
        if isinstance(body, dict) and "orgAttendee" in body:
            body = body["orgAttendee"]
        payload: AttendeePayload = self._parse(AttendeePayload, body, "attendee")
        return payload.to_domain()

    async def associate_session(self, event_id: str, email: str, session_id: str) -> None:
        await self._request(
            "POST",
            f"/events/{event_id}/associate-firebase-uid",
            json={"email": email, "firebaseUID": session_id},
        )

    async def recover_access(self, org_id: str, identifiers: Mapping[str, Value]) -> bool:
        body = await self._request(
            "POST",
            "/org-attendees/recover-access",
            json={"organizationId": org_id, "identifierFields": dict(identifiers)},
        )
        return bool(body.get("sent", True)) if isinstance(body, dict) else True

    def _event_user(self, body: Any) -> EventUser:
        if isinstance(body, dict) and "eventUser" in body:
            body = body["eventUser"]
        payload: EventUserPayload = self._parse(EventUserPayload, body, "event registration")
        return payload.to_domain()
