"""
In-memory registration backend - Implements RegistrationBackend without I/O.

Used for local demos (``USE_IN_MEMORY_BACKEND=true``) and tests. It keeps
forms, organization attendees and event registrations in dictionaries
and classifies identifier values the same way the real matching service
does:

- every identifier equals the stored value -> the attendee is found
- some identifiers match an attendee but others differ -> InvalidFields
- nothing matches -> NotFound

Values are compared as trimmed, case-insensitive strings.
"""

import logging
import secrets
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Optional, Union

from src.domain.exceptions import NotFoundError, TransportError
from src.domain.identity import (
    Attendee,
    EventRegistered,
    EventUser,
    FoundRegistration,
    IdentityMatchResult,
    InvalidFields,
    NotFound,
    OrgOnly,
)
from src.domain.schema import FormSchema, Value

logger = logging.getLogger(__name__)


def _comparable(value: Optional[Value]) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip().lower()


@dataclass
class InMemoryRegistrationBackend:
    """
    Implements RegistrationBackend protocol in memory.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Organizations are keyed by slug; ``event_orgs`` maps an event id to
    the organization that owns it.
    """

    forms: dict[str, FormSchema] = field(default_factory=dict)
    event_orgs: dict[str, str] = field(default_factory=dict)
    attendees: dict[str, Attendee] = field(default_factory=dict)
    event_users: dict[str, EventUser] = field(default_factory=dict)
    sessions: dict[str, str] = field(default_factory=dict)  # event user id -> session id
    recovery_requests: list[tuple[str, dict[str, Value]]] = field(default_factory=list)

    def add_attendee(
        self,
        org_id: str,
        email: str,
        registration_data: Mapping[str, Value],
        name: Optional[str] = None,
    ) -> Attendee:
        attendee = Attendee(
            id=secrets.token_hex(6),
            organization_id=org_id,
            email=email,
            name=name,
            registration_data=dict(registration_data),
        )
        self.attendees[attendee.id] = attendee
        return attendee

    def registration_for(self, event_id: str, attendee_id: str) -> Optional[EventUser]:
        for event_user in self.event_users.values():
            if event_user.event_id == event_id and event_user.attendee_id == attendee_id:
                return event_user
        return None

    def _org_for_event(self, event_id: str) -> str:
        org_id = self.event_orgs.get(event_id)
        if org_id is None:
            raise TransportError(f"Unknown event {event_id}")
        return org_id

    def _match(
        self, org_id: str, identifiers: Mapping[str, Value]
    ) -> Union[Attendee, InvalidFields, NotFound]:
        wanted = {k: _comparable(v) for k, v in identifiers.items()}
        if not wanted or all(v == "" for v in wanted.values()):
            return NotFound()

        best: Optional[tuple[int, list[str]]] = None
        for attendee in self.attendees.values():
            if attendee.organization_id != org_id:
                continue
            stored = dict(attendee.registration_data)
            if attendee.email:
                stored.setdefault("email", attendee.email)
            matched = [k for k, v in wanted.items() if _comparable(stored.get(k)) == v]
            if len(matched) == len(wanted):
                return attendee
            if matched and (best is None or len(matched) > best[0]):
                best = (len(matched), [k for k in wanted if k not in matched])

        if best is not None:
            return InvalidFields(tuple(best[1]))
        return NotFound("No registration matches these details")

    def _find_by_email(self, org_id: str, email: str) -> Optional[Attendee]:
        target = _comparable(email)
        for attendee in self.attendees.values():
            if attendee.organization_id == org_id and _comparable(attendee.email) == target:
                return attendee
        return None

    async def fetch_registration_form(self, org_slug: str) -> FormSchema:
        schema = self.forms.get(org_slug)
        if schema is None:
            raise NotFoundError(f"Organization {org_slug} has no registration form")
        return schema

    async def check_registration_by_identifiers(
        self, event_id: str, identifiers: Mapping[str, Value]
    ) -> IdentityMatchResult:
        outcome = self._match(self._org_for_event(event_id), identifiers)
        if not isinstance(outcome, Attendee):
            return outcome
        event_user = self.registration_for(event_id, outcome.id)
        if event_user is not None:
            return EventRegistered(outcome, event_user)
        return OrgOnly(outcome)

    async def check_org_registration_by_identifiers(
        self, org_id: str, identifiers: Mapping[str, Value]
    ) -> IdentityMatchResult:
        outcome = self._match(org_id, identifiers)
        return OrgOnly(outcome) if isinstance(outcome, Attendee) else outcome

    async def find_registration(
        self, event_id: str, identifiers: Mapping[str, Value]
    ) -> FoundRegistration:
        outcome = self._match(self._org_for_event(event_id), identifiers)
        if not isinstance(outcome, Attendee):
            return FoundRegistration(found=False)
        return FoundRegistration(
            found=True, attendee=outcome, event_user=self.registration_for(event_id, outcome.id)
        )

    async def upsert_org_attendee(
        self,
        org_id: str,
        email: str,
        values: Mapping[str, Value],
        name: Optional[str] = None,
        session_id: Optional[str] = None,
        attendee_id: Optional[str] = None,
    ) -> Attendee:
        existing = self.attendees.get(attendee_id) if attendee_id else None
        existing = existing or self._find_by_email(org_id, email)
        if existing is None:
            attendee = self.add_attendee(org_id, email, values, name=name)
            logger.info("Created attendee %s in %s", attendee.id, org_id)
            return attendee
        attendee = replace(
            existing, email=email, name=name or existing.name, registration_data=dict(values)
        )
        self.attendees[attendee.id] = attendee
        return attendee

    async def register(self, event_id: str, email: str, values: Mapping[str, Value]) -> EventUser:
        org_id = self._org_for_event(event_id)
        attendee = self._find_by_email(org_id, email)
        if attendee is None:
            attendee = self.add_attendee(org_id, email, values)
        existing = self.registration_for(event_id, attendee.id)
        if existing is not None:
            return existing
        event_user = EventUser(
            id=secrets.token_hex(6), event_id=event_id, attendee_id=attendee.id, email=email
        )
        self.event_users[event_user.id] = event_user
        logger.info("Registered attendee %s for event %s", attendee.id, event_id)
        return event_user

    async def register_with_session(
        self,
        event_id: str,
        email: str,
        values: Mapping[str, Value],
        session_id: str,
        name: Optional[str] = None,
    ) -> EventUser:
        org_id = self._org_for_event(event_id)
        attendee = self._find_by_email(org_id, email)
        if attendee is None:
            self.add_attendee(org_id, email, values, name=name)
        else:
            self.attendees[attendee.id] = replace(
                attendee, registration_data=dict(values), name=name or attendee.name
            )
        event_user = await self.register(event_id, email, values)
        self.sessions[event_user.id] = session_id
        return event_user

    async def update_registration(self, attendee_id: str, values: Mapping[str, Value]) -> Attendee:
        existing = self.attendees.get(attendee_id)
        if existing is None:
            raise TransportError(f"Unknown attendee {attendee_id}")
        attendee = replace(existing, registration_data=dict(values))
        self.attendees[attendee_id] = attendee
        return attendee

    async def associate_session(self, event_id: str, email: str, session_id: str) -> None:
        attendee = self._find_by_email(self._org_for_event(event_id), email)
        event_user = self.registration_for(event_id, attendee.id) if attendee else None
        if event_user is None:
            raise TransportError(f"No registration for {email} in event {event_id}")
        self.sessions[event_user.id] = session_id

    async def recover_access(self, org_id: str, identifiers: Mapping[str, Value]) -> bool:
        self.recovery_requests.append((org_id, dict(identifiers)))
        return True
