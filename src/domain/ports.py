"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure: the registration backend (including the identifier
matching service), the identity provider that issues anonymous sessions,
and the notifier that surfaces banners to the visitor. Adapters implement
these protocols structurally.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Optional, Protocol

from .identity import Attendee, EventUser, FoundRegistration, IdentityMatchResult
from .schema import FormSchema, Value


class NoticeLevel(str, Enum):
    """Severity of a visitor-facing notice."""

    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class IdentityResolver(Protocol):
    """Port interface for the backend identifier-matching service."""

    async def check_registration_by_identifiers(
        self, event_id: str, identifiers: Mapping[str, Value]
    ) -> IdentityMatchResult:
        """
        Classify identifier values against the event's organization.

        Return values by scenario:
        - NotFound: no attendee matches any identifier
        - InvalidFields: an attendee matches some identifiers but others
          disagree; ``mismatched`` lists the disagreeing field ids
        - OrgOnly: attendee exists but is not registered for the event
        - EventRegistered: attendee is registered for the event

        Raises:
            TransportError: only for transport-level failures, never for
                "no match"
        """
        ...


class RegistrationBackend(IdentityResolver, Protocol):
    """Port interface for organization/event/attendee persistence."""

    async def fetch_registration_form(self, org_slug: str) -> FormSchema:
        """Load the organization's registration form."""
        ...

    async def check_org_registration_by_identifiers(
        self, org_id: str, identifiers: Mapping[str, Value]
    ) -> IdentityMatchResult:
        """Organization-scoped variant: never returns EventRegistered."""
        ...

    async def find_registration(
        self, event_id: str, identifiers: Mapping[str, Value]
    ) -> FoundRegistration:
        """Look up an attendee and its event registration, if any."""
        ...

    async def upsert_org_attendee(
        self,
        org_id: str,
        email: str,
        values: Mapping[str, Value],
        name: Optional[str] = None,
        session_id: Optional[str] = None,
        attendee_id: Optional[str] = None,
    ) -> Attendee:
        """Create the organization attendee, or update it when ``attendee_id`` is given."""
        ...

    async def register(self, event_id: str, email: str, values: Mapping[str, Value]) -> EventUser:
        """Create attendee (if needed) and event registration."""
        ...

    async def register_with_session(
        self,
        event_id: str,
        email: str,
        values: Mapping[str, Value],
        session_id: str,
        name: Optional[str] = None,
    ) -> EventUser:
        """Like ``register`` but also links the anonymous session id."""
        ...

    async def update_registration(self, attendee_id: str, values: Mapping[str, Value]) -> Attendee:
        """Replace an attendee's registration data."""
        ...

    async def associate_session(self, event_id: str, email: str, session_id: str) -> None:
        """Link a session id to an existing event registration."""
        ...

    async def recover_access(self, org_id: str, identifiers: Mapping[str, Value]) -> bool:
        """Ask the backend to email a reminder of the registered data."""
        ...


class IdentityProvider(Protocol):
    """Port interface for anonymous sessions on the visitor's device."""

    def current_session_id(self) -> Optional[str]:
        """Session id already present on the device, if any."""
        ...

    async def create_anonymous_session(self, email: str) -> str:
        """Create (or reuse) an anonymous session and return its id."""
        ...


class Notifier(Protocol):
    """Port interface for visitor-facing notices (banners)."""

    def notify(self, level: NoticeLevel, title: str, message: str) -> None:
        """Show a notice to the visitor."""
        ...
