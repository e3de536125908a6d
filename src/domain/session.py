"""
Session binder - Maps a resolved email to one anonymous session per device.

A device keeps a single anonymous session: if the identity provider
already has one, it is reused and associated with the email; otherwise
one is created. Concurrent binds for the same ``(device, email)`` share a
single in-flight creation call, so a double click on "continue" never
creates two sessions.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from .ports import IdentityProvider

logger = logging.getLogger(__name__)


@dataclass
class SessionBinder:
    """Single-flight anonymous session binding for one device."""

    identity_provider: IdentityProvider
    device_id: str = "default"
    _inflight: dict[tuple[str, str], "asyncio.Future[str]"] = field(
        default_factory=dict, init=False, repr=False
    )
    _emails: dict[str, str] = field(default_factory=dict, init=False, repr=False)

    def email_for(self, session_id: str) -> Optional[str]:
        """Email last associated with ``session_id`` on this device."""
        return self._emails.get(session_id)

    async def bind_session(self, email: str) -> str:
        """
        Return the device's session id, associated with ``email``.

        Args:
            email: Resolved attendee email

        Returns:
            Anonymous session id

        Raises:
            TransportError: session creation failed (nothing is cached,
                so a retry issues a new call)
        """
        normalized = email.strip().lower()
        key = (self.device_id, normalized)

        existing = self.identity_provider.current_session_id()
        if existing:
            self._associate(existing, normalized)
            return existing

        pending = self._inflight.get(key)
        if pending is not None:
            logger.info("Joining in-flight session creation for %s on %s", normalized, self.device_id)
            return await asyncio.shield(pending)

        task = asyncio.ensure_future(self.identity_provider.create_anonymous_session(normalized))
        self._inflight[key] = task
        try:
            session_id = await asyncio.shield(task)
        finally:
            self._inflight.pop(key, None)

        logger.info("Created anonymous session %s for %s on %s", session_id, normalized, self.device_id)
        self._associate(session_id, normalized)
        return session_id

    def _associate(self, session_id: str, email: str) -> None:
        self._emails[session_id] = email
