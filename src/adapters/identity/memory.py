"""
In-memory identity provider - Implements IdentityProvider protocol.

Issues opaque anonymous session ids, one per device. Stands in for a
hosted identity service in demos and tests.
"""

import logging
import secrets
from typing import Optional

logger = logging.getLogger(__name__)


class InMemoryIdentityProvider:
    """
    Implements IdentityProvider protocol in memory.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Once a session exists it is returned by ``current_session_id`` and
    reused by later ``create_anonymous_session`` calls.
    """

    def __init__(self, session_id: Optional[str] = None) -> None:
        self._session_id = session_id
        self.sessions_created = 0

    def current_session_id(self) -> Optional[str]:
        return self._session_id

    async def create_anonymous_session(self, email: str) -> str:
        if self._session_id is None:
            self._session_id = f"anon-{secrets.token_urlsafe(12)}"
            self.sessions_created += 1
            logger.info("[SESSION] Issued %s for %s", self._session_id, email)
        return self._session_id
