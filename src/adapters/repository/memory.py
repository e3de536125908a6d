"""
In-memory flow repository - Live registration flows served by the API.

Each flow is one visitor's ``RegistrationFlowController`` plus the
notifier collecting its banners. Session binders are kept per device
so that every flow started from the same device shares one anonymous
session and one single-flight guard.

Eviction
========

Flows idle for longer than ``ttl_seconds`` are dropped whenever a new
flow is added. If the repository is still at ``max_flows``, finished
flows (COMPLETED or DISABLED) go first, oldest first, then the least
recently used of the rest. A device's binder is dropped together with
its last flow.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from src.adapters.identity.memory import InMemoryIdentityProvider
from src.adapters.notify.console import ConsoleNotifier
from src.domain.exceptions import NotFoundError
from src.domain.flow import FlowState
from src.domain.ports import IdentityProvider
from src.domain.registration import RegistrationFlowController
from src.domain.session import SessionBinder

logger = logging.getLogger(__name__)

FINISHED_STATES = frozenset({FlowState.COMPLETED, FlowState.DISABLED})


@dataclass
class StoredFlow:
    controller: RegistrationFlowController
    notifier: ConsoleNotifier
    last_seen: float = field(default=0.0, compare=False)

    @property
    def finished(self) -> bool:
        return self.controller.state in FINISHED_STATES


class InMemoryFlowRepository:
    """Flows by id and session binders by device id."""

    def __init__(
        self,
        identity_provider_factory: Callable[[], IdentityProvider] = InMemoryIdentityProvider,
        max_flows: int = 1000,
        ttl_seconds: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_flows < 1:
            raise ValueError("max_flows must be at least 1")
        self._identity_provider_factory = identity_provider_factory
        self._max_flows = max_flows
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._flows: dict[str, StoredFlow] = {}
        self._binders: dict[str, SessionBinder] = {}

    def binder_for(self, device_id: str) -> SessionBinder:
        binder = self._binders.get(device_id)
        if binder is None:
            binder = SessionBinder(self._identity_provider_factory(), device_id=device_id)
            self._binders[device_id] = binder
        return binder

    def add(self, controller: RegistrationFlowController, notifier: ConsoleNotifier) -> StoredFlow:
        self.evict()
        stored = StoredFlow(controller, notifier, last_seen=self._clock())
        self._flows[controller.flow_id] = stored
        logger.info("Flow %s started for %s", controller.flow_id, controller.org_slug)
        return stored

    def get(self, flow_id: str) -> StoredFlow:
        """
        Raises:
            NotFoundError: no flow with this id, or it was evicted
        """
        stored = self._flows.get(flow_id)
        if stored is None:
            raise NotFoundError(f"Flow {flow_id} not found")
        stored.last_seen = self._clock()
        return stored

    def remove(self, flow_id: str) -> None:
        stored = self._flows.pop(flow_id, None)
        if stored is None:
            return
        device_id = stored.controller.session_binder.device_id
        if not any(s.controller.session_binder.device_id == device_id for s in self._flows.values()):
            self._binders.pop(device_id, None)

    def evict(self) -> int:
        """
        Drop expired flows, then make room for one more flow.

        Returns:
            Number of flows removed
        """
        now = self._clock()
        expired = [
            flow_id
            for flow_id, stored in self._flows.items()
            if now - stored.last_seen > self._ttl_seconds
        ]
        for flow_id in expired:
            self.remove(flow_id)

        overflow = len(self._flows) - self._max_flows + 1
        victims: list[str] = []
        if overflow > 0:
            by_age = sorted(self._flows.items(), key=lambda item: (not item[1].finished, item[1].last_seen))
            victims = [flow_id for flow_id, _ in by_age[:overflow]]
            for flow_id in victims:
                self.remove(flow_id)

        removed = len(expired) + len(victims)
        if removed:
            logger.info("Evicted %d flows (%d expired), %d live", removed, len(expired), len(self._flows))
        return removed

    def __len__(self) -> int:
        return len(self._flows)
