"""
Shared fixtures for adversarial tests.

Provides controllers wired to mocked ports whose calls can be held open,
so tests can act while a backend or session call is still in flight.
"""

import asyncio
from collections.abc import Callable
from typing import Any, Optional
from unittest.mock import Mock

import pytest

from src.adapters.notify.console import ConsoleNotifier
from src.domain.registration import RegistrationFlowController
from src.domain.session import SessionBinder

# Module-level marker for all adversarial tests
pytestmark = pytest.mark.adversarial

ORG = "acme"
EVENT = "evt-1"


def _held(result: Any) -> tuple[Callable[..., Any], Callable[[], None]]:
    """
    Build an async side effect that blocks until released.

    Returns:
        (side_effect, release) - ``release`` lets every pending and
        future call return ``result``, or raise it when it is an exception
    """
    gate: dict[str, Optional[asyncio.Event]] = {"event": None}

    def _event() -> asyncio.Event:
        if gate["event"] is None:
            gate["event"] = asyncio.Event()
        return gate["event"]

    async def side_effect(*args: Any, **kwargs: Any) -> Any:
        await _event().wait()
        if isinstance(result, Exception):
            raise result
        return result

    def release() -> None:
        _event().set()

    return side_effect, release


@pytest.fixture
def held() -> Callable[[Any], tuple[Callable[..., Any], Callable[[], None]]]:
    """Factory for held async side effects."""
    return _held


@pytest.fixture
def make_controller(
    backend_mock: Mock, identity_provider_mock: Mock
) -> Callable[..., RegistrationFlowController]:
    """Factory for controllers sharing one device's session binder."""
    binder = SessionBinder(identity_provider_mock, device_id="device-1")

    def factory(event_id: Optional[str] = EVENT) -> RegistrationFlowController:
        return RegistrationFlowController(
            backend=backend_mock,
            session_binder=binder,
            notifier=ConsoleNotifier(),
            org_slug=ORG,
            event_id=event_id,
            debounce_seconds=0,
        )

    return factory
