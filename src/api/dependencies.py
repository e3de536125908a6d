"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting the registration
backend, the flow repository and the visitor's device id into routes.
"""

from fastapi import Depends, Header, HTTPException, Request, status

from src.adapters.repository.memory import InMemoryFlowRepository, StoredFlow
from src.domain.exceptions import NotFoundError
from src.domain.ports import RegistrationBackend


def get_backend(request: Request) -> RegistrationBackend:
    """
    Get registration backend from app state.

    The backend is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.backend


def get_flow_repository(request: Request) -> InMemoryFlowRepository:
    """Get the live flow repository from app state."""
    return request.app.state.flows


def get_device_id(x_device_id: str = Header("anonymous", alias="X-Device-Id")) -> str:
    """
    Identify the visitor's device.

    All flows started with the same device id share one anonymous session.
    """
    return x_device_id.strip() or "anonymous"


def get_stored_flow(
    flow_id: str,
    flows: InMemoryFlowRepository = Depends(get_flow_repository),
) -> StoredFlow:
    """Look up a flow by path id; 404 when unknown."""
    try:
        return flows.get(flow_id)
    except NotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Flow not found",
        ) from None
