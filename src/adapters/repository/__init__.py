"""Repository adapters - Storage for live registration flows."""

from .memory import InMemoryFlowRepository, StoredFlow

__all__ = ["InMemoryFlowRepository", "StoredFlow"]
