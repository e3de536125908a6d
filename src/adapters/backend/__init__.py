"""Registration backend adapters - HTTP client and in-memory implementation."""

from .http import BearerTokenAuth, HttpRegistrationBackend
from .memory import InMemoryRegistrationBackend

__all__ = ["BearerTokenAuth", "HttpRegistrationBackend", "InMemoryRegistrationBackend"]
