"""
Domain layer - Business logic with no web, wire-format or HTTP client imports.

This package contains the form rule engine (visibility, derived values,
validation) and the event registration flow. It defines its own port
interfaces for infrastructure abstraction, ensuring true hexagonal
architecture decoupling.
"""

from .exceptions import (
    ConfigurationError,
    FlowBusy,
    FormValidationError,
    InvalidTransition,
    MismatchError,
    NotFoundError,
    RegistrationError,
    TransportError,
)
from .flow import FlowEvent, FlowState
from .form_session import FormSession
from .identity import (
    Attendee,
    EventRegistered,
    EventUser,
    FoundRegistration,
    IdentityMatchResult,
    InvalidFields,
    NotFound,
    OrgOnly,
)
from .ports import IdentityProvider, IdentityResolver, NoticeLevel, Notifier, RegistrationBackend
from .registration import RegistrationFlowController
from .schema import FieldDefinition, FormSchema
from .session import SessionBinder

__all__ = [
    "Attendee",
    "ConfigurationError",
    "EventRegistered",
    "EventUser",
    "FieldDefinition",
    "FlowBusy",
    "FlowEvent",
    "FlowState",
    "FormSchema",
    "FormSession",
    "FormValidationError",
    "FoundRegistration",
    "IdentityMatchResult",
    "IdentityProvider",
    "IdentityResolver",
    "InvalidFields",
    "InvalidTransition",
    "MismatchError",
    "NotFound",
    "NotFoundError",
    "NoticeLevel",
    "Notifier",
    "OrgOnly",
    "RegistrationBackend",
    "RegistrationError",
    "RegistrationFlowController",
    "SessionBinder",
    "TransportError",
]
