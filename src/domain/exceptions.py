"""
Domain exceptions - Semantic error types for the registration flow.

This module defines domain-specific exceptions that communicate
configuration problems, user-recoverable failures and transport
failures without leaking infrastructure details.
"""


class RegistrationError(Exception):
    """Base class for registration domain errors."""

    pass


class ConfigurationError(RegistrationError):
    """Form schema is inconsistent (unknown reference, dependency cycle)."""

    pass


class FormValidationError(RegistrationError):
    """Submitted values failed field validation."""

    def __init__(self, errors: dict[str, str]) -> None:
        super().__init__(f"{len(errors)} field(s) failed validation")
        self.errors = dict(errors)


class MismatchError(RegistrationError):
    """Identifier values partially matched an attendee but some disagree."""

    def __init__(self, mismatched: list[str]) -> None:
        super().__init__("Identifier values do not match: " + ", ".join(mismatched))
        self.mismatched = list(mismatched)


class NotFoundError(RegistrationError):
    """No attendee matches the identifiers, or an unknown flow was requested."""

    pass


class TransportError(RegistrationError):
    """A backend or identity-provider call failed. Retryable."""

    pass


class InvalidTransition(RegistrationError):
    """The requested flow event is not allowed from the current state."""

    def __init__(self, state: str, event: str) -> None:
        super().__init__(f"Event {event!r} is not allowed in state {state!r}")
        self.state = state
        self.event = event


class FlowBusy(RegistrationError):
    """A verify/continue/submit call is already in flight for this flow."""

    pass
