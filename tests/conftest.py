"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- Realistic registration forms (country/city cascade, identifier fields)
- A seeded in-memory registration backend
- Mock factories for the domain ports
"""

from unittest.mock import AsyncMock, Mock

import pytest

from src.adapters.backend.memory import InMemoryRegistrationBackend
from src.domain.identity import Attendee, EventUser
from src.domain.schema import (
    Condition,
    ConditionalRule,
    FieldDefinition,
    FieldOption,
    FieldType,
    FormSchema,
    Operator,
    OptionsSource,
    RuleAction,
)

ORG = "acme"
EVENT = "evt-1"


def cascade_fields() -> tuple[FieldDefinition, ...]:
    """Country select, hidden dial code, Colombia-only city, derived state."""
    return (
        FieldDefinition(
            id="pais",
            type=FieldType.SELECT,
            label="Country",
            order=1,
            required=True,
            options_source=OptionsSource.COUNTRIES,
        ),
        FieldDefinition(
            id="indicativo_pais",
            type=FieldType.TEXT,
            label="Dial code",
            order=2,
            hidden=True,
            auto_calculated=True,
            depends_on="pais",
        ),
        FieldDefinition(
            id="ciudad",
            type=FieldType.SELECT,
            label="City",
            order=3,
            required=True,
            default_value="No aplica",
            options=(
                FieldOption("Medellín|Antioquia", "Medellín", "Antioquia"),
                FieldOption("Cali|Valle del Cauca", "Cali", "Valle del Cauca"),
            ),
            conditional_logic=(
                ConditionalRule(
                    action=RuleAction.SHOW,
                    conditions=(Condition("pais", Operator.EQUALS, "CO"),),
                ),
            ),
        ),
        FieldDefinition(
            id="departamento",
            type=FieldType.TEXT,
            label="State",
            order=4,
            auto_calculated=True,
            depends_on="ciudad",
        ),
    )


@pytest.fixture
def cascade_schema() -> FormSchema:
    """Form with only the location cascade."""
    return FormSchema(fields=cascade_fields())


@pytest.fixture
def registration_schema() -> FormSchema:
    """Registration form with email + document identifiers and a location cascade."""
    return FormSchema(
        title="Acme registration",
        success_message="See you there!",
        fields=(
            FieldDefinition(
                id="email",
                type=FieldType.EMAIL,
                label="Email",
                order=0,
                required=True,
                is_identifier=True,
            ),
            FieldDefinition(
                id="documento",
                type=FieldType.TEXT,
                label="Document",
                order=0,
                required=True,
                is_identifier=True,
            ),
            FieldDefinition(id="nombre", type=FieldType.TEXT, label="Name", order=0, required=True),
            *cascade_fields(),
        ),
    )


@pytest.fixture
def plain_schema() -> FormSchema:
    """Registration form without identifier fields."""
    return FormSchema(
        fields=(
            FieldDefinition(id="email", type=FieldType.EMAIL, label="Email", order=0, required=True),
            FieldDefinition(id="nombre", type=FieldType.TEXT, label="Name", order=1, required=True),
        )
    )


@pytest.fixture
def attendee() -> Attendee:
    return Attendee(
        id="att-1",
        organization_id=ORG,
        email="ana@example.com",
        name="Ana",
        registration_data={
            "email": "ana@example.com",
            "documento": "123",
            "nombre": "Ana",
            "pais": "CO",
            "indicativo_pais": "+57",
            "ciudad": "Medellín|Antioquia",
            "departamento": "Antioquia",
        },
    )


@pytest.fixture
def event_user(attendee: Attendee) -> EventUser:
    return EventUser(id="eu-1", event_id=EVENT, attendee_id=attendee.id, email=attendee.email)


@pytest.fixture
def memory_backend(registration_schema: FormSchema, attendee: Attendee) -> InMemoryRegistrationBackend:
    """In-memory backend with one organization, one event and one attendee."""
    backend = InMemoryRegistrationBackend(
        forms={ORG: registration_schema},
        event_orgs={EVENT: ORG},
    )
    backend.attendees[attendee.id] = attendee
    return backend


@pytest.fixture
def backend_mock(registration_schema: FormSchema) -> Mock:
    """RegistrationBackend port with async methods."""
    backend = Mock()
    backend.fetch_registration_form = AsyncMock(return_value=registration_schema)
    backend.check_registration_by_identifiers = AsyncMock()
    backend.check_org_registration_by_identifiers = AsyncMock()
    backend.find_registration = AsyncMock()
    backend.upsert_org_attendee = AsyncMock()
    backend.register = AsyncMock()
    backend.register_with_session = AsyncMock()
    backend.update_registration = AsyncMock()
    backend.associate_session = AsyncMock(return_value=None)
    backend.recover_access = AsyncMock(return_value=True)
    return backend


@pytest.fixture
def identity_provider_mock() -> Mock:
    """IdentityProvider port without an existing session."""
    provider = Mock()
    provider.current_session_id.return_value = None
    provider.create_anonymous_session = AsyncMock(return_value="sess-1")
    return provider
