"""
Unit tests for FormSession.

Tests the value set lifecycle of one form:
- Initial values from existing data and defaults
- Debounced recomputation after edits
- Submission snapshot
"""

import asyncio

import pytest

from src.domain.exceptions import FormValidationError
from src.domain.form_session import FormSession, initial_values
from src.domain.schema import FormSchema


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestInitialValues:
    """Tests for initial_values."""

    def test_existing_data_wins_over_default(self, cascade_schema: FormSchema) -> None:
        values = initial_values(cascade_schema, {"ciudad": "Cali|Valle del Cauca"})
        assert values["ciudad"] == "Cali|Valle del Cauca"

    def test_session_converges_existing_data(self, cascade_schema: FormSchema) -> None:
        session = FormSession(cascade_schema, {"pais": "CO", "ciudad": "Cali|Valle del Cauca"})
        assert session.values["indicativo_pais"] == "+57"
        assert session.values["departamento"] == "Valle del Cauca"


class TestEdits:
    """Tests for set_value and debounced recomputation."""

    def test_recompute_waits_for_quiet_window(self, cascade_schema: FormSchema) -> None:
        clock = FakeClock()
        session = FormSession(cascade_schema, debounce_seconds=0.15, clock=clock)

        session.set_value("pais", "CO")
        assert session.tick() == {}
        assert session.values["indicativo_pais"] == ""

        clock.now += 0.2
        assert session.tick() == {"indicativo_pais": "+57", "ciudad": ""}

    def test_burst_of_edits_converges_once(self, cascade_schema: FormSchema) -> None:
        clock = FakeClock()
        session = FormSession(cascade_schema, debounce_seconds=0.15, clock=clock)

        for pais in ("C", "CO", "US", "CO"):
            session.set_value("pais", pais)
            clock.now += 0.05
        assert session.tick() == {}

        clock.now += 0.2
        session.tick()
        assert session.values["indicativo_pais"] == "+57"
        assert session.queue.requests == 4
        assert not session.queue.pending

    def test_flush_runs_immediately(self, cascade_schema: FormSchema) -> None:
        session = FormSession(cascade_schema, debounce_seconds=10)
        session.set_value("pais", "US")
        assert session.flush() == {"indicativo_pais": "+1"}

    def test_settle_waits_and_recomputes(self, cascade_schema: FormSchema) -> None:
        session = FormSession(cascade_schema, debounce_seconds=0.01)
        session.set_value("pais", "CO")
        update = asyncio.run(session.settle())
        assert update["indicativo_pais"] == "+57"

    def test_auto_calculated_field_is_not_editable(self, cascade_schema: FormSchema) -> None:
        session = FormSession(cascade_schema)
        assert session.set_value("indicativo_pais", "+99") is False
        assert session.values["indicativo_pais"] == ""

    def test_unknown_field_is_rejected(self, cascade_schema: FormSchema) -> None:
        session = FormSession(cascade_schema)
        with pytest.raises(FormValidationError) as exc_info:
            session.set_values({"pais": "CO", "ghost": "x"})
        assert exc_info.value.errors == {"ghost": "Unknown field"}
        assert session.values["pais"] == ""

    def test_values_is_a_copy(self, cascade_schema: FormSchema) -> None:
        session = FormSession(cascade_schema)
        session.values["pais"] = "CO"
        assert session.values["pais"] == ""


class TestVisibility:
    def test_visible_fields_follow_values(self, cascade_schema: FormSchema) -> None:
        session = FormSession(cascade_schema, debounce_seconds=0)
        assert [f.id for f in session.visible_fields()] == ["pais"]

        session.set_value("pais", "CO")
        session.flush()
        assert [f.id for f in session.visible_fields()] == ["pais", "ciudad"]

        session.set_value("ciudad", "Cali|Valle del Cauca")
        session.flush()
        assert [f.id for f in session.visible_fields()] == ["pais", "ciudad", "departamento"]

    def test_options(self, cascade_schema: FormSchema) -> None:
        session = FormSession(cascade_schema)
        assert [o.value for o in session.options("ciudad")] == ["Medellín|Antioquia", "Cali|Valle del Cauca"]
        assert session.options("ghost") == ()


class TestSubmission:
    """Tests for the snapshot sent on submit."""

    def test_invalid_values_raise_with_field_errors(self, registration_schema: FormSchema) -> None:
        session = FormSession(registration_schema)
        with pytest.raises(FormValidationError) as exc_info:
            session.submission()
        assert set(exc_info.value.errors) == {"email", "documento", "nombre", "pais"}

    def test_hidden_city_keeps_default(self, registration_schema: FormSchema) -> None:
        session = FormSession(
            registration_schema,
            {"email": "ana@example.com", "documento": "1", "nombre": "Ana", "pais": "US"},
        )
        snapshot = session.submission()
        assert snapshot["ciudad"] == "No aplica"
        assert snapshot["indicativo_pais"] == "+1"
        assert snapshot["departamento"] == ""

    def test_submission_flushes_pending_edits(self, registration_schema: FormSchema) -> None:
        session = FormSession(
            registration_schema,
            {"email": "ana@example.com", "documento": "1", "nombre": "Ana", "pais": "US"},
            debounce_seconds=10,
        )
        session.set_value("pais", "CO")
        session.set_value("ciudad", "Medellín|Antioquia")

        snapshot = session.submission()

        assert snapshot["indicativo_pais"] == "+57"
        assert snapshot["departamento"] == "Antioquia"

    def test_email_and_name(self, registration_schema: FormSchema) -> None:
        session = FormSession(registration_schema, {"email": " ana@example.com ", "nombre": "Ana"})
        assert session.email() == "ana@example.com"
        assert session.name() == "Ana"
