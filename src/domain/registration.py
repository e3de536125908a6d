"""
Registration flow controller - Identity resolution and registration paths.

This module drives one visit through the registration flow defined in
``flow.TRANSITIONS``: it loads the organization's form, asks the backend
to classify identifier values, and routes the visitor to the summary,
the full form, the update form, or straight to completion.

Concurrency
===========

All rule evaluation is synchronous. Only backend and session calls await.
While one of ``verify``, ``continue_to_event`` or ``submit`` is in flight
a second call raises ``FlowBusy`` instead of issuing another request.
Every reload, organization switch or back navigation bumps a generation
counter; results of calls started under an older generation are logged
and discarded, never applied to the new state.

Error handling
==============

Transport failures leave the state and the entered values untouched, so
the visitor can retry. Validation and mismatch errors are raised after
the controller has recorded the per-field details.
"""

import logging
import secrets
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Optional

from .dependencies import DEFAULT_DEBOUNCE_SECONDS
from .exceptions import (
    FlowBusy,
    FormValidationError,
    InvalidTransition,
    MismatchError,
    RegistrationError,
    TransportError,
)
from .flow import FlowEvent, FlowState, next_state
from .form_session import FormSession
from .identity import (
    Attendee,
    EventRegistered,
    FoundRegistration,
    IdentityMatchResult,
    InvalidFields,
    NotFound,
    OrgOnly,
    identifier_values,
    normalize_identifier,
    resolve_attendee_email,
)
from .ports import NoticeLevel, Notifier, RegistrationBackend
from .rules import is_empty
from .schema import FieldType, FormSchema, Value, ValueSet, check_schema
from .session import SessionBinder

logger = logging.getLogger(__name__)


@dataclass
class RegistrationFlowController:
    """
    State machine for one visitor's registration flow.

    Holds the current ``FlowState``, the loaded schema, the identifier
    values, the matched registration and the form being filled. Nothing
    is shared between controllers.
    """

    backend: RegistrationBackend
    session_binder: SessionBinder
    notifier: Notifier
    org_slug: str
    event_id: Optional[str] = None
    org_id: Optional[str] = None
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    flow_id: str = field(default_factory=lambda: secrets.token_hex(8))

    state: FlowState = field(default=FlowState.LOADING, init=False)
    schema: Optional[FormSchema] = field(default=None, init=False)
    form: Optional[FormSession] = field(default=None, init=False)
    identifiers: ValueSet = field(default_factory=dict, init=False)
    mismatched: tuple[str, ...] = field(default=(), init=False)
    found: Optional[FoundRegistration] = field(default=None, init=False)
    session_id: Optional[str] = field(default=None, init=False)
    _generation: int = field(default=0, init=False, repr=False)
    _busy: Optional[object] = field(default=None, init=False, repr=False)

    @property
    def busy(self) -> bool:
        return self._busy is not None

    @property
    def attendee(self) -> Optional[Attendee]:
        return self.found.attendee if self.found else None

    # ------------------------------------------------------------------
    # Loading and re-entry
    # ------------------------------------------------------------------

    async def load(self) -> FlowState:
        """
        Fetch the form and pick the entry state.

        Raises:
            TransportError: the form could not be fetched (state stays LOADING)
            ConfigurationError: the form is inconsistent
        """
        if self.state != FlowState.LOADING:
            self._reset()
        generation = self._generation

        schema = await self.backend.fetch_registration_form(self.org_slug)
        if generation != self._generation or self.state != FlowState.LOADING:
            logger.warning("Flow %s: discarding stale form for %s", self.flow_id, self.org_slug)
            return self.state

        self.schema = check_schema(schema)
        if not schema.enabled:
            self._fire(FlowEvent.FORM_DISABLED)
        elif schema.has_identifiers:
            self._fire(FlowEvent.SCHEMA_WITH_IDENTIFIERS)
        else:
            self.form = self._new_form()
            self._fire(FlowEvent.SCHEMA_WITHOUT_IDENTIFIERS)
        return self.state

    async def reenter(self) -> FlowState:
        """Start the visit over; nothing from the previous pass is reused."""
        self._reset()
        return await self.load()

    async def switch_organization(
        self, org_slug: str, event_id: Optional[str] = None, org_id: Optional[str] = None
    ) -> FlowState:
        """Point the flow at another organization; in-flight results are discarded."""
        self.org_slug = org_slug
        self.event_id = event_id
        self.org_id = org_id
        self._reset()
        return await self.load()

    def _reset(self) -> None:
        self._generation += 1
        self._busy = None
        self.schema = None
        self.form = None
        self.identifiers = {}
        self.mismatched = ()
        self.found = None
        self.session_id = None
        if self.state != FlowState.LOADING:
            self._fire(FlowEvent.RELOAD)

    # ------------------------------------------------------------------
    # Visitor actions
    # ------------------------------------------------------------------

    def choose_existing(self) -> FlowState:
        """'I'm already registered'."""
        self._fire(FlowEvent.CHOOSE_EXISTING)
        self.identifiers = {f.id: "" for f in self._schema().identifier_fields}
        self.mismatched = ()
        return self.state

    def choose_new(self) -> FlowState:
        """'I'm new'."""
        self._fire(FlowEvent.CHOOSE_NEW)
        self.form = self._new_form()
        return self.state

    def back(self) -> FlowState:
        """
        Leave the current step.

        Any call still in flight for the step is abandoned: its result
        will be discarded when it arrives.
        """
        if self.state == FlowState.FULL_REGISTRATION and not self._schema().has_identifiers:
            raise InvalidTransition(self.state.value, FlowEvent.BACK.value)
        self._fire(FlowEvent.BACK)
        self._generation += 1
        self._busy = None
        if self.state == FlowState.ACCESS_OPTIONS:
            self.found = None
            self.form = None
            self.mismatched = ()
        elif self.state == FlowState.SUMMARY:
            self.form = None
        return self.state

    async def verify(self, values: Mapping[str, Value]) -> FlowState:
        """
        Submit identifier values to the matching service.

        Raises:
            InvalidTransition: not in QUICK_LOGIN
            FlowBusy: a verification is already in flight
            FormValidationError: required identifiers are missing
            MismatchError: some identifiers disagree with the stored record
            TransportError: the matching service could not be reached
        """
        self._require(FlowState.QUICK_LOGIN, action="verify")
        schema = self._schema()

        async with self._guard("verify") as generation:
            self.identifiers = identifier_values(schema, values)
            self.mismatched = ()
            missing = {
                f.id: f"{f.label} is required"
                for f in schema.identifier_fields
                if f.required and is_empty(self.identifiers.get(f.id))
            }
            if missing:
                raise FormValidationError(missing)

            try:
                if self.event_id:
                    result = await self.backend.check_registration_by_identifiers(
                        self.event_id, self.identifiers
                    )
                else:
                    result = await self.backend.check_org_registration_by_identifiers(
                        self.org_id or self.org_slug, self.identifiers
                    )
            except TransportError:
                if self._current(generation, "verification failure"):
                    self.notifier.notify(
                        NoticeLevel.ERROR, "Error", "We could not verify your registration. Please try again."
                    )
                raise

            if not self._current(generation, "verification"):
                return self.state
            await self._apply_match(result, generation)
        return self.state

    async def _apply_match(self, result: IdentityMatchResult, generation: int) -> None:
        schema = self._schema()

        if isinstance(result, NotFound):
            self.notifier.notify(
                NoticeLevel.ERROR,
                "User not found",
                result.message or "We could not find a registration with these details.",
            )
            self._fire(FlowEvent.MATCH_NOT_FOUND)
            self.form = self._new_form(existing=self.identifiers)
            return

        if isinstance(result, InvalidFields):
            self.mismatched = tuple(f for f in result.mismatched if f in self.identifiers)
            self.notifier.notify(
                NoticeLevel.WARNING,
                "Incorrect details",
                "Some of the details you entered do not match our records.",
            )
            self._fire(FlowEvent.MATCH_INVALID_FIELDS)
            raise MismatchError(list(self.mismatched))

        if isinstance(result, OrgOnly):
            self.found = FoundRegistration(found=True, attendee=result.attendee)
            self.notifier.notify(
                NoticeLevel.INFO, "We found you", "Check your details and continue to the event."
            )
            self._fire(FlowEvent.MATCH_ORG_ONLY)
            return

        if isinstance(result, EventRegistered):
            email = resolve_attendee_email(result.attendee) or self._identifier_email(schema)
            if not email:
                self.notifier.notify(
                    NoticeLevel.ERROR,
                    "Error",
                    "We could not identify your email. Please contact the organizer.",
                )
                raise RegistrationError(f"No email for attendee {result.attendee.id}")
            session_id = await self._bind(email)
            if not self._current(generation, "session binding"):
                return
            self.found = FoundRegistration(
                found=True, attendee=result.attendee, event_user=result.event_user
            )
            self.session_id = session_id
            self.notifier.notify(
                NoticeLevel.SUCCESS, "Welcome back!", "You are already registered for this event."
            )
            self._fire(FlowEvent.MATCH_EVENT_REGISTERED)
            return

        raise TypeError(f"Unknown identity match result: {result!r}")

    def update_info(self) -> FlowState:
        """Summary -> update form pre-filled with the attendee's data."""
        self._require(FlowState.SUMMARY, action=FlowEvent.UPDATE_INFO.value)
        attendee = self.attendee
        self._fire(FlowEvent.UPDATE_INFO)
        self.form = self._new_form(existing=attendee.registration_data if attendee else None)
        return self.state

    async def continue_to_event(self) -> FlowState:
        """
        Summary -> completed.

        Joins the event if the attendee is not registered yet, then binds
        the device session and links it to the registration.

        Raises:
            InvalidTransition: not in SUMMARY
            FlowBusy: already continuing
            TransportError: join or session creation failed (retry is safe;
                a completed join is not repeated)
        """
        self._require(FlowState.SUMMARY, action=FlowEvent.CONTINUE.value)
        attendee = self.attendee
        if attendee is None:
            raise InvalidTransition(self.state.value, FlowEvent.CONTINUE.value)

        async with self._guard("continue") as generation:
            email = resolve_attendee_email(attendee)
            if not email:
                self.notifier.notify(
                    NoticeLevel.ERROR,
                    "Error",
                    "We could not identify your email. Please contact the organizer.",
                )
                raise RegistrationError(f"No email for attendee {attendee.id}")

            try:
                if self.event_id and not self.found.is_registered:
                    event_user = await self.backend.register(
                        self.event_id, email, attendee.registration_data
                    )
                    if not self._current(generation, "event join"):
                        return self.state
                    self.found = FoundRegistration(found=True, attendee=attendee, event_user=event_user)
                    self.notifier.notify(
                        NoticeLevel.SUCCESS, "All set!", "You have been registered for this event."
                    )
                session_id = await self._bind(email)
            except TransportError:
                if self._current(generation, "event join failure"):
                    self.notifier.notify(
                        NoticeLevel.ERROR, "Error", "There was a problem joining the event. Please try again."
                    )
                raise
            if not self._current(generation, "session binding"):
                return self.state

            if self.event_id:
                await self._associate(email, session_id)
            self.session_id = session_id
            self._fire(FlowEvent.CONTINUE)
        return self.state

    def set_values(self, values: Mapping[str, Value]) -> ValueSet:
        """
        Apply form edits in FULL_REGISTRATION / UPDATE_REGISTRATION.

        Returns:
            Current values after the edit (derived fields converge on the
            next ``tick``/``flush``)
        """
        form = self._require_form("edit")
        form.set_values(values)
        return form.values

    async def submit(self, values: Optional[Mapping[str, Value]] = None) -> FlowState:
        """
        Submit the full or update form.

        Raises:
            InvalidTransition: no form step is active
            FlowBusy: a submit is already in flight
            FormValidationError: visible fields are invalid (state unchanged)
            TransportError: the backend rejected or did not receive the
                submission (state and values unchanged)
        """
        form = self._require_form("submit")

        async with self._guard("submit") as generation:
            if values:
                form.set_values(values)
            snapshot = form.submission()

            email = form.email() or (resolve_attendee_email(self.attendee) if self.attendee else None)
            if not email:
                email_field = self._schema().first(lambda f: f.type == FieldType.EMAIL)
                raise FormValidationError(
                    {email_field.id if email_field else "email": "An email is required to register"}
                )

            try:
                session_id = await self._bind(email)
                if not self._current(generation, "session binding"):
                    return self.state
                await self._send_registration(email, form, snapshot, session_id)
            except TransportError:
                if self._current(generation, "submission failure"):
                    self.notifier.notify(
                        NoticeLevel.ERROR,
                        "Error",
                        "We could not process your registration. Please try again.",
                    )
                raise
            if not self._current(generation, "submission"):
                return self.state

            self.session_id = session_id
            updating = self.state == FlowState.UPDATE_REGISTRATION
            self.notifier.notify(
                NoticeLevel.SUCCESS,
                "Information updated" if updating else "Registration complete",
                self._schema().success_message
                or ("Your information was updated." if updating else "You are registered."),
            )
            self._fire(FlowEvent.SUBMITTED)
        return self.state

    async def _send_registration(
        self, email: str, form: FormSession, snapshot: ValueSet, session_id: str
    ) -> None:
        attendee = self.attendee
        if self.state == FlowState.UPDATE_REGISTRATION and attendee is not None:
            await self.backend.update_registration(attendee.id, snapshot)
            if not self.event_id:
                return
            if self.found is not None and self.found.is_registered:
                await self._associate(email, session_id)
            else:
                await self.backend.register_with_session(
                    self.event_id, email, snapshot, session_id, name=form.name()
                )
            return

        if self.event_id:
            await self.backend.register_with_session(
                self.event_id, email, snapshot, session_id, name=form.name()
            )
        else:
            await self.backend.upsert_org_attendee(
                self.org_id or self.org_slug,
                email,
                snapshot,
                name=form.name(),
                session_id=session_id,
            )

    async def recover_access(self, field_id: str, value: Value) -> bool:
        """
        Ask the backend to email a reminder of the registered data.

        The flow state does not change.

        Raises:
            FormValidationError: ``field_id`` is not an identifier or the value is unusable
        """
        schema = self._schema()
        field_def = schema.get(field_id)
        if field_def is None or not field_def.is_identifier:
            raise FormValidationError({field_id: "Not an identifier field"})
        normalized = normalize_identifier(value, field_def.type)
        if is_empty(normalized):
            raise FormValidationError({field_id: f"{field_def.label} is required"})
        if field_def.type == FieldType.NUMBER and isinstance(normalized, str):
            raise FormValidationError({field_id: f"{field_def.label} must be a number"})

        sent = await self.backend.recover_access(self.org_id or self.org_slug, {field_id: normalized})
        self.notifier.notify(
            NoticeLevel.SUCCESS,
            "If we find a registration...",
            "We will email you the details you registered with.",
        )
        return sent

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fire(self, event: FlowEvent) -> None:
        new_state = next_state(self.state, event)
        logger.info(
            "Flow %s: %s --%s--> %s", self.flow_id, self.state.value, event.value, new_state.value
        )
        self.state = new_state

    def _require(self, *states: FlowState, action: str) -> None:
        if self.state not in states:
            raise InvalidTransition(self.state.value, action)

    def _require_form(self, action: str) -> FormSession:
        self._require(FlowState.FULL_REGISTRATION, FlowState.UPDATE_REGISTRATION, action=action)
        if self.form is None:
            self.form = self._new_form()
        return self.form

    def _schema(self) -> FormSchema:
        if self.schema is None:
            raise InvalidTransition(self.state.value, "no form loaded")
        return self.schema

    def _new_form(self, existing: Optional[Mapping[str, Value]] = None) -> FormSession:
        return FormSession(self._schema(), existing, debounce_seconds=self.debounce_seconds)

    def _identifier_email(self, schema: FormSchema) -> Optional[str]:
        email_field = schema.first(lambda f: f.is_identifier and f.type == FieldType.EMAIL)
        value = self.identifiers.get(email_field.id) if email_field else None
        return value if isinstance(value, str) and value else None

    def _current(self, generation: int, what: str) -> bool:
        if generation == self._generation:
            return True
        logger.warning("Flow %s: discarding stale %s result", self.flow_id, what)
        return False

    async def _bind(self, email: str) -> str:
        return await self.session_binder.bind_session(email)

    async def _associate(self, email: str, session_id: str) -> None:
        try:
            await self.backend.associate_session(self.event_id, email, session_id)
        except TransportError as e:
            # the registration already exists; a missing link does not block entry
            logger.warning("Flow %s: could not associate session %s: %s", self.flow_id, session_id, e)

    @asynccontextmanager
    async def _guard(self, action: str) -> AsyncIterator[int]:
        if self._busy is not None:
            logger.warning("Flow %s: ignoring duplicate %s while a call is in flight", self.flow_id, action)
            raise FlowBusy(action)
        token = object()
        self._busy = token
        try:
            yield self._generation
        finally:
            if self._busy is token:
                self._busy = None
