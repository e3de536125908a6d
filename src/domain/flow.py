"""
Registration flow - States, events and the transition table.

Flow State Machine
==================

States:
- LOADING: schema is being fetched
- ACCESS_OPTIONS: visitor picks "I'm already registered" or "I'm new"
- QUICK_LOGIN: visitor enters identifier fields
- SUMMARY: existing attendee reviews stored data before joining the event
- FULL_REGISTRATION: complete form, new registration
- UPDATE_REGISTRATION: complete form pre-filled with existing data
- COMPLETED: terminal for this visit
- DISABLED: terminal, the organization's form is switched off

Valid Transitions:
    LOADING -> ACCESS_OPTIONS          (schema has identifier fields)
    LOADING -> FULL_REGISTRATION       (no identifier fields)
    LOADING -> DISABLED                (form disabled)
    ACCESS_OPTIONS -> QUICK_LOGIN      (choose existing)
    ACCESS_OPTIONS -> FULL_REGISTRATION (choose new)
    QUICK_LOGIN -> FULL_REGISTRATION   (NotFound)
    QUICK_LOGIN -> QUICK_LOGIN         (InvalidFields)
    QUICK_LOGIN -> SUMMARY             (OrgOnly)
    QUICK_LOGIN -> COMPLETED           (EventRegistered)
    SUMMARY -> UPDATE_REGISTRATION     (update my info)
    SUMMARY -> COMPLETED               (continue)
    FULL_REGISTRATION -> COMPLETED     (submit)
    UPDATE_REGISTRATION -> COMPLETED   (submit)
    back navigation and re-entry as listed in TRANSITIONS

Any state -> LOADING on RELOAD (re-entry or organization switch).
"""

from enum import Enum

from .exceptions import InvalidTransition


class FlowState(str, Enum):
    LOADING = "loading"
    ACCESS_OPTIONS = "access_options"
    QUICK_LOGIN = "quick_login"
    SUMMARY = "summary"
    FULL_REGISTRATION = "full_registration"
    UPDATE_REGISTRATION = "update_registration"
    COMPLETED = "completed"
    DISABLED = "disabled"


class FlowEvent(str, Enum):
    SCHEMA_WITH_IDENTIFIERS = "schema_with_identifiers"
    SCHEMA_WITHOUT_IDENTIFIERS = "schema_without_identifiers"
    FORM_DISABLED = "form_disabled"
    CHOOSE_EXISTING = "choose_existing"
    CHOOSE_NEW = "choose_new"
    MATCH_NOT_FOUND = "match_not_found"
    MATCH_INVALID_FIELDS = "match_invalid_fields"
    MATCH_ORG_ONLY = "match_org_only"
    MATCH_EVENT_REGISTERED = "match_event_registered"
    UPDATE_INFO = "update_info"
    CONTINUE = "continue"
    SUBMITTED = "submitted"
    BACK = "back"
    RELOAD = "reload"


TRANSITIONS: dict[tuple[FlowState, FlowEvent], FlowState] = {
    (FlowState.LOADING, FlowEvent.SCHEMA_WITH_IDENTIFIERS): FlowState.ACCESS_OPTIONS,
    (FlowState.LOADING, FlowEvent.SCHEMA_WITHOUT_IDENTIFIERS): FlowState.FULL_REGISTRATION,
    (FlowState.LOADING, FlowEvent.FORM_DISABLED): FlowState.DISABLED,
    (FlowState.ACCESS_OPTIONS, FlowEvent.CHOOSE_EXISTING): FlowState.QUICK_LOGIN,
    (FlowState.ACCESS_OPTIONS, FlowEvent.CHOOSE_NEW): FlowState.FULL_REGISTRATION,
    (FlowState.QUICK_LOGIN, FlowEvent.MATCH_NOT_FOUND): FlowState.FULL_REGISTRATION,
    (FlowState.QUICK_LOGIN, FlowEvent.MATCH_INVALID_FIELDS): FlowState.QUICK_LOGIN,
    (FlowState.QUICK_LOGIN, FlowEvent.MATCH_ORG_ONLY): FlowState.SUMMARY,
    (FlowState.QUICK_LOGIN, FlowEvent.MATCH_EVENT_REGISTERED): FlowState.COMPLETED,
    (FlowState.QUICK_LOGIN, FlowEvent.BACK): FlowState.ACCESS_OPTIONS,
    (FlowState.SUMMARY, FlowEvent.UPDATE_INFO): FlowState.UPDATE_REGISTRATION,
    (FlowState.SUMMARY, FlowEvent.CONTINUE): FlowState.COMPLETED,
    (FlowState.SUMMARY, FlowEvent.BACK): FlowState.ACCESS_OPTIONS,
    (FlowState.FULL_REGISTRATION, FlowEvent.SUBMITTED): FlowState.COMPLETED,
    (FlowState.FULL_REGISTRATION, FlowEvent.BACK): FlowState.ACCESS_OPTIONS,
    (FlowState.UPDATE_REGISTRATION, FlowEvent.SUBMITTED): FlowState.COMPLETED,
    (FlowState.UPDATE_REGISTRATION, FlowEvent.BACK): FlowState.SUMMARY,
}

for _state in FlowState:
    TRANSITIONS[(_state, FlowEvent.RELOAD)] = FlowState.LOADING
del _state


def next_state(state: FlowState, event: FlowEvent) -> FlowState:
    """
    Look up the transition for ``event`` in ``state``.

    Raises:
        InvalidTransition: the event is not allowed in this state
    """
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(state.value, event.value) from None
