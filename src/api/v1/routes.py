"""
API v1 routes.

Defines REST endpoints for the event registration flow and the form
rule preview. Routes hold no flow logic: they call the flow controller
and render its state, translating domain errors into HTTP errors.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from src.adapters.notify.console import ConsoleNotifier
from src.adapters.repository.memory import InMemoryFlowRepository, StoredFlow
from src.api.dependencies import get_backend, get_device_id, get_flow_repository, get_stored_flow
from src.api.models import (
    AccessChoiceRequest,
    ErrorResponse,
    EvaluateRequest,
    EvaluateResponse,
    FieldErrorResponse,
    FieldView,
    FlowResponse,
    IdentifiersRequest,
    NoticeView,
    OptionView,
    RecoverRequest,
    RecoverResponse,
    StartFlowRequest,
    SubmitRequest,
    ValuesRequest,
)
from src.config.settings import Settings, get_settings
from src.domain.dependencies import options_for, recompute
from src.domain.exceptions import (
    ConfigurationError,
    FlowBusy,
    FormValidationError,
    InvalidTransition,
    MismatchError,
    NotFoundError,
    RegistrationError,
    TransportError,
)
from src.domain.flow import FlowState
from src.domain.form_session import initial_values
from src.domain.ports import RegistrationBackend
from src.domain.registration import RegistrationFlowController
from src.domain.rules import is_effectively_visible
from src.domain.schema import FieldDefinition, FormSchema, ValueSet, check_schema
from src.domain.summary import field_labels, readable_values
from src.domain.validation import validate

router = APIRouter(tags=["v1"])

_FLOW_ERRORS = {
    404: {"model": ErrorResponse, "description": "Flow or organization not found"},
    409: {"model": ErrorResponse, "description": "Action not allowed in the current step"},
    429: {"model": ErrorResponse, "description": "The same action is already in progress"},
    502: {"model": ErrorResponse, "description": "Registration service unavailable"},
}


@contextmanager
def domain_errors() -> Iterator[None]:
    """Translate domain exceptions raised inside the block into HTTP errors."""
    try:
        yield
    except FormValidationError as e:
        raise HTTPException(
            status_code=422,
            detail={"message": "Please review the highlighted fields", "errors": e.errors, "mismatched": []},
        ) from None
    except MismatchError as e:
        raise HTTPException(
            status_code=422,
            detail={
                "message": "Some details do not match our records",
                "errors": {f: "Does not match our records" for f in e.mismatched},
                "mismatched": e.mismatched,
            },
        ) from None
    except InvalidTransition as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from None
    except FlowBusy:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Request already in progress",
        ) from None
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from None
    except TransportError:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Registration service unavailable",
        ) from None
    except ConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Registration form is misconfigured: {e}",
        ) from None
    except RegistrationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        ) from None


def _field_view(
    schema: FormSchema, field: FieldDefinition, values: ValueSet, mismatched: tuple[str, ...] = ()
) -> FieldView:
    return FieldView(
        id=field.id,
        type=field.type.value,
        label=field.label,
        required=field.required,
        read_only=field.auto_calculated,
        is_identifier=field.is_identifier,
        mismatched=field.id in mismatched,
        placeholder=field.placeholder,
        help_text=field.help_text,
        options=[
            OptionView(value=o.value, label=o.label or o.value)
            for o in options_for(schema, field, values)
        ],
    )


def flow_response(stored: StoredFlow) -> FlowResponse:
    """Render the controller's current step for the client."""
    controller = stored.controller
    schema = controller.schema
    response = FlowResponse(
        flow_id=controller.flow_id,
        state=controller.state.value,
        org_slug=controller.org_slug,
        event_id=controller.event_id,
        session_id=controller.session_id,
        busy=controller.busy,
        mismatched=list(controller.mismatched),
        notices=[
            NoticeView(level=n.level.value, title=n.title, message=n.message)
            for n in stored.notifier.drain()
        ],
    )
    if schema is None:
        return response

    response.title = schema.title
    response.description = schema.description
    response.submit_button_text = schema.submit_button_text
    response.success_message = schema.success_message

    attendee = controller.attendee
    if controller.state == FlowState.QUICK_LOGIN:
        response.values = dict(controller.identifiers)
        response.fields = [
            _field_view(schema, f, controller.identifiers, controller.mismatched)
            for f in schema.identifier_fields
        ]
    elif controller.state in (FlowState.FULL_REGISTRATION, FlowState.UPDATE_REGISTRATION):
        form = controller.form
        if form is not None:
            response.values = form.values
            response.fields = [_field_view(schema, f, form.values) for f in form.visible_fields()]
    elif controller.state in (FlowState.SUMMARY, FlowState.COMPLETED) and attendee is not None:
        response.values = dict(attendee.registration_data)
        response.summary = readable_values(schema, attendee.registration_data)
        response.labels = field_labels(schema)
    return response


@router.post(
    "/forms/evaluate",
    response_model=EvaluateResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Form configuration is inconsistent"},
        422: {"description": "Validation error"},
    },
    summary="Preview a form's rules",
    description="Evaluate visibility, derived values and validation for a form "
    "definition and a set of values, without starting a flow.",
)
async def evaluate_form(request_data: EvaluateRequest) -> EvaluateResponse:
    """
    Run the rule engine once over the given values.

    - **form**: form definition as stored by the backend
    - **values**: current values; missing fields start from their default
    """
    try:
        schema = check_schema(request_data.form.to_domain())
        values = initial_values(schema, request_data.values)
        updates = recompute(schema, values)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from None
    values.update(updates)
    return EvaluateResponse(
        values=values,
        updates=updates,
        visible={f.id: is_effectively_visible(f, values, schema.fields) for f in schema.ordered_fields},
        errors=validate(schema, values),
    )


@router.post(
    "/flows",
    response_model=FlowResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse, "description": "Organization has no registration form"},
        500: {"model": ErrorResponse, "description": "Registration form is misconfigured"},
        502: {"model": ErrorResponse, "description": "Registration service unavailable"},
    },
    summary="Start a registration flow",
    description="Load the organization's registration form and enter the first step. "
    "Send the same X-Device-Id header on every call from one device.",
)
async def start_flow(
    request_data: StartFlowRequest,
    backend: RegistrationBackend = Depends(get_backend),
    flows: InMemoryFlowRepository = Depends(get_flow_repository),
    device_id: str = Depends(get_device_id),
    settings: Settings = Depends(get_settings),
) -> FlowResponse:
    notifier = ConsoleNotifier()
    controller = RegistrationFlowController(
        backend=backend,
        session_binder=flows.binder_for(device_id),
        notifier=notifier,
        org_slug=request_data.org_slug,
        event_id=request_data.event_id,
        org_id=request_data.org_id,
        debounce_seconds=settings.recompute_debounce_seconds,
    )
    with domain_errors():
        await controller.load()
    return flow_response(flows.add(controller, notifier))


@router.get(
    "/flows/{flow_id}",
    response_model=FlowResponse,
    responses={404: {"model": ErrorResponse, "description": "Flow not found"}},
    summary="Get the current step of a flow",
)
async def get_flow(stored: StoredFlow = Depends(get_stored_flow)) -> FlowResponse:
    return flow_response(stored)


@router.post(
    "/flows/{flow_id}/access",
    response_model=FlowResponse,
    responses=_FLOW_ERRORS,
    summary="Choose 'already registered' or 'new'",
)
async def choose_access(
    request_data: AccessChoiceRequest,
    stored: StoredFlow = Depends(get_stored_flow),
) -> FlowResponse:
    with domain_errors():
        if request_data.choice == "existing":
            stored.controller.choose_existing()
        else:
            stored.controller.choose_new()
    return flow_response(stored)


@router.post(
    "/flows/{flow_id}/verify",
    response_model=FlowResponse,
    responses={**_FLOW_ERRORS, 422: {"model": FieldErrorResponse, "description": "Missing or mismatched identifiers"}},
    summary="Verify identifier values",
    description="Look up the visitor by the form's identifier fields. Depending on the "
    "result the flow moves to the summary, the full form, or completion.",
)
async def verify_identifiers(
    request_data: IdentifiersRequest,
    stored: StoredFlow = Depends(get_stored_flow),
) -> FlowResponse:
    with domain_errors():
        await stored.controller.verify(request_data.identifiers)
    return flow_response(stored)


@router.post(
    "/flows/{flow_id}/summary/continue",
    response_model=FlowResponse,
    responses=_FLOW_ERRORS,
    summary="Continue to the event with stored data",
)
async def continue_to_event(stored: StoredFlow = Depends(get_stored_flow)) -> FlowResponse:
    with domain_errors():
        await stored.controller.continue_to_event()
    return flow_response(stored)


@router.post(
    "/flows/{flow_id}/summary/update",
    response_model=FlowResponse,
    responses=_FLOW_ERRORS,
    summary="Edit stored data before continuing",
)
async def update_info(stored: StoredFlow = Depends(get_stored_flow)) -> FlowResponse:
    with domain_errors():
        stored.controller.update_info()
    return flow_response(stored)


@router.put(
    "/flows/{flow_id}/values",
    response_model=FlowResponse,
    responses={**_FLOW_ERRORS, 422: {"model": FieldErrorResponse, "description": "Unknown field"}},
    summary="Edit form values",
    description="Apply edits and return the form once dependent fields have converged. "
    "Edits arriving within the debounce window are coalesced into one recomputation.",
)
async def set_values(
    request_data: ValuesRequest,
    stored: StoredFlow = Depends(get_stored_flow),
) -> FlowResponse:
    with domain_errors():
        stored.controller.set_values(request_data.values)
        if stored.controller.form is not None:
            await stored.controller.form.settle()
    return flow_response(stored)


@router.post(
    "/flows/{flow_id}/submit",
    response_model=FlowResponse,
    responses={**_FLOW_ERRORS, 422: {"model": FieldErrorResponse, "description": "Invalid fields"}},
    summary="Submit the registration form",
)
async def submit(
    request_data: Optional[SubmitRequest] = None,
    stored: StoredFlow = Depends(get_stored_flow),
) -> FlowResponse:
    with domain_errors():
        await stored.controller.submit(request_data.values if request_data else None)
    return flow_response(stored)


@router.post(
    "/flows/{flow_id}/back",
    response_model=FlowResponse,
    responses=_FLOW_ERRORS,
    summary="Go back one step",
)
async def back(stored: StoredFlow = Depends(get_stored_flow)) -> FlowResponse:
    with domain_errors():
        stored.controller.back()
    return flow_response(stored)


@router.post(
    "/flows/{flow_id}/reenter",
    response_model=FlowResponse,
    responses=_FLOW_ERRORS,
    summary="Start the flow over",
)
async def reenter(stored: StoredFlow = Depends(get_stored_flow)) -> FlowResponse:
    with domain_errors():
        await stored.controller.reenter()
    return flow_response(stored)


@router.post(
    "/flows/{flow_id}/recover",
    response_model=RecoverResponse,
    responses={**_FLOW_ERRORS, 422: {"model": FieldErrorResponse, "description": "Unusable identifier"}},
    summary="Email a reminder of the registered data",
)
async def recover_access(
    request_data: RecoverRequest,
    stored: StoredFlow = Depends(get_stored_flow),
) -> RecoverResponse:
    with domain_errors():
        sent = await stored.controller.recover_access(request_data.field_id, request_data.value)
    return RecoverResponse(
        message="If a registration matches, we will email you its details",
        sent=sent,
    )
