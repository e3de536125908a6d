"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from src.adapters.backend.payloads import FormSchemaPayload, FormValue


class StartFlowRequest(BaseModel):
    """Request model for starting a registration flow."""

    org_slug: str = Field(..., min_length=1, description="Organization slug")
    event_id: Optional[str] = Field(None, description="Event to register for; omit for organization-only")
    org_id: Optional[str] = Field(None, description="Organization id, when it differs from the slug")


class AccessChoiceRequest(BaseModel):
    """Request model for the 'already registered' / 'new' choice."""

    choice: Literal["existing", "new"]


class IdentifiersRequest(BaseModel):
    """Request model for quick-login verification."""

    identifiers: dict[str, FormValue] = Field(..., description="Identifier field id to value")


class ValuesRequest(BaseModel):
    """Request model for form edits."""

    values: dict[str, FormValue]


class SubmitRequest(BaseModel):
    """Request model for submitting the registration form."""

    values: Optional[dict[str, FormValue]] = Field(
        None, description="Final edits applied before submitting"
    )


class RecoverRequest(BaseModel):
    """Request model for access recovery."""

    field_id: str = Field(..., min_length=1)
    value: FormValue


class EvaluateRequest(BaseModel):
    """Request model for previewing a form's rules."""

    form: FormSchemaPayload
    values: dict[str, FormValue] = {}


class EvaluateResponse(BaseModel):
    """Response model for rule evaluation."""

    values: dict[str, FormValue]
    updates: dict[str, FormValue]
    visible: dict[str, bool]
    errors: dict[str, str]


class OptionView(BaseModel):
    value: str
    label: str


class FieldView(BaseModel):
    """A field as the client should render it."""

    id: str
    type: str
    label: str
    required: bool
    read_only: bool = False
    is_identifier: bool = False
    mismatched: bool = False
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    options: list[OptionView] = []


class NoticeView(BaseModel):
    level: str
    title: str
    message: str


class FlowResponse(BaseModel):
    """Snapshot of a registration flow."""

    flow_id: str
    state: str
    org_slug: str
    event_id: Optional[str] = None
    session_id: Optional[str] = None
    busy: bool = False
    title: Optional[str] = None
    description: Optional[str] = None
    submit_button_text: Optional[str] = None
    success_message: Optional[str] = None
    fields: list[FieldView] = []
    values: dict[str, FormValue] = {}
    summary: dict[str, str] = {}
    labels: dict[str, str] = {}
    mismatched: list[str] = []
    notices: list[NoticeView] = []


class RecoverResponse(BaseModel):
    """Response model for access recovery."""

    message: str
    sent: bool


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str


class FieldErrorDetail(BaseModel):
    message: str
    errors: dict[str, str] = {}
    mismatched: list[str] = []


class FieldErrorResponse(BaseModel):
    """Error response carrying per-field messages."""

    detail: FieldErrorDetail
