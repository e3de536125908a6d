"""
Backend wire payloads - Pydantic models for the registration backend JSON.

The backend speaks camelCase JSON with Mongo-style ``_id`` keys. These
models validate responses and convert them into domain types, so the
domain never sees raw dictionaries from the wire.
"""

from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.domain.identity import (
    Attendee,
    EventRegistered,
    EventUser,
    FoundRegistration,
    IdentityMatchResult,
    InvalidFields,
    NotFound,
    OrgOnly,
)
from src.domain.schema import (
    Calculation,
    Condition,
    ConditionalRule,
    FieldDefinition,
    FieldOption,
    FieldType,
    FieldValidation,
    FormSchema,
    Operator,
    OptionsSource,
    RuleAction,
    RuleLogic,
)

FormValue = Union[bool, int, float, str]


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class OptionPayload(WireModel):
    value: str
    label: str = ""
    parent_value: Optional[str] = None

    @field_validator("value", "parent_value", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        return str(v) if isinstance(v, (int, float)) and not isinstance(v, bool) else v


class ValidationPayload(WireModel):
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min: Optional[float] = None
    max: Optional[float] = None


class ConditionPayload(WireModel):
    field: str
    operator: Operator
    value: FormValue = ""


class RulePayload(WireModel):
    action: RuleAction
    conditions: list[ConditionPayload] = []
    logic: RuleLogic = RuleLogic.AND


class FieldPayload(WireModel):
    id: str
    type: FieldType
    label: str = ""
    order: int = 0
    required: bool = False
    options: list[OptionPayload] = []
    validation: Optional[ValidationPayload] = None
    default_value: Optional[FormValue] = None
    hidden: bool = False
    auto_calculated: bool = False
    depends_on: Optional[str] = None
    is_identifier: bool = False
    conditional_logic: list[RulePayload] = []
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    options_source: OptionsSource = OptionsSource.MANUAL
    calculation: Optional[Calculation] = None

    @field_validator("conditional_logic", mode="before")
    @classmethod
    def _visibility_rules_only(cls, v: Any) -> Any:
        # enable/disable/require actions exist in stored forms but have no effect here
        if v is None:
            return []
        if isinstance(v, list):
            return [r for r in v if not isinstance(r, dict) or r.get("action") in ("show", "hide")]
        return v

    @field_validator("options", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    def to_domain(self) -> FieldDefinition:
        validation = self.validation or ValidationPayload()
        return FieldDefinition(
            id=self.id,
            type=self.type,
            label=self.label,
            order=self.order,
            required=self.required,
            options=tuple(
                FieldOption(value=o.value, label=o.label, parent_value=o.parent_value)
                for o in self.options
            ),
            validation=FieldValidation(**validation.model_dump()),
            default_value=self.default_value,
            hidden=self.hidden,
            auto_calculated=self.auto_calculated,
            depends_on=self.depends_on or None,
            is_identifier=self.is_identifier,
            conditional_logic=tuple(
                ConditionalRule(
                    action=r.action,
                    conditions=tuple(
                        Condition(field=c.field, operator=c.operator, value=c.value)
                        for c in r.conditions
                    ),
                    logic=r.logic,
                )
                for r in self.conditional_logic
            ),
            placeholder=self.placeholder,
            help_text=self.help_text,
            options_source=self.options_source,
            calculation=self.calculation,
        )


class FormSchemaPayload(WireModel):
    enabled: bool = True
    title: Optional[str] = None
    description: Optional[str] = None
    success_message: Optional[str] = None
    submit_button_text: Optional[str] = None
    fields: list[FieldPayload] = []

    def to_domain(self) -> FormSchema:
        return FormSchema(
            fields=tuple(f.to_domain() for f in self.fields),
            enabled=self.enabled,
            title=self.title,
            description=self.description,
            success_message=self.success_message,
            submit_button_text=self.submit_button_text,
        )


class AttendeePayload(WireModel):
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    organization_id: str = Field(
        default="", validation_alias=AliasChoices("organizationId", "orgId", "organization_id")
    )
    email: Optional[str] = None
    name: Optional[str] = None
    registration_data: dict[str, Any] = {}

    @field_validator("registration_data", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return {} if v is None else v

    def to_domain(self) -> Attendee:
        return Attendee(
            id=self.id,
            organization_id=self.organization_id,
            email=self.email,
            name=self.name,
            registration_data={
                k: v
                for k, v in self.registration_data.items()
                if isinstance(v, (str, int, float, bool))
            },
        )


class EventUserPayload(WireModel):
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    event_id: str = ""
    attendee_id: str = ""
    email: Optional[str] = None
    status: str = "registered"

    def to_domain(self) -> EventUser:
        return EventUser(
            id=self.id,
            event_id=self.event_id,
            attendee_id=self.attendee_id,
            email=self.email,
            status=self.status,
        )


class EventCheckPayload(WireModel):
    """Response of the event-scoped identifier check."""

    is_registered: bool = False
    status: Optional[str] = None
    org_attendee: Optional[AttendeePayload] = None
    event_user: Optional[EventUserPayload] = None
    mismatched: list[str] = []
    message: Optional[str] = None

    def to_result(self) -> IdentityMatchResult:
        if self.org_attendee is not None and self.event_user is not None and (
            self.is_registered or self.status == "EVENT_REGISTERED"
        ):
            return EventRegistered(self.org_attendee.to_domain(), self.event_user.to_domain())
        if self.org_attendee is not None:
            return OrgOnly(self.org_attendee.to_domain())
        if self.status == "INVALID_FIELDS":
            return InvalidFields(tuple(self.mismatched))
        return NotFound(self.message)


class OrgCheckPayload(WireModel):
    """Response of the organization-scoped identifier check."""

    found: bool = False
    reason: Optional[str] = None
    org_attendee: Optional[AttendeePayload] = None
    mismatched: list[str] = []
    message: Optional[str] = None

    def to_result(self) -> IdentityMatchResult:
        if self.found and self.org_attendee is not None:
            return OrgOnly(self.org_attendee.to_domain())
        if self.reason == "INVALID_FIELDS":
            return InvalidFields(tuple(self.mismatched))
        return NotFound(self.message)


class FoundRegistrationPayload(WireModel):
    found: bool = False
    attendee: Optional[AttendeePayload] = None
    event_user: Optional[EventUserPayload] = None

    def to_domain(self) -> FoundRegistration:
        return FoundRegistration(
            found=self.found,
            attendee=self.attendee.to_domain() if self.attendee else None,
            event_user=self.event_user.to_domain() if self.event_user else None,
        )
