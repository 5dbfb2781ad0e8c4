from __future__ import annotations

import re
from datetime import date, datetime
from typing import Annotated, Any, ClassVar, Generic, Literal, TypeVar

from pydantic import (
    AfterValidator,
    AnyUrl,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    StringConstraints,
    TypeAdapter,
    ValidationError as PydanticValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from pymecrm.core.config import get_settings


LeadStatus = Literal["active", "won", "lost", "archived"]
Priority = Literal["low", "medium", "high"]
FollowUpStatus = Literal["pending", "completed", "cancelled"]
FollowUpType = Literal["call", "email", "meeting", "demo", "proposal"]

DEFAULT_PROBABILITY = 50

_url_adapter = TypeAdapter(AnyUrl)


def _check_url(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        parsed = _url_adapter.validate_python(value)
    except PydanticValidationError:
        raise ValueError("Invalid URL") from None
    if parsed.scheme not in {"http", "https"} or not parsed.host:
        raise ValueError("Invalid URL")
    return value


# extended ISO 8601 only: every accepted value starts with YYYY-MM-DD
_ISO_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")
_ISO_DATETIME_RE = re.compile(r"\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(:\d{2}(\.\d{1,6})?)?(Z|[+-]\d{2}:\d{2})?")


def _check_iso_date(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        if not _ISO_DATE_RE.fullmatch(value):
            raise ValueError
        return date.fromisoformat(value).isoformat()
    except ValueError:
        raise ValueError("Invalid date, expected YYYY-MM-DD") from None


def _check_iso_date_or_datetime(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        if _ISO_DATE_RE.fullmatch(value):
            date.fromisoformat(value)
        elif _ISO_DATETIME_RE.fullmatch(value):
            datetime.fromisoformat(value.replace("Z", "+00:00"))
        else:
            raise ValueError
    except ValueError:
        raise ValueError("Invalid date, expected an ISO date or datetime") from None
    return value


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


ShortRequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]
NameText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
Reference = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=36)]
WebsiteUrl = Annotated[str, StringConstraints(strip_whitespace=True), AfterValidator(_check_url)]
IsoDate = Annotated[str, StringConstraints(strip_whitespace=True), AfterValidator(_check_iso_date)]
IsoDueDate = Annotated[str, StringConstraints(strip_whitespace=True), AfterValidator(_check_iso_date_or_datetime)]
Probability = Annotated[int, Field(ge=0, le=100)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class CreateModel(CamelModel):
    """Create payload: ``null`` and blank strings mean "not supplied", so defaults apply."""

    @model_validator(mode="before")
    @classmethod
    def _drop_blank_values(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {key: value for key, value in data.items() if not _is_blank(value)}


class PatchModel(CamelModel):
    """Partial update: only supplied fields change; blank strings clear optional fields."""

    non_nullable: ClassVar[frozenset[str]] = frozenset()

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        return None if _is_blank(value) else value

    @field_validator("*", mode="after")
    @classmethod
    def _reject_null_required(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None and info.field_name in cls.non_nullable:
            raise ValueError("Field cannot be empty")
        return value


class CompanyCreate(CreateModel):
    name: ShortRequiredText
    industry: str | None = None
    website: WebsiteUrl | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    country: str = Field(default_factory=lambda: get_settings().default_country)
    employees: int | None = Field(default=None, gt=0)
    revenue: float | None = Field(default=None, gt=0)
    notes: str | None = None


class CompanyUpdate(PatchModel):
    non_nullable = frozenset({"name"})

    name: ShortRequiredText | None = None
    industry: str | None = None
    website: WebsiteUrl | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    country: str | None = None
    employees: int | None = Field(default=None, gt=0)
    revenue: float | None = Field(default=None, gt=0)
    notes: str | None = None


class CompanyRead(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    industry: str | None
    website: str | None
    phone: str | None
    address: str | None
    city: str | None
    country: str | None
    employees: int | None
    revenue: float | None
    notes: str | None
    created_at: datetime
    updated_at: datetime


class ContactCreate(CreateModel):
    company_id: Reference | None = None
    first_name: NameText
    last_name: NameText
    email: EmailStr
    phone: str | None = None
    position: str | None = None
    department: str | None = None
    is_primary: bool = False
    notes: str | None = None


class ContactUpdate(PatchModel):
    non_nullable = frozenset({"first_name", "last_name", "email", "is_primary"})

    company_id: Reference | None = None
    first_name: NameText | None = None
    last_name: NameText | None = None
    email: EmailStr | None = None
    phone: str | None = None
    position: str | None = None
    department: str | None = None
    is_primary: bool | None = None
    notes: str | None = None


class ContactRead(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    company_id: str | None
    first_name: str
    last_name: str
    email: str
    phone: str | None
    position: str | None
    department: str | None
    is_primary: bool
    notes: str | None
    created_at: datetime
    updated_at: datetime


class PipelineStageCreate(CreateModel):
    name: ShortRequiredText
    description: str | None = None
    order: int = Field(ge=0)
    color: str = Field(default_factory=lambda: get_settings().default_stage_color, max_length=32)
    is_default: bool = False


class PipelineStageUpdate(PatchModel):
    non_nullable = frozenset({"name", "order", "is_default"})

    name: ShortRequiredText | None = None
    description: str | None = None
    order: int | None = Field(default=None, ge=0)
    color: str | None = Field(default=None, max_length=32)
    is_default: bool | None = None


class PipelineStageRead(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None
    order: int
    color: str | None
    is_default: bool
    created_at: datetime
    updated_at: datetime


class LeadCreate(CreateModel):
    company_id: Reference | None = None
    contact_id: Reference | None = None
    pipeline_stage_id: Reference | None = None
    assigned_to: Reference | None = None
    title: ShortRequiredText
    description: str | None = None
    value: float | None = Field(default=None, ge=0)
    probability: Probability = DEFAULT_PROBABILITY
    expected_close_date: IsoDate | None = None
    source: str | None = Field(default=None, max_length=64)
    status: LeadStatus = "active"
    priority: Priority = "medium"
    tags: list[str] | None = None
    custom_fields: dict[str, Any] | None = None


class LeadUpdate(PatchModel):
    non_nullable = frozenset({"title", "probability", "status", "priority"})

    company_id: Reference | None = None
    contact_id: Reference | None = None
    pipeline_stage_id: Reference | None = None
    assigned_to: Reference | None = None
    title: ShortRequiredText | None = None
    description: str | None = None
    value: float | None = Field(default=None, ge=0)
    probability: Probability | None = None
    expected_close_date: IsoDate | None = None
    source: str | None = Field(default=None, max_length=64)
    status: LeadStatus | None = None
    priority: Priority | None = None
    tags: list[str] | None = None
    custom_fields: dict[str, Any] | None = None


class LeadStageMove(CamelModel):
    pipeline_stage_id: Reference | None = None

    @field_validator("pipeline_stage_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        return None if _is_blank(value) else value


class LeadRead(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    company_id: str | None
    contact_id: str | None
    pipeline_stage_id: str | None
    assigned_to: str | None
    title: str
    description: str | None
    value: float | None
    probability: int
    expected_close_date: str | None
    source: str | None
    status: str
    priority: str
    tags: list[str] | None
    custom_fields: dict[str, Any] | None
    created_at: datetime
    updated_at: datetime


class FollowUpCreate(CreateModel):
    lead_id: Reference | None = None
    assigned_to: Reference | None = None
    title: ShortRequiredText
    description: str | None = None
    due_date: IsoDueDate
    priority: Priority = "medium"
    status: FollowUpStatus = "pending"
    type: FollowUpType
    completed_at: datetime | None = None
    notes: str | None = None


class FollowUpUpdate(PatchModel):
    non_nullable = frozenset({"title", "due_date", "priority", "status", "type"})

    lead_id: Reference | None = None
    assigned_to: Reference | None = None
    title: ShortRequiredText | None = None
    description: str | None = None
    due_date: IsoDueDate | None = None
    priority: Priority | None = None
    status: FollowUpStatus | None = None
    type: FollowUpType | None = None
    completed_at: datetime | None = None
    notes: str | None = None


class FollowUpRead(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    lead_id: str | None
    assigned_to: str | None
    title: str
    description: str | None
    due_date: str
    priority: str
    status: str
    type: str
    completed_at: datetime | None
    notes: str | None
    created_at: datetime
    updated_at: datetime
    is_overdue: bool = False


class UserCreate(CreateModel):
    email: EmailStr
    name: ShortRequiredText
    role: str = Field(default="user", max_length=32)


class UserRead(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
    role: str
    created_at: datetime
    updated_at: datetime


class ContactComposite(CamelModel):
    contact: ContactRead
    company: CompanyRead | None = None


class LeadComposite(CamelModel):
    lead: LeadRead
    company: CompanyRead | None = None
    contact: ContactRead | None = None
    stage: PipelineStageRead | None = None
    assigned_user: UserRead | None = None


class FollowUpComposite(CamelModel):
    follow_up: FollowUpRead
    lead: LeadRead | None = None
    assigned_user: UserRead | None = None


class LeadBundle(CamelModel):
    """Validated parts of a lead created together with its company and contact."""

    lead: LeadCreate
    company: CompanyCreate | None = None
    contact: ContactCreate | None = None


class DashboardMetricsRead(CamelModel):
    total_companies: int
    total_leads: int
    active_leads: int
    total_contacts: int
    total_value: float
    conversion_rate: int
    pending_follow_ups: int
    completed_this_month: int
    overdue_follow_ups: int


class PipelineColumnRead(CamelModel):
    stage_id: str | None
    name: str
    color: str | None
    order: int | None
    lead_count: int
    total_value: float


DataT = TypeVar("DataT")


class Envelope(BaseModel, Generic[DataT]):
    success: bool = True
    data: DataT
