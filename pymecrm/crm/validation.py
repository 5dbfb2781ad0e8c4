from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from pymecrm.crm.errors import FieldIssue, ValidationError
from pymecrm.crm.schemas import (
    CompanyCreate,
    CompanyUpdate,
    ContactCreate,
    ContactUpdate,
    FollowUpCreate,
    FollowUpUpdate,
    LeadBundle,
    LeadCreate,
    LeadStageMove,
    LeadUpdate,
    PipelineStageCreate,
    PipelineStageUpdate,
    UserCreate,
)

ModelT = TypeVar("ModelT", bound=BaseModel)

CREATE_SCHEMAS: dict[str, type[BaseModel]] = {
    "company": CompanyCreate,
    "contact": ContactCreate,
    "pipeline_stage": PipelineStageCreate,
    "lead": LeadCreate,
    "follow_up": FollowUpCreate,
    "user": UserCreate,
}

UPDATE_SCHEMAS: dict[str, type[BaseModel]] = {
    "company": CompanyUpdate,
    "contact": ContactUpdate,
    "pipeline_stage": PipelineStageUpdate,
    "lead": LeadUpdate,
    "lead_stage": LeadStageMove,
    "follow_up": FollowUpUpdate,
}


def issues_from_errors(errors: list[dict[str, Any]] | Any) -> list[FieldIssue]:
    """Flatten pydantic/FastAPI error dicts into field issues, keeping their order."""
    issues: list[FieldIssue] = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        message = str(error.get("msg", "Invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, ") :]
        issues.append(FieldIssue(".".join(loc) or "body", message))
    return issues


def validate_payload(schema: type[ModelT], payload: Any) -> ModelT:
    if not isinstance(payload, dict):
        raise ValidationError([FieldIssue("body", "Expected a JSON object")])
    try:
        return schema.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(issues_from_errors(exc.errors())) from None


def validate_create(kind: str, payload: Any) -> BaseModel:
    return validate_payload(CREATE_SCHEMAS[kind], payload)


def validate_update(kind: str, payload: Any) -> BaseModel:
    return validate_payload(UPDATE_SCHEMAS[kind], payload)


def validate_lead_bundle(payload: Any) -> LeadBundle:
    """Validate every part of a lead bundle and report all issues at once.

    Issues are prefixed with the part they belong to (``company.website``,
    ``lead.title``), so a form can point at the failing section.
    """
    if not isinstance(payload, dict):
        raise ValidationError([FieldIssue("body", "Expected a JSON object")])

    parts: dict[str, Any] = {}
    issues: list[FieldIssue] = []
    for key, schema in (("company", CompanyCreate), ("contact", ContactCreate), ("lead", LeadCreate)):
        raw = payload.get(key)
        if raw is None:
            if key == "lead":
                issues.append(FieldIssue("lead", "Field required"))
            continue
        if not isinstance(raw, dict):
            issues.append(FieldIssue(key, "Expected a JSON object"))
            continue
        try:
            parts[key] = validate_payload(schema, raw)
        except ValidationError as exc:
            issues.extend(exc.prefixed(key).details)

    if issues:
        raise ValidationError(issues)
    return LeadBundle(**parts)
