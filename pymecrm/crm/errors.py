from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class FieldIssue:
    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class CRMError(Exception):
    """Base class for every error the CRM core reports to its callers."""

    code = "SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Any:
        return {"code": self.code, "message": self.message}


class ValidationError(CRMError):
    """Input failed schema or reference checks; carries every issue, not just the first."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, details: list[FieldIssue]) -> None:
        super().__init__("Validation error")
        self.details = list(details)

    def to_payload(self) -> Any:
        return self.message

    def prefixed(self, prefix: str) -> ValidationError:
        return ValidationError([FieldIssue(f"{prefix}.{issue.field}", issue.message) for issue in self.details])


class NotFoundError(CRMError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity_label: str, entity_id: str | None = None) -> None:
        super().__init__(f"{entity_label} not found")
        self.entity_label = entity_label
        self.entity_id = entity_id


class PersistenceError(CRMError):
    """Storage failure; the message never carries backend detail."""

    code = "SERVER_ERROR"
    status_code = 500

    def __init__(self, entity: str, operation: str) -> None:
        super().__init__("Internal server error")
        self.entity = entity
        self.operation = operation
