from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Generic, TypeVar

from opentelemetry.trace import Span, Status, StatusCode
from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from sqlalchemy import Select, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pymecrm.core.database import Base
from pymecrm.crm.dashboard import is_overdue
from pymecrm.crm.errors import FieldIssue, NotFoundError, PersistenceError, ValidationError
from pymecrm.crm.models import CRMCompany, CRMContact, CRMFollowUp, CRMLead, CRMPipelineStage, CRMUser, utcnow
from pymecrm.crm.schemas import (
    CompanyRead,
    ContactComposite,
    ContactRead,
    FollowUpComposite,
    FollowUpRead,
    FollowUpUpdate,
    LeadComposite,
    LeadRead,
    LeadUpdate,
    PipelineStageRead,
    UserRead,
)
from pymecrm.metrics import observe_entity_mutation, observe_persistence_failure
from pymecrm.otel import crm_span, get_tracer

logger = logging.getLogger("pymecrm.crm")
tracer = get_tracer("pymecrm.crm")

RecordT = TypeVar("RecordT", bound=Base)
Clock = Callable[[], datetime]


@dataclass(frozen=True)
class Join:
    """Related record loaded with an outer join and exposed on the composite under ``key``."""

    key: str
    model: type[Base]
    column: str
    read_model: type[BaseModel]


@dataclass(frozen=True)
class Reference:
    model: type[Base]
    label: str


class EntityRepository(Generic[RecordT]):
    entity = ""
    label = ""
    model: type[RecordT]
    read_model: type[BaseModel]
    composite_model: type[BaseModel] | None = None
    root_key = ""
    joins: tuple[Join, ...] = ()
    references: dict[str, Reference] = {}
    search_columns: tuple[str, ...] = ()
    filter_columns: dict[str, str] = {}

    def __init__(self, clock: Clock = utcnow) -> None:
        self.clock = clock

    def now(self) -> datetime:
        return self.clock().astimezone(timezone.utc)

    def today(self) -> date:
        return self.now().date()

    @contextmanager
    def _operation(self, session: Session, operation: str, entity_id: str | None = None) -> Iterator[Span]:
        with crm_span(tracer, self.entity, operation, entity_id) as span:
            try:
                yield span
            except SQLAlchemyError as exc:
                session.rollback()
                observe_persistence_failure(self.entity, operation)
                logger.exception(
                    "crm.persistence_failed",
                    extra={
                        "entity": self.entity,
                        "operation": operation,
                        "entity_id": entity_id,
                        "error": str(exc),
                    },
                )
                span.set_status(Status(StatusCode.ERROR, "persistence failure"))
                raise PersistenceError(self.entity, operation) from exc

    def _select(self) -> Select[Any]:
        stmt = select(self.model, *(join.model for join in self.joins))
        for join in self.joins:
            stmt = stmt.outerjoin(join.model, getattr(self.model, join.column) == join.model.id)
        return stmt

    def _ordering(self) -> tuple[Any, ...]:
        return (self.model.created_at.desc(), self.model.id.desc())

    def _apply_filters(self, stmt: Select[Any], search: str | None, filters: dict[str, Any]) -> Select[Any]:
        term = (search or "").strip()
        if term and self.search_columns:
            pattern = f"%{term}%"
            stmt = stmt.where(or_(*(getattr(self.model, name).ilike(pattern) for name in self.search_columns)))
        for name, value in filters.items():
            column = self.filter_columns.get(name)
            if column is None or value is None:
                continue
            stmt = stmt.where(getattr(self.model, column) == value)
        return stmt

    def to_read(self, record: RecordT) -> BaseModel:
        return self.read_model.model_validate(record)

    def _compose(self, row: Any) -> BaseModel:
        if self.composite_model is None:
            return self.to_read(row[0])
        values: dict[str, Any] = {self.root_key: self.to_read(row[0])}
        for join, related in zip(self.joins, row[1:]):
            values[join.key] = join.read_model.model_validate(related) if related is not None else None
        return self.composite_model(**values)

    def _get_row(self, session: Session, entity_id: str) -> RecordT:
        record = session.get(self.model, entity_id)
        if record is None:
            raise NotFoundError(self.label, entity_id)
        return record

    def _check_references(self, session: Session, values: dict[str, Any]) -> None:
        issues: list[FieldIssue] = []
        for column, reference in self.references.items():
            target_id = values.get(column)
            if target_id is not None and session.get(reference.model, target_id) is None:
                issues.append(FieldIssue(to_camel(column), f"{reference.label} not found"))
        if issues:
            raise ValidationError(issues)

    def _prepare_create(self, values: dict[str, Any], now: datetime) -> dict[str, Any]:
        return values

    def _prepare_update(self, record: RecordT, changes: dict[str, Any], now: datetime) -> dict[str, Any]:
        return changes

    def _record_mutation(self, operation: str, entity_id: str) -> None:
        observe_entity_mutation(self.entity, operation)
        logger.info(
            f"crm.entity.{operation}d",
            extra={"entity": self.entity, "entity_id": entity_id, "operation": operation},
        )

    def list_records(
        self,
        session: Session,
        *,
        search: str | None = None,
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[BaseModel]:
        """Newest first unless the repository orders otherwise; ``limit=None`` returns every row."""
        with self._operation(session, "list"):
            stmt = self._apply_filters(self._select(), search, filters or {})
            stmt = stmt.order_by(*self._ordering()).offset(offset)
            if limit is not None:
                stmt = stmt.limit(limit)
            return [self._compose(row) for row in session.execute(stmt).all()]

    def get(self, session: Session, entity_id: str) -> BaseModel:
        with self._operation(session, "get", entity_id):
            row = session.execute(self._select().where(self.model.id == entity_id)).first()
            if row is None:
                raise NotFoundError(self.label, entity_id)
            return self._compose(row)

    def create(self, session: Session, dto: BaseModel, *, commit: bool = True) -> BaseModel:
        """Insert a record; with ``commit=False`` the row is only flushed into the caller's transaction."""
        values = dto.model_dump()
        with self._operation(session, "create") as span:
            self._check_references(session, values)
            now = self.now()
            record = self.model(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                **self._prepare_create(values, now),
            )
            session.add(record)
            session.flush()
            span.set_attribute("crm.entity_id", record.id)
            if commit:
                session.commit()
        if commit:
            self._record_mutation("create", record.id)
        return self.get(session, record.id)

    def update(self, session: Session, entity_id: str, dto: BaseModel, *, commit: bool = True) -> BaseModel:
        changes = dto.model_dump(exclude_unset=True)
        with self._operation(session, "update", entity_id):
            record = self._get_row(session, entity_id)
            self._check_references(session, changes)
            now = self.now()
            for name, value in self._prepare_update(record, changes, now).items():
                setattr(record, name, value)
            record.updated_at = now
            session.flush()
            if commit:
                session.commit()
        if commit:
            self._record_mutation("update", entity_id)
        return self.get(session, entity_id)

    def delete(self, session: Session, entity_id: str) -> BaseModel:
        """Remove a record and return its last state. References to it are left in place."""
        with self._operation(session, "delete", entity_id):
            record = self._get_row(session, entity_id)
            snapshot = self.to_read(record)
            session.delete(record)
            session.commit()
        self._record_mutation("delete", entity_id)
        return snapshot


class UserRepository(EntityRepository[CRMUser]):
    entity = "user"
    label = "User"
    model = CRMUser
    read_model = UserRead
    search_columns = ("name", "email")
    filter_columns = {"role": "role"}

    def get_by_email(self, session: Session, email: str) -> CRMUser | None:
        with self._operation(session, "get_by_email"):
            return session.scalar(select(CRMUser).where(func.lower(CRMUser.email) == email.lower()))


class CompanyRepository(EntityRepository[CRMCompany]):
    entity = "company"
    label = "Company"
    model = CRMCompany
    read_model = CompanyRead
    search_columns = ("name",)
    filter_columns = {"industry": "industry", "city": "city", "country": "country"}


class ContactRepository(EntityRepository[CRMContact]):
    entity = "contact"
    label = "Contact"
    model = CRMContact
    read_model = ContactRead
    composite_model = ContactComposite
    root_key = "contact"
    joins = (Join("company", CRMCompany, "company_id", CompanyRead),)
    references = {"company_id": Reference(CRMCompany, "Company")}
    search_columns = ("first_name", "last_name", "email")
    filter_columns = {"companyId": "company_id"}


class PipelineStageRepository(EntityRepository[CRMPipelineStage]):
    entity = "pipeline_stage"
    label = "Pipeline stage"
    model = CRMPipelineStage
    read_model = PipelineStageRead
    search_columns = ("name",)

    def _ordering(self) -> tuple[Any, ...]:
        return (CRMPipelineStage.order.asc(), CRMPipelineStage.created_at.asc())

    def get_by_name(self, session: Session, name: str) -> CRMPipelineStage | None:
        with self._operation(session, "get_by_name"):
            return session.scalar(select(CRMPipelineStage).where(CRMPipelineStage.name == name))


class LeadRepository(EntityRepository[CRMLead]):
    entity = "lead"
    label = "Lead"
    model = CRMLead
    read_model = LeadRead
    composite_model = LeadComposite
    root_key = "lead"
    joins = (
        Join("company", CRMCompany, "company_id", CompanyRead),
        Join("contact", CRMContact, "contact_id", ContactRead),
        Join("stage", CRMPipelineStage, "pipeline_stage_id", PipelineStageRead),
        Join("assigned_user", CRMUser, "assigned_to", UserRead),
    )
    references = {
        "company_id": Reference(CRMCompany, "Company"),
        "contact_id": Reference(CRMContact, "Contact"),
        "pipeline_stage_id": Reference(CRMPipelineStage, "Pipeline stage"),
        "assigned_to": Reference(CRMUser, "User"),
    }
    search_columns = ("title",)
    filter_columns = {
        "stage": "pipeline_stage_id",
        "status": "status",
        "priority": "priority",
        "companyId": "company_id",
        "contactId": "contact_id",
        "assignedTo": "assigned_to",
    }

    def move_to_stage(self, session: Session, lead_id: str, stage_id: str | None) -> BaseModel:
        return self.update(session, lead_id, LeadUpdate(pipeline_stage_id=stage_id))


class FollowUpRepository(EntityRepository[CRMFollowUp]):
    entity = "follow_up"
    label = "Follow-up"
    model = CRMFollowUp
    read_model = FollowUpRead
    composite_model = FollowUpComposite
    root_key = "follow_up"
    joins = (
        Join("lead", CRMLead, "lead_id", LeadRead),
        Join("assigned_user", CRMUser, "assigned_to", UserRead),
    )
    references = {
        "lead_id": Reference(CRMLead, "Lead"),
        "assigned_to": Reference(CRMUser, "User"),
    }
    search_columns = ("title",)
    filter_columns = {
        "status": "status",
        "priority": "priority",
        "type": "type",
        "leadId": "lead_id",
        "assignedTo": "assigned_to",
    }

    def to_read(self, record: CRMFollowUp) -> FollowUpRead:
        read = FollowUpRead.model_validate(record)
        return read.model_copy(update={"is_overdue": is_overdue(record.status, record.due_date, self.today())})

    def _apply_filters(self, stmt: Select[Any], search: str | None, filters: dict[str, Any]) -> Select[Any]:
        stmt = super()._apply_filters(stmt, search, filters)
        if filters.get("overdue"):
            # due_date holds either a date or a datetime; only its date part takes part in the comparison
            stmt = stmt.where(
                CRMFollowUp.status == "pending",
                func.substr(CRMFollowUp.due_date, 1, 10) <= self.today().isoformat(),
            )
        return stmt

    def _prepare_create(self, values: dict[str, Any], now: datetime) -> dict[str, Any]:
        if values.get("status") == "completed" and values.get("completed_at") is None:
            values["completed_at"] = now
        return values

    def _prepare_update(self, record: CRMFollowUp, changes: dict[str, Any], now: datetime) -> dict[str, Any]:
        if "status" not in changes:
            return changes
        if changes["status"] == "completed":
            if changes.get("completed_at") is None:
                changes["completed_at"] = record.completed_at or now
        elif "completed_at" not in changes:
            changes["completed_at"] = None
        return changes

    def complete(self, session: Session, follow_up_id: str) -> BaseModel:
        return self.update(session, follow_up_id, FollowUpUpdate(status="completed"))


@dataclass
class CRMRepositories:
    clock: Clock = utcnow
    users: UserRepository = field(init=False)
    companies: CompanyRepository = field(init=False)
    contacts: ContactRepository = field(init=False)
    stages: PipelineStageRepository = field(init=False)
    leads: LeadRepository = field(init=False)
    follow_ups: FollowUpRepository = field(init=False)

    def __post_init__(self) -> None:
        self.users = UserRepository(self.clock)
        self.companies = CompanyRepository(self.clock)
        self.contacts = ContactRepository(self.clock)
        self.stages = PipelineStageRepository(self.clock)
        self.leads = LeadRepository(self.clock)
        self.follow_ups = FollowUpRepository(self.clock)


repositories = CRMRepositories()
