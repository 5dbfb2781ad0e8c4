from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from pymecrm.core.config import get_settings
from pymecrm.core.database import get_db
from pymecrm.crm.errors import CRMError, ValidationError
from pymecrm.crm.repositories import CRMRepositories, EntityRepository, repositories
from pymecrm.crm.schemas import (
    CompanyRead,
    ContactComposite,
    DashboardMetricsRead,
    Envelope,
    FollowUpComposite,
    LeadComposite,
    PipelineColumnRead,
    PipelineStageRead,
    UserRead,
)
from pymecrm.crm.service import DashboardService, LeadBundleService
from pymecrm.crm.validation import validate_create, validate_lead_bundle, validate_update

companies_router = APIRouter(prefix="/api/companies", tags=["crm.companies"])
contacts_router = APIRouter(prefix="/api/contacts", tags=["crm.contacts"])
stages_router = APIRouter(prefix="/api/pipeline-stages", tags=["crm.pipeline_stages"])
leads_router = APIRouter(prefix="/api/leads", tags=["crm.leads"])
follow_ups_router = APIRouter(prefix="/api/follow-ups", tags=["crm.follow_ups"])
users_router = APIRouter(prefix="/api/users", tags=["crm.users"])
dashboard_router = APIRouter(prefix="/api/dashboard", tags=["crm.dashboard"])


def get_repositories() -> CRMRepositories:
    return repositories


def error_response(exc: CRMError) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "error": exc.to_payload()}
    if isinstance(exc, ValidationError):
        content["details"] = [issue.to_dict() for issue in exc.details]
    return JSONResponse(status_code=exc.status_code, content=content)


def _page(limit: int | None) -> int:
    settings = get_settings()
    return min(limit or settings.list_default_limit, settings.list_max_limit)


def _deleted(key: str, snapshot: BaseModel) -> Envelope[dict[str, Any]]:
    return Envelope(data={"deleted": True, key: snapshot.model_dump(mode="json", by_alias=True)})


def _create(db: Session, repository: EntityRepository[Any], kind: str, payload: Any) -> Envelope[Any]:
    return Envelope(data=repository.create(db, validate_create(kind, payload)))


def _update(db: Session, repository: EntityRepository[Any], kind: str, entity_id: str, payload: Any) -> Envelope[Any]:
    return Envelope(data=repository.update(db, entity_id, validate_update(kind, payload)))


# Companies


@companies_router.get("", response_model=Envelope[list[CompanyRead]])
def list_companies(
    search: str | None = Query(default=None),
    industry: str | None = Query(default=None),
    city: str | None = Query(default=None),
    country: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[list[CompanyRead]] | JSONResponse:
    try:
        items = repos.companies.list_records(
            db,
            search=search,
            filters={"industry": industry, "city": city, "country": country},
            limit=_page(limit),
            offset=offset,
        )
        return Envelope(data=items)
    except CRMError as exc:
        return error_response(exc)


@companies_router.get("/{company_id}", response_model=Envelope[CompanyRead])
def get_company(
    company_id: str,
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[CompanyRead] | JSONResponse:
    try:
        return Envelope(data=repos.companies.get(db, company_id))
    except CRMError as exc:
        return error_response(exc)


@companies_router.post("", response_model=Envelope[CompanyRead], status_code=status.HTTP_201_CREATED)
def create_company(
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[CompanyRead] | JSONResponse:
    try:
        return _create(db, repos.companies, "company", payload)
    except CRMError as exc:
        return error_response(exc)


@companies_router.put("/{company_id}", response_model=Envelope[CompanyRead])
def update_company(
    company_id: str,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[CompanyRead] | JSONResponse:
    try:
        return _update(db, repos.companies, "company", company_id, payload)
    except CRMError as exc:
        return error_response(exc)


@companies_router.delete("/{company_id}", response_model=Envelope[dict[str, Any]])
def delete_company(
    company_id: str,
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[dict[str, Any]] | JSONResponse:
    try:
        return _deleted("company", repos.companies.delete(db, company_id))
    except CRMError as exc:
        return error_response(exc)


# Contacts


@contacts_router.get("", response_model=Envelope[list[ContactComposite]])
def list_contacts(
    search: str | None = Query(default=None),
    company_id: str | None = Query(default=None, alias="companyId"),
    limit: int | None = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[list[ContactComposite]] | JSONResponse:
    try:
        items = repos.contacts.list_records(
            db,
            search=search,
            filters={"companyId": company_id},
            limit=_page(limit),
            offset=offset,
        )
        return Envelope(data=items)
    except CRMError as exc:
        return error_response(exc)


@contacts_router.get("/{contact_id}", response_model=Envelope[ContactComposite])
def get_contact(
    contact_id: str,
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[ContactComposite] | JSONResponse:
    try:
        return Envelope(data=repos.contacts.get(db, contact_id))
    except CRMError as exc:
        return error_response(exc)


@contacts_router.post("", response_model=Envelope[ContactComposite], status_code=status.HTTP_201_CREATED)
def create_contact(
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[ContactComposite] | JSONResponse:
    try:
        return _create(db, repos.contacts, "contact", payload)
    except CRMError as exc:
        return error_response(exc)


@contacts_router.put("/{contact_id}", response_model=Envelope[ContactComposite])
def update_contact(
    contact_id: str,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[ContactComposite] | JSONResponse:
    try:
        return _update(db, repos.contacts, "contact", contact_id, payload)
    except CRMError as exc:
        return error_response(exc)


@contacts_router.delete("/{contact_id}", response_model=Envelope[dict[str, Any]])
def delete_contact(
    contact_id: str,
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[dict[str, Any]] | JSONResponse:
    try:
        return _deleted("contact", repos.contacts.delete(db, contact_id))
    except CRMError as exc:
        return error_response(exc)


# Pipeline stages


@stages_router.get("", response_model=Envelope[list[PipelineStageRead]])
def list_pipeline_stages(
    search: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[list[PipelineStageRead]] | JSONResponse:
    try:
        return Envelope(data=repos.stages.list_records(db, search=search, limit=_page(limit), offset=offset))
    except CRMError as exc:
        return error_response(exc)


@stages_router.get("/{stage_id}", response_model=Envelope[PipelineStageRead])
def get_pipeline_stage(
    stage_id: str,
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[PipelineStageRead] | JSONResponse:
    try:
        return Envelope(data=repos.stages.get(db, stage_id))
    except CRMError as exc:
        return error_response(exc)


@stages_router.post("", response_model=Envelope[PipelineStageRead], status_code=status.HTTP_201_CREATED)
def create_pipeline_stage(
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[PipelineStageRead] | JSONResponse:
    try:
        return _create(db, repos.stages, "pipeline_stage", payload)
    except CRMError as exc:
        return error_response(exc)


@stages_router.put("/{stage_id}", response_model=Envelope[PipelineStageRead])
def update_pipeline_stage(
    stage_id: str,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[PipelineStageRead] | JSONResponse:
    try:
        return _update(db, repos.stages, "pipeline_stage", stage_id, payload)
    except CRMError as exc:
        return error_response(exc)


@stages_router.delete("/{stage_id}", response_model=Envelope[dict[str, Any]])
def delete_pipeline_stage(
    stage_id: str,
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[dict[str, Any]] | JSONResponse:
    try:
        return _deleted("stage", repos.stages.delete(db, stage_id))
    except CRMError as exc:
        return error_response(exc)


# Leads


@leads_router.get("", response_model=Envelope[list[LeadComposite]])
def list_leads(
    search: str | None = Query(default=None),
    stage: str | None = Query(default=None),
    status_filter: str | None = Query(default=None, alias="status"),
    priority: str | None = Query(default=None),
    company_id: str | None = Query(default=None, alias="companyId"),
    contact_id: str | None = Query(default=None, alias="contactId"),
    assigned_to: str | None = Query(default=None, alias="assignedTo"),
    limit: int | None = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[list[LeadComposite]] | JSONResponse:
    try:
        items = repos.leads.list_records(
            db,
            search=search,
            filters={
                "stage": stage,
                "status": status_filter,
                "priority": priority,
                "companyId": company_id,
                "contactId": contact_id,
                "assignedTo": assigned_to,
            },
            limit=_page(limit),
            offset=offset,
        )
        return Envelope(data=items)
    except CRMError as exc:
        return error_response(exc)


@leads_router.post("/bundle", response_model=Envelope[LeadComposite], status_code=status.HTTP_201_CREATED)
def create_lead_bundle(
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[LeadComposite] | JSONResponse:
    try:
        bundle = validate_lead_bundle(payload)
        return Envelope(data=LeadBundleService(repos).create(db, bundle))
    except CRMError as exc:
        return error_response(exc)


@leads_router.get("/{lead_id}", response_model=Envelope[LeadComposite])
def get_lead(
    lead_id: str,
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[LeadComposite] | JSONResponse:
    try:
        return Envelope(data=repos.leads.get(db, lead_id))
    except CRMError as exc:
        return error_response(exc)


@leads_router.post("", response_model=Envelope[LeadComposite], status_code=status.HTTP_201_CREATED)
def create_lead(
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[LeadComposite] | JSONResponse:
    try:
        return _create(db, repos.leads, "lead", payload)
    except CRMError as exc:
        return error_response(exc)


@leads_router.put("/{lead_id}", response_model=Envelope[LeadComposite])
def update_lead(
    lead_id: str,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[LeadComposite] | JSONResponse:
    try:
        return _update(db, repos.leads, "lead", lead_id, payload)
    except CRMError as exc:
        return error_response(exc)


@leads_router.put("/{lead_id}/stage", response_model=Envelope[LeadComposite])
def move_lead_to_stage(
    lead_id: str,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[LeadComposite] | JSONResponse:
    try:
        move = validate_update("lead_stage", payload)
        return Envelope(data=repos.leads.move_to_stage(db, lead_id, move.pipeline_stage_id))
    except CRMError as exc:
        return error_response(exc)


@leads_router.delete("/{lead_id}", response_model=Envelope[dict[str, Any]])
def delete_lead(
    lead_id: str,
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[dict[str, Any]] | JSONResponse:
    try:
        return _deleted("lead", repos.leads.delete(db, lead_id))
    except CRMError as exc:
        return error_response(exc)


# Follow-ups


@follow_ups_router.get("", response_model=Envelope[list[FollowUpComposite]])
def list_follow_ups(
    search: str | None = Query(default=None),
    status_filter: str | None = Query(default=None, alias="status"),
    priority: str | None = Query(default=None),
    follow_up_type: str | None = Query(default=None, alias="type"),
    lead_id: str | None = Query(default=None, alias="leadId"),
    assigned_to: str | None = Query(default=None, alias="assignedTo"),
    overdue: bool = Query(default=False),
    limit: int | None = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[list[FollowUpComposite]] | JSONResponse:
    try:
        items = repos.follow_ups.list_records(
            db,
            search=search,
            filters={
                "status": status_filter,
                "priority": priority,
                "type": follow_up_type,
                "leadId": lead_id,
                "assignedTo": assigned_to,
                "overdue": overdue,
            },
            limit=_page(limit),
            offset=offset,
        )
        return Envelope(data=items)
    except CRMError as exc:
        return error_response(exc)


@follow_ups_router.get("/{follow_up_id}", response_model=Envelope[FollowUpComposite])
def get_follow_up(
    follow_up_id: str,
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[FollowUpComposite] | JSONResponse:
    try:
        return Envelope(data=repos.follow_ups.get(db, follow_up_id))
    except CRMError as exc:
        return error_response(exc)


@follow_ups_router.post("", response_model=Envelope[FollowUpComposite], status_code=status.HTTP_201_CREATED)
def create_follow_up(
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[FollowUpComposite] | JSONResponse:
    try:
        return _create(db, repos.follow_ups, "follow_up", payload)
    except CRMError as exc:
        return error_response(exc)


@follow_ups_router.put("/{follow_up_id}", response_model=Envelope[FollowUpComposite])
def update_follow_up(
    follow_up_id: str,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[FollowUpComposite] | JSONResponse:
    try:
        return _update(db, repos.follow_ups, "follow_up", follow_up_id, payload)
    except CRMError as exc:
        return error_response(exc)


@follow_ups_router.post("/{follow_up_id}/complete", response_model=Envelope[FollowUpComposite])
def complete_follow_up(
    follow_up_id: str,
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[FollowUpComposite] | JSONResponse:
    try:
        return Envelope(data=repos.follow_ups.complete(db, follow_up_id))
    except CRMError as exc:
        return error_response(exc)


@follow_ups_router.delete("/{follow_up_id}", response_model=Envelope[dict[str, Any]])
def delete_follow_up(
    follow_up_id: str,
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[dict[str, Any]] | JSONResponse:
    try:
        return _deleted("followUp", repos.follow_ups.delete(db, follow_up_id))
    except CRMError as exc:
        return error_response(exc)


# Users


@users_router.get("", response_model=Envelope[list[UserRead]])
def list_users(
    search: str | None = Query(default=None),
    role: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[list[UserRead]] | JSONResponse:
    try:
        items = repos.users.list_records(
            db,
            search=search,
            filters={"role": role},
            limit=_page(limit),
            offset=offset,
        )
        return Envelope(data=items)
    except CRMError as exc:
        return error_response(exc)


@users_router.get("/{user_id}", response_model=Envelope[UserRead])
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[UserRead] | JSONResponse:
    try:
        return Envelope(data=repos.users.get(db, user_id))
    except CRMError as exc:
        return error_response(exc)


@users_router.post("", response_model=Envelope[UserRead], status_code=status.HTTP_201_CREATED)
def create_user(
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[UserRead] | JSONResponse:
    try:
        return _create(db, repos.users, "user", payload)
    except CRMError as exc:
        return error_response(exc)


# Dashboard


@dashboard_router.get("/metrics", response_model=Envelope[DashboardMetricsRead])
def dashboard_metrics(
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[DashboardMetricsRead] | JSONResponse:
    try:
        return Envelope(data=DashboardService(repos).metrics(db))
    except CRMError as exc:
        return error_response(exc)


@dashboard_router.get("/pipeline", response_model=Envelope[list[PipelineColumnRead]])
def dashboard_pipeline(
    db: Session = Depends(get_db),
    repos: CRMRepositories = Depends(get_repositories),
) -> Envelope[list[PipelineColumnRead]] | JSONResponse:
    try:
        return Envelope(data=DashboardService(repos).pipeline(db))
    except CRMError as exc:
        return error_response(exc)
