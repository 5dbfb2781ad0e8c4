from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from pymecrm.core.database import transaction
from pymecrm.crm.dashboard import build_pipeline_board, compute_dashboard_metrics
from pymecrm.crm.errors import ValidationError
from pymecrm.crm.repositories import CRMRepositories
from pymecrm.crm.schemas import DashboardMetricsRead, LeadBundle, LeadComposite, PipelineColumnRead
from pymecrm.metrics import observe_entity_mutation
from pymecrm.otel import crm_span, get_tracer

logger = logging.getLogger("pymecrm.crm")
tracer = get_tracer("pymecrm.crm")


class LeadBundleService:
    """Creates a lead together with an optional new company and contact, all or nothing."""

    def __init__(self, repositories: CRMRepositories) -> None:
        self.repositories = repositories

    def create(self, session: Session, bundle: LeadBundle) -> LeadComposite:
        repos = self.repositories
        created: list[str] = []
        with crm_span(tracer, "lead", "bundle") as span:
            with transaction(session):
                company_id = bundle.lead.company_id
                if bundle.company is not None:
                    company = self._create_part(session, "company", repos.companies, bundle.company)
                    company_id = company.id
                    created.append("company")

                contact_id = bundle.lead.contact_id
                if bundle.contact is not None:
                    contact_dto = bundle.contact
                    if bundle.company is not None or contact_dto.company_id is None:
                        contact_dto = contact_dto.model_copy(update={"company_id": company_id})
                    contact = self._create_part(session, "contact", repos.contacts, contact_dto)
                    contact_id = contact.contact.id
                    created.append("contact")

                lead_dto = bundle.lead.model_copy(update={"company_id": company_id, "contact_id": contact_id})
                lead = self._create_part(session, "lead", repos.leads, lead_dto)
                created.append("lead")
            span.set_attribute("crm.entity_id", lead.lead.id)

        for entity in created:
            observe_entity_mutation(entity, "create")
        logger.info(
            "crm.lead.bundle_created",
            extra={"entity": "lead", "entity_id": lead.lead.id, "operation": "bundle"},
        )
        return repos.leads.get(session, lead.lead.id)

    @staticmethod
    def _create_part(session, part, repository, dto):  # type: ignore[no-untyped-def]
        try:
            return repository.create(session, dto, commit=False)
        except ValidationError as exc:
            raise exc.prefixed(part) from None


class DashboardService:
    def __init__(self, repositories: CRMRepositories) -> None:
        self.repositories = repositories

    def metrics(self, session: Session) -> DashboardMetricsRead:
        repos = self.repositories
        with crm_span(tracer, "dashboard", "metrics"):
            return compute_dashboard_metrics(
                companies=repos.companies.list_records(session),
                leads=[item.lead for item in repos.leads.list_records(session)],
                contacts=[item.contact for item in repos.contacts.list_records(session)],
                follow_ups=[item.follow_up for item in repos.follow_ups.list_records(session)],
                now=repos.clock(),
            )

    def pipeline(self, session: Session) -> list[PipelineColumnRead]:
        repos = self.repositories
        with crm_span(tracer, "dashboard", "pipeline"):
            return build_pipeline_board(
                repos.stages.list_records(session),
                [item.lead for item in repos.leads.list_records(session)],
            )
