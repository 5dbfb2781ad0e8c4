from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from pymecrm.crm.repositories import CRMRepositories, repositories as default_repositories
from pymecrm.crm.schemas import PipelineStageCreate, UserCreate

logger = logging.getLogger("pymecrm.lifecycle")

DEFAULT_STAGES: tuple[dict[str, object], ...] = (
    {"name": "Lead", "description": "Initial contact made", "order": 1, "color": "#6b7280", "is_default": True},
    {"name": "Qualified", "description": "Lead has been qualified", "order": 2, "color": "#3b82f6"},
    {"name": "Proposal", "description": "Proposal sent to client", "order": 3, "color": "#f59e0b"},
    {"name": "Negotiation", "description": "In negotiation phase", "order": 4, "color": "#ef4444"},
    {"name": "Closed Won", "description": "Deal successfully closed", "order": 5, "color": "#10b981"},
    {"name": "Closed Lost", "description": "Deal was lost", "order": 6, "color": "#6b7280"},
)

ADMIN_USER = {"email": "admin@codigofacil.com", "name": "Admin CodigoFacil", "role": "admin"}


def seed_defaults(session: Session, repositories: CRMRepositories | None = None) -> dict[str, int]:
    """Create the default pipeline stages and the admin user when they are missing.

    Safe to run on every start: existing stages (matched by name) and the admin
    user (matched by email) are left untouched.
    """
    repos = repositories or default_repositories
    created = {"stages": 0, "users": 0}

    for stage in DEFAULT_STAGES:
        if repos.stages.get_by_name(session, str(stage["name"])) is None:
            repos.stages.create(session, PipelineStageCreate(**stage))
            created["stages"] += 1

    if repos.users.get_by_email(session, ADMIN_USER["email"]) is None:
        repos.users.create(session, UserCreate(**ADMIN_USER))
        created["users"] += 1

    logger.info("crm.seed.completed", extra={"event_name": "crm.seed", "operation": "seed", "seeded": created})
    return created
