"""Dashboard figures reduced from already-fetched record lists.

Nothing in here talks to the database: callers fetch full lists through the
repositories and hand them over, so every refresh recomputes from scratch.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import date, datetime, timezone

from pymecrm.crm.schemas import (
    CompanyRead,
    ContactRead,
    DashboardMetricsRead,
    FollowUpRead,
    LeadRead,
    PipelineColumnRead,
    PipelineStageRead,
)

UNASSIGNED_COLUMN = "Unassigned"


def is_overdue(status: str | None, due_date: str | None, today: date) -> bool:
    """Pending follow-ups whose due date (calendar-date part only) is today or earlier."""
    if status != "pending" or not due_date:
        return False
    return due_date[:10] <= today.isoformat()


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def conversion_rate(leads: Sequence[LeadRead]) -> int:
    if not leads:
        return 0
    won = sum(1 for lead in leads if lead.status == "won")
    return _round_half_up(100 * won / len(leads))


def completed_in_month(follow_up: FollowUpRead, now: datetime) -> bool:
    if follow_up.status != "completed":
        return False
    completed_at = _as_utc(follow_up.completed_at or follow_up.updated_at)
    current = _as_utc(now)
    return (completed_at.year, completed_at.month) == (current.year, current.month)


def compute_dashboard_metrics(
    *,
    companies: Sequence[CompanyRead],
    leads: Sequence[LeadRead],
    contacts: Sequence[ContactRead],
    follow_ups: Sequence[FollowUpRead],
    now: datetime,
) -> DashboardMetricsRead:
    today = _as_utc(now).date()
    return DashboardMetricsRead(
        total_companies=len(companies),
        total_leads=len(leads),
        active_leads=sum(1 for lead in leads if lead.status == "active"),
        total_contacts=len(contacts),
        total_value=sum(lead.value or 0 for lead in leads),
        conversion_rate=conversion_rate(leads),
        pending_follow_ups=sum(1 for item in follow_ups if item.status == "pending"),
        completed_this_month=sum(1 for item in follow_ups if completed_in_month(item, now)),
        overdue_follow_ups=sum(1 for item in follow_ups if is_overdue(item.status, item.due_date, today)),
    )


def build_pipeline_board(
    stages: Sequence[PipelineStageRead],
    leads: Sequence[LeadRead],
) -> list[PipelineColumnRead]:
    """One column per stage in display order, plus an unassigned bucket.

    Leads pointing at a stage that no longer exists land in the unassigned bucket.
    """
    known = {stage.id for stage in stages}
    counts: dict[str | None, int] = {}
    values: dict[str | None, float] = {}
    for lead in leads:
        key = lead.pipeline_stage_id if lead.pipeline_stage_id in known else None
        counts[key] = counts.get(key, 0) + 1
        values[key] = values.get(key, 0.0) + (lead.value or 0)

    columns = [
        PipelineColumnRead(
            stage_id=stage.id,
            name=stage.name,
            color=stage.color,
            order=stage.order,
            lead_count=counts.get(stage.id, 0),
            total_value=values.get(stage.id, 0.0),
        )
        for stage in stages
    ]
    columns.append(
        PipelineColumnRead(
            stage_id=None,
            name=UNASSIGNED_COLUMN,
            color=None,
            order=None,
            lead_count=counts.get(None, 0),
            total_value=values.get(None, 0.0),
        )
    )
    return columns
