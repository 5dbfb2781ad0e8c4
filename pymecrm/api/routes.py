from fastapi import APIRouter, status
from fastapi.responses import JSONResponse, Response

from pymecrm.core.config import get_settings
from pymecrm.crm.api import (
    companies_router,
    contacts_router,
    dashboard_router,
    follow_ups_router,
    leads_router,
    stages_router,
    users_router,
)
from pymecrm.metrics import generate_metrics_payload, metrics_content_type

router = APIRouter()
router.include_router(companies_router)
router.include_router(contacts_router)
router.include_router(stages_router)
router.include_router(leads_router)
router.include_router(follow_ups_router)
router.include_router(users_router)
router.include_router(dashboard_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/metrics", tags=["system"])
def metrics() -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"success": False, "error": {"code": "NOT_FOUND", "message": "Not found"}},
        )
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
