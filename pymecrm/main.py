from contextlib import asynccontextmanager, contextmanager
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from pymecrm.api.routes import router as api_router
from pymecrm.core.config import get_settings
from pymecrm.core.database import get_db
from pymecrm.crm.api import error_response
from pymecrm.crm.errors import CRMError, ValidationError
from pymecrm.crm.seed import seed_defaults
from pymecrm.crm.validation import issues_from_errors
from pymecrm.logging import configure_logging
from pymecrm.middleware.correlation_id import CorrelationIdMiddleware
from pymecrm.middleware.request_logging import RequestLoggingMiddleware
from pymecrm.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("pymecrm.lifecycle")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if settings.seed_on_startup:
        # seeds through the same session source as the request handlers
        with contextmanager(app.dependency_overrides.get(get_db, get_db))() as session:
            seed_defaults(session)
    logger.info("system.started", extra={"event_name": "system.started"})
    yield


app = FastAPI(title="PYME CRM API", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(ValidationError(issues_from_errors(exc.errors())))


@app.exception_handler(CRMError)
async def crm_error_handler(request: Request, exc: CRMError) -> JSONResponse:
    return error_response(exc)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("http.unhandled_error", exc_info=exc, extra={"path": request.url.path, "error": str(exc)})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": {"code": "SERVER_ERROR", "message": "Internal server error"}},
    )


setup_otel(get_settings())

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
