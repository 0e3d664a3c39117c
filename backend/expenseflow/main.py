import logging

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from expenseflow.core.config import settings
from expenseflow.core.exceptions import (
    ApprovalWorkflowError,
    ConversionError,
    InvalidInput,
    InvalidState,
    InvariantViolation,
    NotFound,
)
from expenseflow.core.limiter import limiter
from expenseflow.core.logging import setup_logging
from expenseflow.middleware.request_id import RequestIdMiddleware

setup_logging()

logger = logging.getLogger(__name__)

# Initialize Sentry error monitoring
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        environment=getattr(settings, 'APP_ENV', 'development'),
        send_default_pii=False,
    )
    logger.info("Sentry initialized")


app = FastAPI(
    title="Expense Approval Workflow",
    version="0.1.0",
    docs_url="/api/docs" if settings.APP_ENV != "production" else None,
    redoc_url="/api/redoc" if settings.APP_ENV != "production" else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(RequestIdMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Most specific first; InvalidState also covers AlreadyProcessed
_ERROR_STATUS: list[tuple[type[ApprovalWorkflowError], int]] = [
    (NotFound, status.HTTP_404_NOT_FOUND),
    (InvalidState, status.HTTP_409_CONFLICT),
    (InvalidInput, status.HTTP_400_BAD_REQUEST),
    (ConversionError, status.HTTP_502_BAD_GATEWAY),
    (InvariantViolation, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_for_error(exc: ApprovalWorkflowError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


@app.exception_handler(ApprovalWorkflowError)
async def workflow_error_handler(request: Request, exc: ApprovalWorkflowError):
    status_code = status_for_error(exc)
    log = logger.error if status_code >= 500 else logger.info
    log("%s %s -> %s %s: %s", request.method, request.url.path, status_code, exc.error_code, exc.message)
    content = {"detail": exc.message, "error_code": exc.error_code}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception: %s %s — %s", request.method, request.url.path, exc, exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal server error."})


# ─── Routers ───
from expenseflow.api.v1.router import api_router  # noqa: E402

app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health():
    return {"status": "ok", "env": settings.APP_ENV}
