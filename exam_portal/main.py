"""FastAPI entrypoint for the exam portal assessment service."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from exam_portal.config import settings
from exam_portal.database import create_db_and_tables
from exam_portal.exceptions import PortalError
from exam_portal.routers import assessments as assessments_router_module
from exam_portal.routers import attempts as attempts_router_module
from exam_portal.routers import marks as marks_router_module

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database schema on startup."""
    create_db_and_tables()
    logger.info("Database tables initialized")
    yield


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    """Render core errors as ``{"error": ...}`` with the error's status code."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies use the same error shape as core errors."""
    messages = []
    for error in exc.errors():
        field_name = ".".join(str(part) for part in error.get("loc", ())[1:]) or "body"
        messages.append(f"{field_name}: {error.get('msg', 'Invalid input')}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "; ".join(messages) or "Invalid request"},
    )


# Routers
app.include_router(attempts_router_module.router, prefix="/attempts", tags=["attempts"])
app.include_router(assessments_router_module.router, tags=["assessments"])
app.include_router(marks_router_module.router, tags=["marks"])


@app.get("/health")
def health():
    return {"status": "ok"}
