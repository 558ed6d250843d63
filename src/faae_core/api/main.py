"""FAAE Projetos Core FastAPI application."""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from faae_core import __version__, fanout, schemas
from faae_core.config import get_settings
from faae_core.errors import FaaeError
from .routers import (
    auth,
    dashboard,
    files,
    notifications,
    projects,
    realtime,
    reports,
    search,
    tasks,
    time_entries,
    users,
)

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("faae-core")

logger.info(f"Starting {settings.app_name} {__version__}")

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Project and task management for FAAE Projetos",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FaaeError)
async def handle_domain_error(request: Request, exc: FaaeError):
    """Render domain errors as {kind, message, field}."""
    if exc.status_code >= 500:
        logger.error(f"{exc.kind} error on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.kind} error on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    """Render request validation failures in the same shape as domain errors."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path", "header", "form")]
    return JSONResponse(
        status_code=422,
        content={
            "kind": "validation",
            "message": first.get("msg", "Invalid request"),
            "field": ".".join(location) or None,
        },
    )


# Error bodies shared by every business router
ERROR_RESPONSES = {
    status_code: {"model": schemas.ErrorResponse, "description": description}
    for status_code, description in (
        (403, "Role not allowed"),
        (404, "Entity not found"),
        (422, "Invalid input"),
        (500, "Storage failure"),
    )
}

# Include all business logic routers with /api/v1 prefix
app.include_router(auth.router, prefix="/api/v1/auth", responses=ERROR_RESPONSES)
app.include_router(dashboard.router, prefix="/api/v1/dashboard", responses=ERROR_RESPONSES)
app.include_router(projects.router, prefix="/api/v1/projects", responses=ERROR_RESPONSES)
app.include_router(tasks.router, prefix="/api/v1/tasks", responses=ERROR_RESPONSES)
app.include_router(time_entries.router, prefix="/api/v1/time", responses=ERROR_RESPONSES)
app.include_router(reports.router, prefix="/api/v1/reports", responses=ERROR_RESPONSES)
app.include_router(search.router, prefix="/api/v1/search", responses=ERROR_RESPONSES)
app.include_router(files.router, prefix="/api/v1/files", responses=ERROR_RESPONSES)
app.include_router(notifications.router, prefix="/api/v1/notifications", responses=ERROR_RESPONSES)
app.include_router(users.router, prefix="/api/v1/users", responses=ERROR_RESPONSES)
app.include_router(realtime.router)


@app.get("/")
def root():
    """Root endpoint with server info."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs",
        "realtime": "/ws",
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "connections": fanout.registry.connection_count()}
