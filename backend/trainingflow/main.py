"""
Training Workflow Backend - FastAPI Application Entry Point.

This is the main application module that:
1. Initializes the FastAPI app with CORS middleware
2. Sets up structured JSON logging
3. Implements request ID middleware (X-Request-ID header)
4. Maps workflow errors onto HTTP responses
5. Registers the REST routes and the dashboard event stream

The application follows a modular architecture:
- routes/: API endpoint handlers and the /ws/events stream
- models/: SQLAlchemy ORM models
- services/: Business logic (transitions, store, stats, broadcaster)
- errors.py: Workflow error taxonomy
- logging_config.py: Structured logging configuration
- database.py: Database connection management
"""

import os
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from trainingflow.errors import CascadeFailure, WorkflowError
from trainingflow.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from trainingflow.routes import events, stats, students, uids, workflow
from trainingflow.database import DATABASE_URL, create_tables

# Import the models package so every table is registered with Base.metadata
import trainingflow.models  # noqa: F401

# ──────────────────────────────────────────────────────────────
# Initialize structured logging BEFORE anything else
# ──────────────────────────────────────────────────────────────
setup_logging()
logger = get_logger("http")

# Auto-create tables for SQLite local development
if DATABASE_URL.startswith("sqlite"):
    logger.info("Using SQLite: creating tables directly")
    create_tables()

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# ──────────────────────────────────────────────────────────────
# Create FastAPI application
# ──────────────────────────────────────────────────────────────
app = FastAPI(
    title="Training Workflow Backend",
    description=(
        "Coordinates training sessions (UIDs) between admins, assessors and moderators: "
        "enforces the status lifecycle, aggregates dashboard counters and pushes "
        "every committed change to open dashboards over a WebSocket."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"]
)


# ──────────────────────────────────────────────────────────────
# Request ID Middleware
#
# Generates a unique UUID per incoming request, stores it in a context
# variable for every log entry, and returns it as X-Request-ID.
# ──────────────────────────────────────────────────────────────
@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    req_id = generate_request_id()
    request_id_var.set(req_id)
    start_time = time.time()

    log_with_context(logger, "INFO",
        f"Request started: {request.method} {request.url.path}",
        context={"request_id": req_id},
        extra_data={
            "ip": request.client.host if request.client else "unknown",
            "actor_role": request.headers.get("x-actor-role", ""),
            "query_params": dict(request.query_params)
        })

    response = await call_next(request)

    duration_ms = (time.time() - start_time) * 1000
    response.headers["X-Request-ID"] = req_id

    log_with_context(logger, "INFO",
        f"Request completed: {request.method} {request.url.path} → {response.status_code}",
        context={"request_id": req_id},
        extra_data={
            "duration_ms": round(duration_ms, 2),
            "status_code": response.status_code
        })

    return response


# ──────────────────────────────────────────────────────────────
# Workflow error handler
# ──────────────────────────────────────────────────────────────
@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    level = "ERROR" if isinstance(exc, CascadeFailure) else "WARNING"
    log_with_context(logger, level,
        f"{exc.code}: {exc.message}",
        context={"path": request.url.path, **exc.context},
        extra_data={"status_code": exc.status_code})
    return JSONResponse(status_code=exc.status_code,
                        content={"detail": exc.message, "error": exc.code})


# ──────────────────────────────────────────────────────────────
# Register API routes
# ──────────────────────────────────────────────────────────────
app.include_router(uids.router, tags=["UIDs"])
app.include_router(workflow.router, tags=["Workflow"])
app.include_router(students.router, tags=["Students"])
app.include_router(stats.router, tags=["Stats"])
app.include_router(events.router, tags=["Events"])


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint for Docker health checks and monitoring."""
    return {"status": "healthy", "service": "training-workflow-backend", "version": "1.0.0"}


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "service": "Training Workflow Backend",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "create_uid": "POST /api/uid",
            "list_uids": "GET /api/uids (filtered by X-Actor-Role / X-Actor-Id)",
            "uid_detail": "GET /api/uid/{uid}",
            "attendance": "POST /api/attendance/{uid}",
            "user_form": "POST /api/user_form/{uid}",
            "assessor_edit": "PUT /api/assessor-review/{uid}/{student_id}",
            "review": "POST /api/assessor-review/{uid}/{student_id}/complete",
            "moderation": "POST /api/moderation/{uid}",
            "approve": "POST /api/admin_approve/{uid}",
            "stats": "GET /api/stats",
            "events": "WS /ws/events"
        }
    }
