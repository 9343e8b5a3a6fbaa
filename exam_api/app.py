"""Main FastAPI application."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from exam_api.database import SessionLocal, init_db
from exam_api.logging_setup import setup_console_logging
from exam_api.routes import sessions
from exam_api.services.cleanup_service import schedule_sessions_cleanup
from exam_api.services.persistence import SqlPersistenceGateway
from exam_api.services.session_registry import SessionRegistry

setup_console_logging()

app = FastAPI(title="Exam Session API")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# Startup events
@app.on_event("startup")
def startup_events() -> None:
    """Initialize database, session registry and cleanup tasks on startup."""
    init_db()
    app.state.session_registry = SessionRegistry(SqlPersistenceGateway(SessionLocal))
    schedule_sessions_cleanup()


@app.on_event("shutdown")
def shutdown_events() -> None:
    """Flush live sessions before the process exits."""
    registry = getattr(app.state, "session_registry", None)
    if registry is not None:
        registry.shutdown()


@app.get("/api/health")
def health() -> dict[str, str]:
    """Liveness check."""
    return {"status": "ok"}


# Include routers
app.include_router(sessions.router)
