"""Session manager dependencies for FastAPI."""
from collections.abc import Iterator
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from exam_api.dependencies.auth import get_current_user_id
from exam_api.services.session_manager import SessionManager
from exam_api.services.session_registry import SessionRegistry


def get_session_registry(request: Request) -> SessionRegistry:
    """Get the registry created at application startup."""
    registry = getattr(request.app.state, "session_registry", None)
    if registry is None:
        raise HTTPException(status_code=503, detail="Session service not ready")
    return registry


def get_session_manager(
    user_id: Annotated[str, Depends(get_current_user_id)],
    registry: Annotated[SessionRegistry, Depends(get_session_registry)],
) -> Iterator[SessionManager]:
    """Get the session manager owned by the current user for this request."""
    with registry.lease(user_id) as manager:
        yield manager
