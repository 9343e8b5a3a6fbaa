"""FastAPI dependencies."""
from exam_api.dependencies.auth import get_current_user_id
from exam_api.dependencies.sessions import get_session_manager, get_session_registry

__all__ = ["get_current_user_id", "get_session_manager", "get_session_registry"]
