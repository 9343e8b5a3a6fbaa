"""API route modules."""
from exam_api.routes import sessions

__all__ = ["sessions"]
