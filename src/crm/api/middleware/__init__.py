"""API middleware package."""

from src.crm.api.middleware.logging import LoggingMiddleware
from src.crm.api.middleware.session import SessionMiddleware

__all__ = ["LoggingMiddleware", "SessionMiddleware"]
