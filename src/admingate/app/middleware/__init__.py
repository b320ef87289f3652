"""HTTP middlewares (edge gate, request logging)."""

from admingate.app.middleware.gate import AdminGateMiddleware
from admingate.app.middleware.logging import LoggingMiddleware

__all__ = ["AdminGateMiddleware", "LoggingMiddleware"]
