"""
Domain exceptions raised by the service layer.

Services never import FastAPI; the API maps these exceptions to HTTP
responses in `api.main`.
"""

from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Base class for errors raised by services."""

    status_code = 400

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class NotFoundError(ServiceError):
    """Referenced record does not exist."""

    status_code = 404


class ConflictError(ServiceError):
    """Uniqueness constraint would be violated."""

    status_code = 409


class BusinessRuleError(ServiceError):
    """Operation is not allowed in the current state."""

    status_code = 400
