"""Error taxonomy shared by the settlement and station services.

Every error carries a machine-readable ``code`` and an HTTP status so the
API layer can render it without knowing the concrete type.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.core.logging import get_logger

logger = get_logger(__name__)


class SettlementServiceError(Exception):
    """Base exception for all domain errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(SettlementServiceError):
    """A required input is missing or malformed."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(SettlementServiceError):
    """A referenced vendor, station or settlement does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class ConflictError(SettlementServiceError):
    """The requested transition clashes with existing state."""

    code = "CONFLICT"
    status_code = 409


class NoPendingWorkError(SettlementServiceError):
    """Nothing is left to settle for the requested vendor and day."""

    code = "NO_PENDING_WORK"
    status_code = 422


class DependencyError(SettlementServiceError):
    """A storage or notification side effect failed."""

    code = "DEPENDENCY_ERROR"
    status_code = 502


def register_exception_handlers(app: FastAPI) -> None:
    """Render domain errors as ``{"detail", "code", "details"}`` JSON."""

    @app.exception_handler(SettlementServiceError)
    async def _domain_error_handler(
        request: Request, exc: SettlementServiceError
    ) -> JSONResponse:
        logger.warning(
            "Request rejected: %s %s -> %s (%s)",
            request.method,
            request.url.path,
            exc.code,
            exc.message,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.message,
                "code": exc.code,
                "details": jsonable_encoder(exc.details),
            },
        )
