"""Error taxonomy shared by the ledger services and the API gateway."""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status


class LedgerError(Exception):
    """Represents an actionable ledger failure surfaced to API callers."""

    code: str = "internal"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        *,
        detail: Optional[Mapping[str, Any]] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.detail: Dict[str, Any] = dict(detail or {})

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        body.update(self.detail)
        return body

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


class InvalidArgumentError(LedgerError):
    code = "invalid-argument"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidMeterError(InvalidArgumentError):
    code = "invalid-meter"


class InvalidOrganizationError(InvalidArgumentError):
    code = "invalid-organization"


class UnauthenticatedError(LedgerError):
    code = "unauthenticated"
    status_code = status.HTTP_401_UNAUTHORIZED


class PermissionDeniedError(LedgerError):
    code = "permission-denied"
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(LedgerError):
    code = "not-found"
    status_code = status.HTTP_404_NOT_FOUND


class FailedPreconditionError(LedgerError):
    code = "failed-precondition"
    status_code = status.HTTP_412_PRECONDITION_FAILED


class ResourceExhaustedError(LedgerError):
    code = "resource-exhausted"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class QuotaExhaustedError(ResourceExhaustedError):
    """Raised when a reservation would push a meter past its hard limit."""

    def __init__(
        self,
        *,
        meter_id: str,
        used: int,
        requested: int,
        hard_limit: int,
        period_key: str,
    ) -> None:
        super().__init__(
            f"Usage limit reached for meter '{meter_id}'.",
            detail={
                "reason": "quota-exhausted",
                "meter_id": meter_id,
                "used": used,
                "requested": requested,
                "hard_limit": hard_limit,
                "period": period_key,
            },
        )
        self.meter_id = meter_id
        self.used = used
        self.requested = requested
        self.hard_limit = hard_limit
        self.period_key = period_key


class RateLimitedError(ResourceExhaustedError):
    def __init__(self, message: str = "Rate limit exceeded.", *, scope: str = "") -> None:
        super().__init__(message, detail={"reason": "rate-limited", "scope": scope})
        self.scope = scope


class DataLossError(LedgerError):
    code = "data-loss"
    status_code = status.HTTP_502_BAD_GATEWAY


class LedgerUnavailableError(LedgerError):
    """A dependency failed; the effect may or may not have been applied."""

    code = "unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


__all__ = [
    "DataLossError",
    "FailedPreconditionError",
    "InvalidArgumentError",
    "InvalidMeterError",
    "InvalidOrganizationError",
    "LedgerError",
    "LedgerUnavailableError",
    "NotFoundError",
    "PermissionDeniedError",
    "QuotaExhaustedError",
    "RateLimitedError",
    "ResourceExhaustedError",
    "UnauthenticatedError",
]
