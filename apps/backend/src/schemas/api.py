"""Response envelopes for the admin API.

Data endpoints (pages, accounts, calendar, mail, health) wrap their payload
in `ApiResponse`; every failure, including a relay that ends in an `error`
event, is returned as an `ErrorResponse` carrying the correlation id.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope for successful data responses."""

    success: bool = True
    data: T | None = None
    message: str = "Operation completed successfully"
    error: dict[str, Any] | None = None


class ErrorResponse(ApiResponse[None]):
    """Envelope for failed requests.

    `error` always holds `correlation_id` and `type`; other keys are
    added only where the environment allows details.
    """

    success: bool = False
    message: str = "An error occurred"
    error: dict[str, Any] | None = None

    @classmethod
    def of(
        cls,
        message: str,
        *,
        error_type: str,
        correlation_id: str,
        **details: Any,
    ) -> ErrorResponse:
        error: dict[str, Any] = {"correlation_id": correlation_id, "type": error_type}
        error.update(details)
        return cls(message=message, error=error)
