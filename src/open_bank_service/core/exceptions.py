"""
Error taxonomy and exception handlers for consistent error responses.

Every ledger error is a ServiceError with a fixed code and message.
Offending values travel only in ``details`` so callers can match on
``error`` without parsing text. ``category`` separates errors raised
before any mutation or external call ("validation") from errors raised
after validation passed ("settlement").
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, ClassVar, cast

from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from open_bank_service.logging import get_logger

if TYPE_CHECKING:
    from fastapi import FastAPI, Request
    from starlette.types import ExceptionHandler

VALIDATION = "validation"
SETTLEMENT = "settlement"


class ServiceError(Exception):
    """Base error carrying an error code, HTTP status and structured details."""

    category: ClassVar[str | None] = None

    def __init__(
        self,
        error: str,
        message: str,
        status_code: int,
        details: dict[str, Any],
    ) -> None:
        super().__init__(message)
        self.error = error
        self.message = message
        self.status_code = status_code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "error": self.error,
            "message": self.message,
            "details": self.details,
        }
        if self.category is not None:
            body["category"] = self.category
        return body


class NotFoundError(ServiceError):
    """Referenced user or account does not exist."""

    category = VALIDATION

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(
            f"{entity.upper()}_NOT_FOUND",
            f"{entity.capitalize()} not found",
            404,
            {"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class DuplicateEmailError(ServiceError):
    category = VALIDATION

    def __init__(self, email: str) -> None:
        super().__init__(
            "DUPLICATE_EMAIL",
            "A user with this email already exists",
            409,
            {"email": email},
        )
        self.email = email


class DuplicateWalletError(ServiceError):
    category = VALIDATION

    def __init__(self, wallet_address: str) -> None:
        super().__init__(
            "DUPLICATE_WALLET",
            "This wallet address is already associated with another user",
            409,
            {"wallet_address": wallet_address},
        )
        self.wallet_address = wallet_address


class InvalidAmountError(ServiceError):
    """Amount is non-positive, non-finite, or not representable in minor units."""

    category = VALIDATION

    def __init__(self, amount: Decimal | int | str) -> None:
        super().__init__(
            "INVALID_AMOUNT",
            "Amount must be a positive decimal",
            400,
            {"amount": str(amount)},
        )
        self.amount = amount


class NoWalletAddressError(ServiceError):
    category = VALIDATION

    def __init__(self, user_id: str) -> None:
        super().__init__(
            "NO_WALLET_ADDRESS",
            "User has no wallet address for settlement",
            400,
            {"user_id": user_id},
        )
        self.user_id = user_id


class InvalidAddressError(ServiceError):
    category = VALIDATION

    def __init__(self, address: str) -> None:
        super().__init__(
            "INVALID_ADDRESS",
            "Wallet address is malformed",
            400,
            {"address": address},
        )
        self.address = address


class SettlementAddressRejectedError(InvalidAddressError):
    """The settlement gateway refused the destination after the transfer was sent."""

    category = SETTLEMENT


class SettlementUnavailableError(ServiceError):
    """The settlement system could not be reached, errored, or is not configured."""

    category = SETTLEMENT

    def __init__(self, reason: str) -> None:
        super().__init__(
            "SETTLEMENT_UNAVAILABLE",
            "Settlement system is unavailable",
            502,
            {"reason": reason},
        )
        self.reason = reason


class SettlementRejectedError(ServiceError):
    """The settlement system explicitly refused the operation."""

    category = SETTLEMENT

    def __init__(self, reason: str, upstream_error: str | None = None) -> None:
        super().__init__(
            "SETTLEMENT_REJECTED",
            "Settlement system rejected the operation",
            422,
            {"reason": reason, "upstream_error": upstream_error},
        )
        self.reason = reason
        self.upstream_error = upstream_error


class SettlementUncertainError(ServiceError):
    """
    Outcome of a settlement call could not be determined.

    The transfer may or may not have been applied. Re-query the external
    balance instead of retrying the transfer.
    """

    category = SETTLEMENT

    def __init__(
        self,
        reason: str,
        user_id: str | None = None,
        address: str | None = None,
        amount_minor_units: int | None = None,
    ) -> None:
        super().__init__(
            "SETTLEMENT_UNCERTAIN",
            "Settlement outcome is unknown; check the external balance before retrying",
            504,
            {
                "reason": reason,
                "user_id": user_id,
                "address": address,
                "amount_minor_units": amount_minor_units,
                "recovery": "GET_EXTERNAL_BALANCE",
            },
        )
        self.reason = reason
        self.user_id = user_id
        self.address = address
        self.amount_minor_units = amount_minor_units


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Handle ServiceError exceptions."""
    logger = get_logger(__name__)
    logger.warning(
        "Service error",
        extra={
            "error_code": exc.error,
            "status_code": exc.status_code,
            "path": str(request.url.path),
        },
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def unhandled_exception_handler(request: Request, _exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger = get_logger(__name__)
    logger.exception("Unhandled exception", extra={"path": str(request.url.path)})
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "details": {},
        },
    )


async def http_exception_handler(
    _request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Handle Starlette HTTP exceptions (e.g., 405 from router)."""
    if exc.status_code == 405:
        return JSONResponse(
            status_code=405,
            content={
                "error": "METHOD_NOT_ALLOWED",
                "message": "Method not allowed",
                "details": {},
            },
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "HTTP_ERROR",
            "message": str(exc.detail),
            "details": {},
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the app."""
    app.add_exception_handler(ServiceError, cast("ExceptionHandler", service_error_handler))
    app.add_exception_handler(Exception, unhandled_exception_handler)
    app.add_exception_handler(
        StarletteHTTPException,
        cast("ExceptionHandler", http_exception_handler),
    )
