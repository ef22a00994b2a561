"""
Exception handlers mapping the homestay error hierarchy onto HTTP.

    GuardRejection            400, 403 for role / district / ownership
    NotFoundError             404
    PayloadIntegrityFailure   400, generic body
    ConcurrencyConflict       409
    ImmutabilityViolation     409
    ServiceRequestError       400, 409 for an already active request
    PaymentError              400, 409 for an attempt still open
    GatewayConfigurationError 500, generic body
    ExternalDependencyFailure 502, generic body
    ValueError                400

Gateway-facing failures never echo internal detail; the reconciler has
already logged the full non-secret context.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from homestay_kernel.exceptions import (
    ActiveServiceRequestExistsError,
    ConcurrencyConflict,
    ExternalDependencyFailure,
    GatewayConfigurationError,
    GuardRejection,
    ImmutabilityViolationError,
    NotFoundError,
    PayloadIntegrityFailure,
    PaymentAttemptOpenError,
    PaymentError,
    ServiceRequestError,
    error_payload,
)
from homestay_kernel.logging_config import get_logger

logger = get_logger("api.errors")

FORBIDDEN_CONDITIONS = frozenset({"role", "district", "ownership"})


async def _guard_rejection(request: Request, exc: GuardRejection) -> JSONResponse:
    status = 403 if exc.condition in FORBIDDEN_CONDITIONS else 400
    return JSONResponse(status_code=status, content=error_payload(exc))


async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content=error_payload(exc))


async def _payload_integrity(request: Request, exc: PayloadIntegrityFailure) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"code": PayloadIntegrityFailure.code, "message": "Invalid payment response"},
    )


async def _conflict(request: Request, exc: ConcurrencyConflict | ImmutabilityViolationError) -> JSONResponse:
    return JSONResponse(status_code=409, content=error_payload(exc))


async def _service_request(request: Request, exc: ServiceRequestError) -> JSONResponse:
    status = 409 if isinstance(exc, ActiveServiceRequestExistsError) else 400
    return JSONResponse(status_code=status, content=error_payload(exc))


async def _payment(request: Request, exc: PaymentError) -> JSONResponse:
    status = 409 if isinstance(exc, PaymentAttemptOpenError) else 400
    return JSONResponse(status_code=status, content=error_payload(exc))


async def _configuration(request: Request, exc: GatewayConfigurationError) -> JSONResponse:
    logger.error("gateway_configuration_error", extra={"missing": list(exc.missing)})
    return JSONResponse(
        status_code=500,
        content={"code": exc.code, "message": "Payment gateway is not configured"},
    )


async def _external(request: Request, exc: ExternalDependencyFailure) -> JSONResponse:
    return JSONResponse(
        status_code=502,
        content={"code": exc.code, "message": "Upstream service unavailable"},
    )


async def _value_error(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"code": "INVALID_INPUT", "message": str(exc)})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GuardRejection, _guard_rejection)
    app.add_exception_handler(NotFoundError, _not_found)
    app.add_exception_handler(PayloadIntegrityFailure, _payload_integrity)
    app.add_exception_handler(ConcurrencyConflict, _conflict)
    app.add_exception_handler(ImmutabilityViolationError, _conflict)
    app.add_exception_handler(ServiceRequestError, _service_request)
    app.add_exception_handler(PaymentError, _payment)
    app.add_exception_handler(GatewayConfigurationError, _configuration)
    app.add_exception_handler(ExternalDependencyFailure, _external)
    app.add_exception_handler(ValueError, _value_error)
