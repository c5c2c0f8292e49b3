"""
Manejadores de excepciones centralizados para la aplicación FastAPI.

Este módulo define los manejadores de excepciones personalizados y globales,
proporcionando respuestas consistentes y logging apropiado para cada tipo
de error. Dos contratos externos tienen su propio formato:

- el script de checkout espera `{"success": false, "data": {"message": ...}}`
- Razorpay solo lee el código HTTP de los webhooks; el cuerpo es
  `{"message": ..., "status": "error"}`
"""

import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from razorpay_bridge.core.config import get_settings
from razorpay_bridge.utils.error_handler import (
    AppException,
    PaymentConfirmationException,
    RazorpayAPIException,
    ValidationException,
    WebhookException,
)

logger = logging.getLogger(__name__)


def _base_content(request: Request) -> Dict[str, Any]:
    return {
        "path": str(request.url.path),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": request.headers.get("X-Request-ID"),
    }


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """AppException genérica; `details` solo se expone con DEBUG."""
    log_level = logging.ERROR if exc.is_critical or exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        f"App Exception: {exc.message} - "
        f"Code: {exc.error_code.value} - "
        f"URL: {request.url} - "
        f"Details: {exc.details}",
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "error_type": "application_error",
            "error_code": exc.error_code.value,
            "message": exc.message,
            "details": exc.details if get_settings().DEBUG else None,
            **_base_content(request),
        },
    )


async def razorpay_api_exception_handler(request: Request, exc: RazorpayAPIException) -> JSONResponse:
    """
    Error de Razorpay: status 423 con el código HTTP de Razorpay y
    Retry-After cuando hubo rate limit.
    """
    logger.error(
        f"Razorpay API Exception: {exc.message} - "
        f"API Code: {exc.api_response_code} - "
        f"Endpoint: {exc.endpoint} - "
        f"Rate Limited: {exc.rate_limited} - "
        f"URL: {request.url}"
    )

    headers = {}
    if exc.rate_limited and exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "error_type": "razorpay_api_error",
            "error_code": exc.error_code.value,
            "message": exc.message,
            "razorpay_response_code": exc.api_response_code,
            "rate_limited": exc.rate_limited,
            "retry_after": exc.retry_after,
            "endpoint": exc.endpoint,
            **_base_content(request),
        },
        headers=headers,
    )


async def validation_exception_handler(request: Request, exc: ValidationException) -> JSONResponse:
    logger.warning(
        f"Validation Exception: {exc.message} - "
        f"Field: {exc.field} - "
        f"Value: {exc.invalid_value} - "
        f"URL: {request.url}"
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "error_type": "validation_error",
            "error_code": exc.error_code.value,
            "message": exc.message,
            "field": exc.field,
            "invalid_value": exc.invalid_value if get_settings().DEBUG else None,
            "expected_format": exc.expected_format,
            **_base_content(request),
        },
    )


async def payment_confirmation_exception_handler(
    request: Request, exc: PaymentConfirmationException
) -> JSONResponse:
    """
    Manejador para confirmaciones de pago fallidas.

    El motivo real solo va al log; el navegador recibe el mensaje genérico.
    """
    logger.warning(f"Payment confirmation failed: {exc.reason} - Status: {exc.status_code} - URL: {request.url}")

    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "data": {"message": exc.message}},
    )


async def webhook_exception_handler(request: Request, exc: WebhookException) -> JSONResponse:
    """Manejador para webhooks rechazados."""
    logger.warning(f"Webhook rejected: {exc.message} - Status: {exc.status_code} - Code: {exc.error_code.value}")

    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "status": "error"},
    )


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Body o parámetros que no cumplen el schema: 422 con los errores de pydantic."""
    logger.warning(f"Request Validation Error: {exc.errors()} - URL: {request.url}")

    return JSONResponse(
        status_code=422,
        content={
            "error": True,
            "error_type": "validation_error",
            "error_code": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "errors": jsonable_errors(exc),
            **_base_content(request),
        },
    )


async def starlette_http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.warning(f"HTTP Exception: {exc.status_code} - {exc.detail} - URL: {request.url}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "error_type": "http_error",
            "status_code": exc.status_code,
            "message": exc.detail,
            **_base_content(request),
        },
        headers=getattr(exc, "headers", None),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Cualquier otra excepción: 500 sin detalles internos fuera de debug."""
    logger.error(
        f"Unhandled Exception: {str(exc)} - "
        f"Type: {type(exc).__name__} - "
        f"URL: {request.url} - "
        f"Traceback: {traceback.format_exc()}"
    )

    debug = get_settings().DEBUG

    error_message = f"{type(exc).__name__}: {exc}" if debug else "Internal server error occurred"

    return JSONResponse(
        status_code=500,
        content={
            "error": True,
            "error_type": "internal_server_error",
            "message": error_message,
            **_base_content(request),
            "traceback": traceback.format_exc() if debug else None,
        },
    )


def configure_exception_handlers(app: FastAPI) -> None:
    """
    Registra los manejadores. Starlette elige el de la clase más cercana
    en el MRO, así que las subclases de AppException tienen prioridad.
    """
    logger.info("🔧 Configurando manejadores de excepciones...")

    app.add_exception_handler(PaymentConfirmationException, payment_confirmation_exception_handler)
    app.add_exception_handler(WebhookException, webhook_exception_handler)
    app.add_exception_handler(ValidationException, validation_exception_handler)
    app.add_exception_handler(RazorpayAPIException, razorpay_api_exception_handler)
    app.add_exception_handler(AppException, app_exception_handler)

    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, starlette_http_exception_handler)

    app.add_exception_handler(Exception, global_exception_handler)

    logger.info("✅ Manejadores de excepciones configurados correctamente")


# Funciones auxiliares


def jsonable_errors(exc: RequestValidationError) -> list:
    """Reduce los errores de pydantic a campos serializables."""
    return [
        {"loc": list(error.get("loc", [])), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
