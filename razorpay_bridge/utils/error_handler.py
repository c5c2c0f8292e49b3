"""
Excepciones de la aplicación.

Cada excepción lleva el código HTTP con el que la responde su manejador en
core/exception_handlers.py y si la operación que la causó puede
reintentarse (lo consulta utils/retry_handler.py).
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Códigos de error expuestos en las respuestas JSON."""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    DATABASE_ERROR = "DATABASE_ERROR"

    # Razorpay
    RAZORPAY_API_ERROR = "RAZORPAY_API_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INVALID_WEBHOOK_SIGNATURE = "INVALID_WEBHOOK_SIGNATURE"
    INVALID_WEBHOOK_PAYLOAD = "INVALID_WEBHOOK_PAYLOAD"

    # Pagos
    PAYMENT_CONFIRMATION_FAILED = "PAYMENT_CONFIRMATION_FAILED"
    REFUND_FAILED = "REFUND_FAILED"
    SUBSCRIPTION_ERROR = "SUBSCRIPTION_ERROR"
    UNSUPPORTED_CURRENCY = "UNSUPPORTED_CURRENCY"


class ErrorSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AppException(Exception):
    """
    Base de las excepciones de la aplicación.

    Args:
        message: Mensaje de error
        error_code: Código expuesto en la respuesta
        details: Datos extra; solo se devuelven con DEBUG
        status_code: Código HTTP de la respuesta
        severity: Severidad para el log
        is_retryable: Si repetir la operación puede tener éxito
        is_critical: Si se loggea como error aunque el status sea < 500
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        is_retryable: bool = False,
        is_critical: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code
        self.severity = severity
        self.is_retryable = is_retryable
        self.is_critical = is_critical

    def __str__(self) -> str:
        return f"{self.error_code.value}: {self.message}"


class ValidationException(AppException):
    """Dato de entrada inválido (monto, intervalo, llaves). Responde 422."""

    def __init__(
        self,
        message: str,
        field: str,
        invalid_value: Any = None,
        expected_format: Optional[str] = None,
        **kwargs,
    ):
        kwargs.setdefault("error_code", ErrorCode.VALIDATION_ERROR)
        kwargs.setdefault("status_code", 422)
        super().__init__(
            message=message,
            severity=ErrorSeverity.LOW,
            **kwargs,
        )
        self.field = field
        self.invalid_value = invalid_value
        self.expected_format = expected_format

        self.details.update(
            {
                "field": field,
                "invalid_value": str(invalid_value) if invalid_value is not None else None,
                "expected_format": expected_format,
            }
        )


class ConfigurationException(AppException):
    """
    Excepción para configuración inválida o incompleta (llaves de API, secretos).
    """

    def __init__(self, message: str, mode: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            status_code=500,
            severity=ErrorSeverity.HIGH,
            **kwargs,
        )
        self.mode = mode
        self.details.update({"mode": mode})


class NotFoundException(AppException):
    """
    Excepción para registros locales inexistentes.
    """

    def __init__(self, message: str, resource: str, identifier: Any = None, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.NOT_FOUND,
            status_code=404,
            severity=ErrorSeverity.LOW,
            **kwargs,
        )
        self.resource = resource
        self.identifier = identifier
        self.details.update({"resource": resource, "identifier": str(identifier) if identifier is not None else None})


class DatabaseException(AppException):
    """
    Excepción para errores de conexión o consulta en la base de datos local.
    """

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.DATABASE_ERROR,
            status_code=503,
            severity=ErrorSeverity.HIGH,
            is_retryable=True,
            is_critical=True,
            **kwargs,
        )
        self.operation = operation
        self.details.update({"operation": operation})


class RazorpayAPIException(AppException):
    """
    Error de una llamada a la API REST de Razorpay.

    `api_response_code` es el HTTP que devolvió Razorpay (None si no hubo
    respuesta); el status propio de la excepción es siempre 423 para que el
    checkout lo distinga de un error local. `vendor_error` guarda el objeto
    `error` del payload (code, description, source, step, reason).
    """

    DEFAULT_MESSAGE = "Unknown Razorpay API request error"

    def __init__(
        self,
        message: Optional[str] = None,
        api_response_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        rate_limited: bool = False,
        retry_after: Optional[int] = None,
        vendor_error: Optional[Dict[str, Any]] = None,
        idempotent: bool = True,
        **kwargs,
    ):
        error_code = ErrorCode.RAZORPAY_API_ERROR
        severity = ErrorSeverity.MEDIUM
        # Un 429 nunca se procesó. Un error de red o 5xx solo se repite si la
        # llamada es idempotente: un POST pudo haberse aplicado en Razorpay
        transient = api_response_code is None or api_response_code >= 500
        is_retryable = rate_limited or (idempotent and transient)

        if rate_limited:
            error_code = ErrorCode.RATE_LIMIT_EXCEEDED
            severity = ErrorSeverity.LOW
        elif api_response_code and api_response_code >= 500:
            severity = ErrorSeverity.HIGH

        super().__init__(
            message=message or self.DEFAULT_MESSAGE,
            error_code=error_code,
            status_code=423,
            severity=severity,
            is_retryable=is_retryable,
            **kwargs,
        )

        self.is_transient = rate_limited or transient
        self.api_response_code = api_response_code
        self.endpoint = endpoint
        self.rate_limited = rate_limited
        self.retry_after = retry_after
        self.vendor_error = vendor_error or {}

        self.details.update(
            {
                "api_response_code": api_response_code,
                "endpoint": endpoint,
                "rate_limited": rate_limited,
                "retry_after": retry_after,
                "vendor_error": self.vendor_error,
            }
        )

    @classmethod
    def from_response(
        cls,
        response_data: Dict[str, Any],
        api_response_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        idempotent: bool = True,
    ) -> "RazorpayAPIException":
        """Construye la excepción desde un payload `{"error": {...}}` de Razorpay."""
        vendor_error = response_data.get("error") or {}
        if not isinstance(vendor_error, dict):
            vendor_error = {"description": str(vendor_error)}
        return cls(
            message=vendor_error.get("description") or None,
            api_response_code=api_response_code,
            endpoint=endpoint,
            rate_limited=api_response_code == 429,
            vendor_error=vendor_error,
            idempotent=idempotent,
        )


class WebhookException(AppException):
    """
    Excepción para webhooks rechazados (payload, firma, evento u orden).
    """

    def __init__(self, message: str, status_code: int = 400, error_code: ErrorCode = ErrorCode.INVALID_WEBHOOK_PAYLOAD):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            severity=ErrorSeverity.LOW,
        )


class PaymentConfirmationException(AppException):
    """
    Excepción para confirmaciones de pago fallidas desde el checkout.

    El mensaje público siempre es genérico; el motivo real queda en `reason`.
    """

    PUBLIC_MESSAGE = "Payment confirmation failed"

    def __init__(self, status_code: int = 400, reason: Optional[str] = None):
        super().__init__(
            message=self.PUBLIC_MESSAGE,
            error_code=ErrorCode.PAYMENT_CONFIRMATION_FAILED,
            status_code=status_code,
            severity=ErrorSeverity.LOW,
        )
        self.reason = reason
        self.details.update({"reason": reason})


class PaymentGatewayException(AppException):
    """
    Excepción de negocio del gateway (reembolsos, suscripciones, checkout).
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        status_code: int = 422,
        **kwargs,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            severity=ErrorSeverity.MEDIUM,
            **kwargs,
        )
