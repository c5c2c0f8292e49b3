"""Tests unitarios para excepciones y reintentos."""

from unittest.mock import AsyncMock, patch

import pytest

from razorpay_bridge.utils.error_handler import (
    AppException,
    DatabaseException,
    ErrorCode,
    NotFoundException,
    PaymentConfirmationException,
    RazorpayAPIException,
    ValidationException,
    WebhookException,
)
from razorpay_bridge.utils.retry_handler import CircuitBreaker, CircuitState, RetryHandler, RetryPolicy


class TestRazorpayAPIException:
    """Tests para errores de la API de Razorpay."""

    def test_client_errors_not_retryable(self):
        """No debe reintentar respuestas 4xx."""
        assert RazorpayAPIException("bad", api_response_code=400).is_retryable is False

    def test_server_and_network_errors_retryable(self):
        """Debe reintentar 5xx y errores sin código."""
        assert RazorpayAPIException("down", api_response_code=502).is_retryable is True
        assert RazorpayAPIException("network").is_retryable is True

    def test_non_idempotent_transient_errors_not_retryable(self):
        """No debe marcar como reintentables errores de red o 5xx de un POST, salvo el 429."""
        assert RazorpayAPIException("network", idempotent=False).is_retryable is False
        assert RazorpayAPIException("down", api_response_code=503, idempotent=False).is_retryable is False
        assert RazorpayAPIException("slow", api_response_code=429, rate_limited=True, idempotent=False).is_retryable

    def test_from_response(self):
        """Debe usar la description del error de Razorpay como mensaje."""
        exc = RazorpayAPIException.from_response(
            {"error": {"code": "BAD_REQUEST_ERROR", "description": "Invalid amount"}}, 400, "orders"
        )
        assert exc.message == "Invalid amount"
        assert exc.endpoint == "orders"
        assert exc.details["vendor_error"]["code"] == "BAD_REQUEST_ERROR"

    def test_from_response_without_description(self):
        """Debe usar el mensaje por defecto si no hay description."""
        exc = RazorpayAPIException.from_response({"error": {}}, 500)
        assert exc.message == RazorpayAPIException.DEFAULT_MESSAGE

    def test_rate_limited_from_response(self):
        """Debe marcar rate limit cuando el código es 429."""
        exc = RazorpayAPIException.from_response({"error": {"description": "Too many"}}, 429)
        assert exc.rate_limited is True
        assert exc.error_code == ErrorCode.RATE_LIMIT_EXCEEDED


class TestDomainExceptions:
    """Tests para excepciones de confirmación y webhooks."""

    def test_confirmation_message_is_generic(self):
        """Debe exponer un mensaje genérico y guardar el motivo aparte."""
        exc = PaymentConfirmationException(404, reason="Transaction not found")
        assert exc.message == "Payment confirmation failed"
        assert exc.status_code == 404
        assert exc.details["reason"] == "Transaction not found"

    def test_webhook_exception_status(self):
        """Debe conservar el status HTTP del webhook rechazado."""
        exc = WebhookException("Payload too large", 413)
        assert exc.status_code == 413
        assert exc.error_code == ErrorCode.INVALID_WEBHOOK_PAYLOAD

    def test_str_includes_code(self):
        """Debe incluir el código en la representación."""
        assert str(AppException("boom")) == "UNKNOWN_ERROR: boom"


class TestLocalExceptions:
    """Tests para excepciones de validación, registros y base de datos."""

    def test_validation_details(self):
        """Debe responder 422 y guardar el campo inválido."""
        exc = ValidationException("Invalid amount", field="amount", invalid_value=-5)
        assert exc.status_code == 422
        assert exc.details["field"] == "amount"
        assert exc.details["invalid_value"] == "-5"

    def test_not_found_identifier(self):
        """Debe guardar recurso e identificador como texto."""
        exc = NotFoundException("Subscription not found.", resource="subscription", identifier=7)
        assert exc.status_code == 404
        assert exc.details == {"resource": "subscription", "identifier": "7"}

    def test_database_errors_are_retryable(self):
        """Debe marcar los errores de base de datos como reintentables."""
        exc = DatabaseException("locked", operation="get_by_uuid")
        assert exc.is_retryable is True
        assert exc.status_code == 503


class TestRetryHandler:
    """Tests para reintentos y circuit breaker."""

    def _handler(self, max_attempts=3):
        return RetryHandler(
            name="test",
            retry_policy=RetryPolicy(max_attempts=max_attempts, base_delay=0.01, jitter=False),
            enable_circuit_breaker=False,
        )

    @pytest.mark.asyncio
    async def test_retries_retryable_errors(self):
        """Debe reintentar errores transitorios hasta tener éxito."""
        func = AsyncMock(side_effect=[RazorpayAPIException("down", api_response_code=503), {"id": "ok"}])

        with patch("razorpay_bridge.utils.retry_handler.asyncio.sleep", AsyncMock()):
            result = await self._handler().execute(func)

        assert result == {"id": "ok"}
        assert func.await_count == 2

    @pytest.mark.asyncio
    async def test_does_not_retry_client_errors(self):
        """No debe reintentar rechazos 4xx."""
        func = AsyncMock(side_effect=RazorpayAPIException("bad", api_response_code=400))

        with pytest.raises(RazorpayAPIException):
            await self._handler().execute(func)

        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_raises_last_exception_after_attempts(self):
        """Debe lanzar la última excepción al agotar los intentos."""
        func = AsyncMock(side_effect=RazorpayAPIException("down", api_response_code=500))

        with patch("razorpay_bridge.utils.retry_handler.asyncio.sleep", AsyncMock()):
            with pytest.raises(RazorpayAPIException):
                await self._handler(max_attempts=2).execute(func)

        assert func.await_count == 2

    def test_retry_after_used_as_delay(self):
        """Debe usar Retry-After como delay en rate limits."""
        policy = RetryPolicy(max_delay=10.0)
        exc = RazorpayAPIException("slow down", api_response_code=429, rate_limited=True, retry_after=4)
        assert policy.calculate_delay(1, exc) == 4

    def test_circuit_opens_after_failures(self):
        """Debe abrir el circuito tras las fallas consecutivas configuradas."""
        breaker = CircuitBreaker(failure_threshold=2)
        breaker.record_failure()
        breaker.record_failure()

        assert breaker.state == CircuitState.OPEN
        assert breaker.can_execute() is False
