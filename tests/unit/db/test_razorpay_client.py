"""Tests unitarios para el cliente REST de Razorpay."""

from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from razorpay_bridge.db.razorpay_client import RazorpayClient
from razorpay_bridge.utils.error_handler import ConfigurationException, ErrorCode, RazorpayAPIException
from razorpay_bridge.utils.retry_handler import RetryHandler, RetryPolicy


def single_attempt_handler():
    return RetryHandler(
        name="test", retry_policy=RetryPolicy(max_attempts=1, jitter=False), enable_circuit_breaker=False
    )


def mock_response(status=200, payload=None, headers=None):
    response = MagicMock()
    response.status = status
    response.headers = headers or {}
    response.json = AsyncMock(return_value=payload if payload is not None else {})
    return response


def client_with_response(settings, response):
    client = RazorpayClient(settings, retry_handler=single_attempt_handler())
    session = MagicMock()
    session.request.return_value.__aenter__ = AsyncMock(return_value=response)
    session.request.return_value.__aexit__ = AsyncMock(return_value=False)
    client.session = session
    return client


class TestAuth:
    """Tests para las credenciales del modo activo."""

    def test_basic_auth_from_settings(self, settings):
        """Debe usar key id y key secret del modo activo."""
        auth = RazorpayClient(settings)._get_auth()
        assert auth.login == settings.get_api_key()
        assert auth.password == settings.get_key_secret()

    def test_missing_keys(self, settings):
        """Debe fallar si faltan llaves para el modo."""
        settings.RAZORPAY_TEST_KEY_SECRET = ""

        with pytest.raises(ConfigurationException) as exc_info:
            RazorpayClient(settings)._get_auth()
        assert "not configured for test mode" in exc_info.value.message

    def test_malformed_key(self, settings):
        """Debe rechazar llaves que no empiezan con rzp_."""
        settings.RAZORPAY_TEST_KEY_ID = "pk_test_123"

        with pytest.raises(ConfigurationException) as exc_info:
            RazorpayClient(settings)._get_auth()
        assert exc_info.value.error_code == ErrorCode.CONFIGURATION_ERROR


class TestSend:
    """Tests para el envío HTTP y el manejo de errores."""

    @pytest.mark.asyncio
    async def test_success_returns_entity(self, settings):
        """Debe devolver el JSON decodificado."""
        client = client_with_response(settings, mock_response(200, {"id": "pay_1", "status": "captured"}))

        result = await client._send("GET", "payments/pay_1", None, aiohttp.BasicAuth("a", "b"))

        assert result == {"id": "pay_1", "status": "captured"}
        method, url = client.session.request.call_args.args
        assert method == "GET"
        assert url == "https://api.razorpay.com/v1/payments/pay_1"

    @pytest.mark.asyncio
    async def test_get_sends_query_params(self, settings):
        """Debe enviar los datos de un GET como query params en texto."""
        client = client_with_response(settings, mock_response(200, {"items": []}))

        await client._send("GET", "invoices", {"subscription_id": "sub_1", "count": 10}, aiohttp.BasicAuth("a", "b"))

        assert client.session.request.call_args.kwargs["params"] == {"subscription_id": "sub_1", "count": "10"}

    @pytest.mark.asyncio
    async def test_error_payload_raises(self, settings):
        """Debe convertir el objeto error de Razorpay en excepción."""
        payload = {"error": {"code": "BAD_REQUEST_ERROR", "description": "The id provided does not exist"}}
        client = client_with_response(settings, mock_response(400, payload))

        with pytest.raises(RazorpayAPIException) as exc_info:
            await client._send("GET", "payments/pay_x", None, aiohttp.BasicAuth("a", "b"))

        assert exc_info.value.message == "The id provided does not exist"
        assert exc_info.value.api_response_code == 400
        assert exc_info.value.is_retryable is False
        assert exc_info.value.vendor_error["code"] == "BAD_REQUEST_ERROR"

    @pytest.mark.asyncio
    async def test_rate_limit(self, settings):
        """Debe marcar el 429 como rate limit con Retry-After."""
        client = client_with_response(settings, mock_response(429, headers={"Retry-After": "7"}))

        with pytest.raises(RazorpayAPIException) as exc_info:
            await client._send("POST", "orders", {}, aiohttp.BasicAuth("a", "b"))

        assert exc_info.value.rate_limited is True
        assert exc_info.value.retry_after == 7
        assert exc_info.value.error_code == ErrorCode.RATE_LIMIT_EXCEEDED

    @pytest.mark.asyncio
    async def test_list_payload_wrapped(self, settings):
        """Debe envolver respuestas que no son objeto en items."""
        client = client_with_response(settings, mock_response(200, [{"id": "inv_1"}]))

        result = await client._send("GET", "invoices", None, aiohttp.BasicAuth("a", "b"))

        assert result == {"items": [{"id": "inv_1"}]}

    @pytest.mark.asyncio
    async def test_network_error(self, settings):
        """Debe convertir errores de red en RazorpayAPIException reintentable."""
        client = RazorpayClient(settings, retry_handler=single_attempt_handler())
        client.session = MagicMock()
        client.session.request.side_effect = aiohttp.ClientConnectionError("connection reset")

        with pytest.raises(RazorpayAPIException) as exc_info:
            await client._send("GET", "payments/pay_1", None, aiohttp.BasicAuth("a", "b"))

        assert exc_info.value.is_retryable is True


class TestRequest:
    """Tests para las operaciones de alto nivel."""

    @pytest.mark.asyncio
    async def test_request_retries_through_handler(self, settings):
        """Debe enviar la petición a través del RetryHandler."""
        client = RazorpayClient(settings, retry_handler=single_attempt_handler())

        with patch.object(client, "initialize", AsyncMock()), patch.object(
            client, "_send", AsyncMock(return_value={"id": "order_1"})
        ) as send:
            result = await client.create_order({"amount": 50000})

        assert result == {"id": "order_1"}
        method, path, data, auth = send.call_args.args
        assert (method, path, data) == ("POST", "orders", {"amount": 50000})
        assert auth.login == settings.get_api_key()

    @pytest.mark.asyncio
    async def test_capture_payment_payload(self, settings):
        """Debe capturar con monto entero y moneda en mayúsculas."""
        client = RazorpayClient(settings)

        with patch.object(client, "_request", AsyncMock(return_value={"status": "captured"})) as request:
            await client.capture_payment("pay_1", 50000.0, "inr")

        request.assert_awaited_once_with("POST", "payments/pay_1/capture", {"amount": 50000, "currency": "INR"})

    @pytest.mark.asyncio
    async def test_cancel_at_cycle_end(self, settings):
        """Debe enviar cancel_at_cycle_end=1 solo cuando se pide."""
        client = RazorpayClient(settings)

        with patch.object(client, "_request", AsyncMock(return_value={})) as request:
            await client.cancel_subscription("sub_1", cancel_at_cycle_end=True)
            await client.cancel_subscription("sub_1")

        assert request.call_args_list[0].args == ("POST", "subscriptions/sub_1/cancel", {"cancel_at_cycle_end": 1})
        assert request.call_args_list[1].args == ("POST", "subscriptions/sub_1/cancel", {})

    @pytest.mark.asyncio
    async def test_list_invoices_filters_by_subscription(self, settings):
        """Debe listar las facturas filtradas por suscripción."""
        client = RazorpayClient(settings)

        with patch.object(client, "_request", AsyncMock(return_value={"items": []})) as request:
            await client.list_invoices("sub_1")

        request.assert_awaited_once_with("GET", "invoices", {"subscription_id": "sub_1"})


def retrying_handler():
    return RetryHandler(
        name="test",
        retry_policy=RetryPolicy(max_attempts=3, base_delay=0.01, jitter=False),
        enable_circuit_breaker=False,
    )


def response_context(response):
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    return context


def client_with_outcomes(settings, *outcomes):
    """Cliente cuya sesión devuelve o lanza cada resultado en orden."""
    client = RazorpayClient(settings, retry_handler=retrying_handler())
    client.session = MagicMock()
    client.session.request.side_effect = [
        outcome if isinstance(outcome, Exception) else response_context(outcome) for outcome in outcomes
    ]
    return client


class TestRetrySafety:
    """Tests para los reintentos según el método HTTP."""

    @pytest.mark.asyncio
    async def test_refund_not_resent_after_disconnect(self, settings):
        """No debe repetir un POST de reembolso tras un error de red."""
        client = client_with_outcomes(
            settings, aiohttp.ServerDisconnectedError(), mock_response(200, {"id": "rfnd_1"})
        )

        with patch.object(client, "initialize", AsyncMock()), patch(
            "razorpay_bridge.utils.retry_handler.asyncio.sleep", AsyncMock()
        ):
            with pytest.raises(RazorpayAPIException) as exc_info:
                await client.create_refund("pay_1", {"amount": 50000})

        assert exc_info.value.is_retryable is False
        assert client.session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_capture_not_resent_after_server_error(self, settings):
        """No debe repetir una captura que Razorpay respondió con 5xx."""
        payload = {"error": {"code": "SERVER_ERROR", "description": "The server encountered an error"}}
        client = client_with_outcomes(settings, mock_response(502, payload), mock_response(200, {"status": "captured"}))

        with patch.object(client, "initialize", AsyncMock()), patch(
            "razorpay_bridge.utils.retry_handler.asyncio.sleep", AsyncMock()
        ):
            with pytest.raises(RazorpayAPIException):
                await client.capture_payment("pay_1", 50000, "INR")

        assert client.session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_get_retried_after_disconnect(self, settings):
        """Debe reintentar un GET tras un error de red."""
        client = client_with_outcomes(
            settings, aiohttp.ServerDisconnectedError(), mock_response(200, {"id": "pay_1", "status": "captured"})
        )

        with patch.object(client, "initialize", AsyncMock()), patch(
            "razorpay_bridge.utils.retry_handler.asyncio.sleep", AsyncMock()
        ):
            result = await client.get_payment("pay_1")

        assert result["status"] == "captured"
        assert client.session.request.call_count == 2

    @pytest.mark.asyncio
    async def test_post_retried_after_rate_limit(self, settings):
        """Debe reintentar un POST rechazado con 429."""
        client = client_with_outcomes(
            settings, mock_response(429, headers={"Retry-After": "1"}), mock_response(200, {"id": "order_1"})
        )

        with patch.object(client, "initialize", AsyncMock()), patch(
            "razorpay_bridge.utils.retry_handler.asyncio.sleep", AsyncMock()
        ):
            result = await client.create_order({"amount": 50000})

        assert result == {"id": "order_1"}
        assert client.session.request.call_count == 2
