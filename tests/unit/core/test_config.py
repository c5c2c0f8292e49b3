"""Tests unitarios para la configuración."""

import pytest
from pydantic import ValidationError

from razorpay_bridge.core.config import Settings, validate_gateway_settings


def make_settings(**overrides):
    values = {
        "ENVIRONMENT": "testing",
        "RAZORPAY_PAYMENT_MODE": "test",
        "RAZORPAY_TEST_KEY_ID": "rzp_test_abc",
        "RAZORPAY_TEST_KEY_SECRET": "secret_abc",
        "RAZORPAY_TEST_WEBHOOK_SECRET": "",
        "RAZORPAY_LIVE_KEY_ID": "",
        "RAZORPAY_LIVE_KEY_SECRET": "",
    }
    values.update(overrides)
    return Settings(**values)


class TestApiKeys:
    """Tests para la resolución de llaves por modo."""

    def test_keys_for_active_mode(self):
        """Debe devolver el par de llaves del modo activo."""
        settings = make_settings()
        assert settings.get_api_keys() == {"api_key": "rzp_test_abc", "api_secret": "secret_abc"}

    def test_incomplete_keys_return_empty(self):
        """Debe devolver un dict vacío si falta alguna llave."""
        settings = make_settings(RAZORPAY_LIVE_KEY_ID="rzp_live_abc")
        assert settings.get_api_keys("live") == {}

    def test_keys_are_stripped(self):
        """Debe quitar espacios de las llaves."""
        settings = make_settings(RAZORPAY_TEST_KEY_ID="  rzp_test_abc  ")
        assert settings.get_api_key() == "rzp_test_abc"

    def test_webhook_secret_falls_back_to_key_secret(self):
        """Debe usar la llave secreta cuando no hay secreto de webhook."""
        settings = make_settings()
        assert settings.get_webhook_secret() == "secret_abc"

    def test_webhook_secret_configured(self):
        """Debe preferir el secreto de webhook configurado."""
        settings = make_settings(RAZORPAY_TEST_WEBHOOK_SECRET="whsec")
        assert settings.get_webhook_secret() == "whsec"


class TestValidators:
    """Tests para los validadores de campos."""

    def test_payment_mode_normalized(self):
        """Debe normalizar el modo de pago a minúsculas."""
        assert make_settings(RAZORPAY_PAYMENT_MODE="LIVE").RAZORPAY_PAYMENT_MODE == "live"

    def test_invalid_payment_mode(self):
        """Debe rechazar modos de pago desconocidos."""
        with pytest.raises(ValidationError):
            make_settings(RAZORPAY_PAYMENT_MODE="sandbox")

    def test_invalid_checkout_type(self):
        """Debe rechazar tipos de checkout desconocidos."""
        with pytest.raises(ValidationError):
            make_settings(RAZORPAY_CHECKOUT_TYPE="popup")

    def test_invalid_refund_speed(self):
        """Debe rechazar velocidades de reembolso desconocidas."""
        with pytest.raises(ValidationError):
            make_settings(RAZORPAY_REFUND_SPEED="instant")

    def test_invalid_port(self):
        """Debe rechazar puertos fuera de rango."""
        with pytest.raises(ValidationError):
            make_settings(PORT=70000)


class TestDerivedSettings:
    """Tests para propiedades derivadas."""

    def test_allowed_hosts_parsed(self):
        """Debe parsear ALLOWED_HOSTS separado por comas."""
        settings = make_settings(ALLOWED_HOSTS="shop.test, api.shop.test,")
        assert settings.allowed_hosts == ["shop.test", "api.shop.test"]

    def test_allowed_hosts_empty(self):
        """Debe devolver lista vacía sin ALLOWED_HOSTS."""
        assert make_settings(ALLOWED_HOSTS=None).allowed_hosts == []

    def test_notification_channels(self):
        """Debe activar solo los canales listados."""
        settings = make_settings(RAZORPAY_NOTIFICATIONS="SMS")
        assert settings.notification_channels == {"email": False, "sms": True}


class TestValidateGatewaySettings:
    """Tests para la validación de llaves antes de guardarlas."""

    def test_valid_test_keys(self):
        """Debe aceptar llaves completas del modo test."""
        errors = validate_gateway_settings(
            {"payment_mode": "test", "test_pub_key": "rzp_test_abc", "test_secret_key": "secret"}
        )
        assert errors == {}

    def test_missing_secret(self):
        """Debe exigir llave pública y secreta del modo activo."""
        errors = validate_gateway_settings({"payment_mode": "live", "live_pub_key": "rzp_live_abc"})
        assert errors == {"live_pub_key": "Please provide Live Public Key and Live Secret Key"}

    def test_wrong_key_prefix(self):
        """Debe rechazar llaves que no empiezan con rzp_."""
        errors = validate_gateway_settings(
            {"payment_mode": "test", "test_pub_key": "pk_test_abc", "test_secret_key": "secret"}
        )
        assert errors == {"test_pub_key": "Test Public Key must start with 'rzp_test_'"}

    def test_unknown_mode(self):
        """Debe rechazar modos desconocidos."""
        assert "payment_mode" in validate_gateway_settings({"payment_mode": "sandbox"})

    def test_other_mode_keys_ignored(self):
        """No debe validar las llaves del modo inactivo."""
        errors = validate_gateway_settings(
            {
                "payment_mode": "test",
                "test_pub_key": "rzp_test_abc",
                "test_secret_key": "secret",
                "live_pub_key": "bad",
            }
        )
        assert errors == {}
