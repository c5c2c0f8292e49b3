"""Tests para el enmascarado de secretos en logs."""

import logging

from razorpay_bridge.core.logging_config import SecretMaskingFilter
from razorpay_bridge.core.middleware import mask_query


def make_record(msg, *args):
    return logging.LogRecord("razorpay_bridge.test", logging.INFO, __file__, 1, msg, args or None, None)


class TestSecretMaskingFilter:
    """Tests para SecretMaskingFilter."""

    def test_masks_configured_secret(self):
        """Debe reemplazar la llave secreta en el mensaje final."""
        record = make_record("auth failed for %s", "super_secret_value")

        assert SecretMaskingFilter(["super_secret_value"]).filter(record) is True
        assert record.getMessage() == "auth failed for ***"

    def test_ignores_short_or_empty_secrets(self):
        """No debe enmascarar secretos vacíos o demasiado cortos."""
        record = make_record("status ok")

        SecretMaskingFilter(["", "ok"]).filter(record)

        assert record.getMessage() == "status ok"


class TestMaskQuery:
    """Tests para el enmascarado de la query del callback."""

    def test_masks_signature(self):
        """Debe ocultar razorpay_signature y conservar el resto."""
        masked = mask_query("fluent_cart_payment=trx-1&razorpay_signature=abc123")
        assert masked == "fluent_cart_payment=trx-1&razorpay_signature=***"
