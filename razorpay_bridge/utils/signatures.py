"""
Verificación de firmas HMAC-SHA256 de Razorpay.

Razorpay firma tres cosas distintas con el mismo algoritmo:
- el cuerpo crudo de cada webhook (header X-Razorpay-Signature)
- el resultado del checkout modal (`order_id|payment_id`)
- el callback de payment links (`link_id|reference_id|status|payment_id`)
"""

import hashlib
import hmac
import logging
from typing import Union

logger = logging.getLogger(__name__)


def compute_signature(payload: Union[bytes, str], secret: str) -> str:
    """
    Calcula la firma hexadecimal HMAC-SHA256.

    Args:
        payload: Datos firmados
        secret: Secreto compartido con Razorpay

    Returns:
        str: Firma en hexadecimal
    """
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def _matches(payload: Union[bytes, str], signature: str, secret: str) -> bool:
    if not signature or not secret:
        return False

    expected_signature = compute_signature(payload, secret)
    # Comparación segura contra timing attacks
    return hmac.compare_digest(expected_signature, signature.strip())


def verify_webhook_signature(payload: bytes, signature: str, secret: str) -> bool:
    """
    Verifica la firma de un webhook sobre el cuerpo crudo.

    Args:
        payload: Cuerpo del webhook en bytes, sin decodificar
        signature: Valor del header X-Razorpay-Signature
        secret: Secreto de webhook del modo activo

    Returns:
        bool: True si la firma es válida
    """
    if not secret:
        logger.warning("No webhook secret configured, rejecting webhook")
        return False
    return _matches(payload, signature, secret)


def verify_checkout_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    """Verifica la firma devuelta por el checkout modal."""
    return _matches(f"{order_id}|{payment_id}", signature, secret)


def verify_payment_link_signature(
    link_id: str, reference_id: str, status: str, payment_id: str, signature: str, secret: str
) -> bool:
    """Verifica la firma del redirect de un payment link."""
    return _matches(f"{link_id}|{reference_id}|{status}|{payment_id}", signature, secret)


def verify_subscription_signature(payment_id: str, subscription_id: str, signature: str, secret: str) -> bool:
    """Verifica la firma devuelta por el checkout modal de una suscripción."""
    return _matches(f"{payment_id}|{subscription_id}", signature, secret)
