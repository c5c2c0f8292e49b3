"""
Modelos Pydantic para los endpoints de pagos, reembolsos y suscripciones.

Los nombres de campo de la confirmación siguen el contrato del script de
checkout (`transaction_hash`, `razorpay_payment_id`, ...), que los envía
tal como los devuelve el modal de Razorpay.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Checkout


class CheckoutRequest(BaseModel):
    """Inicio del pago de una transacción pendiente."""

    transaction_uuid: str = Field(..., min_length=1, description="UUID de la transacción de cobro")
    payment_args: Dict[str, Any] = Field(default_factory=dict, description="Datos devueltos tal cual al script")


class ConfirmPaymentRequest(BaseModel):
    """Resultado del modal de Razorpay enviado por el script de checkout."""

    transaction_hash: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_order_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    razorpay_subscription_id: Optional[str] = None
    is_subscription: bool = False

    @field_validator("is_subscription", mode="before")
    @classmethod
    def parse_is_subscription(cls, v):
        """El script envía '1' para suscripciones."""
        if v in (None, ""):
            return False
        if isinstance(v, str):
            return v.strip().lower() in ("1", "true", "yes")
        return bool(v)


class ConfirmPaymentData(BaseModel):
    message: str
    redirect_url: str


class ConfirmPaymentResponse(BaseModel):
    """Formato que espera el script de checkout: `success` y `data`."""

    success: bool = True
    data: ConfirmPaymentData


# Refunds


class RefundRequest(BaseModel):
    """Reembolso de un cobro, en unidades menores locales."""

    transaction_uuid: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0, description="Monto en unidades menores locales (×100)")
    note: Optional[str] = Field(default=None, max_length=500)
    reason: Optional[str] = Field(default=None, description="duplicate, fraudulent o requested_by_customer")


class TransactionResponse(BaseModel):
    """Vista pública de una transacción local."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    uuid: str
    order_id: int
    transaction_type: str
    status: str
    vendor_charge_id: str
    total: int
    refunded_total: int
    currency: str
    payment_method_type: Optional[str] = None
    card_last_4: Optional[str] = None
    card_brand: Optional[str] = None
    meta: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class RefundResponse(BaseModel):
    status: str = "success"
    message: str
    refund: TransactionResponse


# Subscriptions


class CancelSubscriptionRequest(BaseModel):
    cancel_at_cycle_end: bool = False


class PauseSubscriptionRequest(BaseModel):
    pause_at: str = Field(default="now", description="Razorpay solo acepta 'now'")


class ResumeSubscriptionRequest(BaseModel):
    resume_at: str = Field(default="now", description="Razorpay solo acepta 'now'")


class SubscriptionResponse(BaseModel):
    """Vista pública de una suscripción local."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    uuid: str
    parent_order_id: int
    status: str
    billing_interval: str
    bill_times: int
    bill_count: int
    recurring_total: int
    vendor_subscription_id: Optional[str] = None
    vendor_plan_id: Optional[str] = None
    next_billing_date: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    expire_at: Optional[datetime] = None


# Settings


class GatewaySettingsRequest(BaseModel):
    """Llaves propuestas para el gateway, validadas antes de guardarse."""

    payment_mode: str = "test"
    test_pub_key: Optional[str] = None
    test_secret_key: Optional[str] = None
    live_pub_key: Optional[str] = None
    live_secret_key: Optional[str] = None
