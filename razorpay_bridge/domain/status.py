"""
Local status vocabulary and the mapping from Razorpay states.

Razorpay reports payments and subscriptions with its own state names;
every place that writes a local status goes through these maps so the
translation lives in one module.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class OrderType:
    PAYMENT = "payment"
    SUBSCRIPTION = "subscription"
    RENEWAL = "renewal"


class OrderStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


class PaymentStatus:
    PENDING = "pending"
    PAID = "paid"
    AUTHORIZED = "authorized"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class TransactionType:
    CHARGE = "charge"
    REFUND = "refund"


class TransactionStatus:
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    AUTHORIZED = "authorized"
    FAILED = "failed"
    REFUNDED = "refunded"


class SubscriptionStatus:
    PENDING = "pending"
    AUTHENTICATED = "authenticated"
    TRIALING = "trialing"
    ACTIVE = "active"
    FAILING = "failing"
    PAUSED = "paused"
    CANCELED = "canceled"
    COMPLETED = "completed"
    EXPIRED = "expired"


TRANSACTION_STATUS_MAP = {
    "pending": TransactionStatus.PENDING,
    "paid": TransactionStatus.SUCCEEDED,
    "failed": TransactionStatus.FAILED,
    "refunded": TransactionStatus.REFUNDED,
    "authorized": TransactionStatus.AUTHORIZED,
    "captured": TransactionStatus.SUCCEEDED,
}

SUBSCRIPTION_STATUS_MAP = {
    "created": SubscriptionStatus.PENDING,
    "authenticated": SubscriptionStatus.AUTHENTICATED,
    "active": SubscriptionStatus.ACTIVE,
    "pending": SubscriptionStatus.FAILING,
    "halted": SubscriptionStatus.FAILING,
    "paused": SubscriptionStatus.PAUSED,
    "cancelled": SubscriptionStatus.CANCELED,
    "completed": SubscriptionStatus.COMPLETED,
    "expired": SubscriptionStatus.EXPIRED,
}

DASHBOARD_PAYMENTS_URL = "https://dashboard.razorpay.com/app/payments"


def map_transaction_status(vendor_status: Optional[str]) -> str:
    """Translate a Razorpay payment status; unknown values become pending."""
    return TRANSACTION_STATUS_MAP.get(vendor_status or "", TransactionStatus.PENDING)


def map_subscription_status(vendor_status: Optional[str]) -> str:
    """Translate a Razorpay subscription status; unknown values become pending."""
    return SUBSCRIPTION_STATUS_MAP.get(vendor_status or "", SubscriptionStatus.PENDING)


def timestamp_to_datetime(value: Any) -> Optional[datetime]:
    """Convert a Razorpay unix timestamp into an aware UTC datetime."""
    if value in (None, "", 0):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def resolve_subscription_status(vendor_subscription: Dict[str, Any], now: Optional[datetime] = None) -> str:
    """
    Local status for a Razorpay subscription.

    An `authenticated` subscription whose first charge is still in the future
    is in its trial period.
    """
    status = map_subscription_status(vendor_subscription.get("status"))

    if status == SubscriptionStatus.AUTHENTICATED:
        start_at = timestamp_to_datetime(vendor_subscription.get("start_at"))
        now = now or datetime.now(timezone.utc)
        if start_at and start_at > now:
            return SubscriptionStatus.TRIALING

    return status


def get_next_billing_date(vendor_subscription: Dict[str, Any]) -> Optional[datetime]:
    """Next charge date: `charge_at` when scheduled, else the end of the current cycle."""
    return timestamp_to_datetime(vendor_subscription.get("charge_at")) or timestamp_to_datetime(
        vendor_subscription.get("current_end")
    )


def extract_billing_info(payment: Dict[str, Any]) -> Dict[str, Any]:
    """
    Payment method details worth keeping from a Razorpay payment entity.

    Args:
        payment: Razorpay payment entity

    Returns:
        dict: `payment_method`, `vendor` and the method specific details
    """
    method = payment.get("method") or "card"
    billing_info: Dict[str, Any] = {
        "payment_method": method,
        "vendor": "razorpay",
    }

    if method == "card":
        card = payment.get("card") or {}
        billing_info["card"] = {
            "last4": card.get("last4", ""),
            "brand": card.get("network", ""),
            "type": card.get("type", ""),
        }
    elif method == "upi":
        billing_info["upi"] = {"vpa": payment.get("vpa", "")}
    elif method in ("netbanking", "bank"):
        billing_info["bank"] = payment.get("bank", "")
    elif method == "wallet":
        billing_info["wallet"] = payment.get("wallet", "")
    elif method == "vpa":
        billing_info["vpa"] = payment.get("vpa", "")

    return billing_info


def get_transaction_dashboard_url(transaction, parent=None) -> str:
    """
    Razorpay dashboard link for a local transaction.

    Refund rows point at the payment they refunded.
    """
    if transaction is None or not transaction.vendor_charge_id:
        return DASHBOARD_PAYMENTS_URL

    is_refund = transaction.transaction_type == TransactionType.REFUND or transaction.status == TransactionStatus.REFUNDED
    if is_refund and parent is not None and parent.vendor_charge_id:
        return f"{DASHBOARD_PAYMENTS_URL}/{parent.vendor_charge_id}"

    return f"{DASHBOARD_PAYMENTS_URL}/{transaction.vendor_charge_id}"
