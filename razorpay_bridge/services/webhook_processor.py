"""
Razorpay webhook processing.

The raw body is validated and its signature verified before it is decoded
into an event. Each handled event updates the local transaction, refund or
subscription records and answers with the status code Razorpay should see:
4xx/5xx answers make Razorpay retry the delivery.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from razorpay_bridge.core.config import Settings, get_settings
from razorpay_bridge.core.logging_config import log_webhook_received
from razorpay_bridge.db.models import Order, OrderTransaction
from razorpay_bridge.db.razorpay_client import RazorpayClient
from razorpay_bridge.db.repositories import Repositories
from razorpay_bridge.domain.status import TransactionStatus
from razorpay_bridge.domain.value_objects.money import Money
from razorpay_bridge.services.confirmations import PaymentConfirmationService
from razorpay_bridge.services.refunds import RefundService, refund_status_from_vendor
from razorpay_bridge.services.subscriptions import SubscriptionManager
from razorpay_bridge.utils.error_handler import ErrorCode, RazorpayAPIException, WebhookException
from razorpay_bridge.utils.signatures import verify_webhook_signature

logger = logging.getLogger(__name__)


def _get(data: Any, path: str, default: Any = None) -> Any:
    """Read a dotted path from nested dicts."""
    for key in path.split("."):
        if not isinstance(data, dict) or key not in data:
            return default
        data = data[key]
    return data if data is not None else default


def webhook_response(message: str) -> Dict[str, str]:
    return {"message": message, "status": "success"}


class WebhookProcessor:
    """
    Procesador de webhooks de Razorpay.
    """

    def __init__(self, repos: Repositories, client: RazorpayClient, settings: Optional[Settings] = None):
        self.repos = repos
        self.client = client
        self.settings = settings or get_settings()
        self.confirmations = PaymentConfirmationService(repos, client, self.settings)
        self.refunds = RefundService(repos, client, self.settings)
        self.subscriptions = SubscriptionManager(repos, client, self.settings)

        self.handlers: Dict[str, Callable[[Dict[str, Any], Order], Awaitable[Dict[str, str]]]] = {
            "payment.captured": self.handle_payment_captured,
            "payment.authorized": self.handle_payment_authorized,
            "payment.failed": self.handle_payment_failed,
            "refund.created": self.handle_refund,
            "refund.processed": self.handle_refund,
        }

    async def verify_signature(self, payload: bytes, signature: Optional[str]) -> bool:
        """
        Verifica la firma HMAC del webhook.

        Args:
            payload: Cuerpo crudo del webhook
            signature: Valor del header X-Razorpay-Signature

        Returns:
            bool: True si la firma es válida
        """
        if not signature:
            logger.warning("Razorpay webhook rejected: no X-Razorpay-Signature header")
            await self.repos.activity.add_log("Razorpay Webhook", "No signature found in webhook request", "error")
            return False

        webhook_secret = self.settings.get_webhook_secret()
        if not webhook_secret:
            logger.error("Razorpay webhook rejected: webhook secret not configured")
            await self.repos.activity.add_log("Razorpay Webhook", "Webhook secret not configured", "error")
            return False

        is_valid = verify_webhook_signature(payload, signature, webhook_secret)
        if not is_valid:
            logger.warning("Razorpay webhook rejected: signature mismatch")
            await self.repos.activity.add_log("Razorpay Webhook Verification Failed", "Signature mismatch", "error")

        return is_valid

    async def process(self, payload: bytes, signature: Optional[str]) -> Dict[str, str]:
        """
        Valida, verifica y despacha un webhook.

        Args:
            payload: Cuerpo crudo del webhook
            signature: Valor del header X-Razorpay-Signature

        Returns:
            Dict: `message` y `status` para la respuesta

        Raises:
            WebhookException: Con el código HTTP que debe recibir Razorpay
        """
        if not payload:
            raise WebhookException("Not valid payload", 400)

        if len(payload) > self.settings.WEBHOOK_MAX_PAYLOAD_BYTES:
            raise WebhookException("Webhook payload too large", 413)

        try:
            data = json.loads(payload)
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise WebhookException("Invalid JSON payload", 400)

        if not isinstance(data, dict):
            raise WebhookException("Invalid JSON payload", 400)

        if not await self.verify_signature(payload, signature):
            raise WebhookException(
                "Invalid signature / Verification failed", 401, error_code=ErrorCode.INVALID_WEBHOOK_SIGNATURE
            )

        event = data.get("event")
        if not event:
            raise WebhookException("Event type not found", 400)

        log_webhook_received(event, len(payload))

        order = await self.get_order(data)
        if order is None:
            raise WebhookException("Order not found", 404, error_code=ErrorCode.NOT_FOUND)

        payload_data = data.get("payload") or {}

        if event.startswith("subscription."):
            return await self.handle_subscription_event(payload_data, order)

        handler = self.handlers.get(event)
        if handler is None:
            await self.repos.activity.add_log("Razorpay Webhook - Unhandled Event", f"Event type: {event}")
            return webhook_response("Webhook received but not handled")

        return await handler(payload_data, order)

    async def get_order(self, data: Dict[str, Any]) -> Optional[Order]:
        """Resolve the local order a webhook refers to."""
        for notes_path in (
            "payload.payment.entity.notes",
            "payload.refund.entity.notes",
            "payload.subscription.entity.notes",
        ):
            order_hash = _get(data, f"{notes_path}.order_hash")
            if order_hash:
                order = await self.repos.orders.get_by_uuid(order_hash)
                if order is not None:
                    return order

        razorpay_order_id = _get(data, "payload.payment.entity.order_id") or _get(data, "payload.order.entity.id")
        if razorpay_order_id:
            transaction = await self.repos.transactions.get_by_vendor_order_id(razorpay_order_id)
            if transaction is not None:
                return await self.repos.orders.get(transaction.order_id)

        payment_id = _get(data, "payload.payment.entity.id") or _get(data, "payload.refund.entity.payment_id")
        if payment_id:
            transaction = await self.repos.transactions.get_by_payment_id(payment_id)
            if transaction is not None:
                return await self.repos.orders.get(transaction.order_id)

        vendor_subscription_id = _get(data, "payload.subscription.entity.id")
        if vendor_subscription_id:
            subscription = await self.repos.subscriptions.get_by_vendor_id(vendor_subscription_id)
            if subscription is not None:
                return await self.repos.orders.get(subscription.parent_order_id)

        return None

    async def find_transaction_by_payment(self, razorpay_payment: Dict[str, Any]) -> Optional[OrderTransaction]:
        """Local charge for a Razorpay payment entity."""
        transaction = await self.repos.transactions.get_by_vendor_order_id(razorpay_payment.get("order_id"))
        if transaction is not None:
            return transaction

        notes = razorpay_payment.get("notes") or {}

        transaction_hash = notes.get("transaction_hash")
        if transaction_hash:
            transaction = await self.repos.transactions.get_by_uuid(transaction_hash)
            if transaction is not None:
                return transaction

        transaction_id = notes.get("transaction_id")
        if transaction_id:
            transaction = await self.repos.transactions.get_by_uuid(str(transaction_id))
            if transaction is None and str(transaction_id).isdigit():
                transaction = await self.repos.transactions.get(int(transaction_id))
            if transaction is not None:
                return transaction

        return await self.repos.transactions.get_by_payment_id(razorpay_payment.get("id"))

    async def _payment_transaction(self, payload: Dict[str, Any], not_found_message: str):
        razorpay_payment = _get(payload, "payment.entity", {})
        payment_id = razorpay_payment.get("id")

        if not payment_id:
            raise WebhookException("Payment ID not found", 400)

        transaction = await self.find_transaction_by_payment(razorpay_payment)
        if transaction is None:
            raise WebhookException(not_found_message.format(payment_id=payment_id), 404, error_code=ErrorCode.NOT_FOUND)

        return razorpay_payment, transaction

    async def handle_payment_captured(self, payload: Dict[str, Any], order: Order) -> Dict[str, str]:
        razorpay_payment, transaction = await self._payment_transaction(
            payload, "Transaction not found for payment: {payment_id}"
        )

        if transaction.status == TransactionStatus.SUCCEEDED:
            return webhook_response("Payment already confirmed")

        await self.confirmations.confirm_payment_success_by_charge(transaction, razorpay_payment)

        await self.repos.activity.add_log(
            "Razorpay Payment Captured (Webhook)",
            f"Payment ID: {razorpay_payment['id']} captured successfully",
            module_name="order",
            module_id=transaction.order_id,
        )
        return webhook_response("Payment captured successfully")

    async def handle_payment_authorized(self, payload: Dict[str, Any], order: Order) -> Dict[str, str]:
        razorpay_payment, transaction = await self._payment_transaction(payload, "Transaction not found")

        if transaction.status == TransactionStatus.SUCCEEDED:
            return webhook_response("Payment already confirmed")

        try:
            captured_payment = await self.client.capture_payment(
                razorpay_payment["id"],
                int(razorpay_payment.get("amount") or 0),
                razorpay_payment.get("currency") or "INR",
            )
        except RazorpayAPIException as e:
            await self.repos.activity.add_log(
                "Razorpay Auto-Capture Failed",
                e.message,
                "error",
                module_name="order",
                module_id=transaction.order_id,
            )
            raise WebhookException("Failed to capture payment", 500, error_code=ErrorCode.RAZORPAY_API_ERROR)

        await self.confirmations.confirm_payment_success_by_charge(transaction, captured_payment)
        return webhook_response("Payment authorized and captured")

    async def handle_payment_failed(self, payload: Dict[str, Any], order: Order) -> Dict[str, str]:
        razorpay_payment, transaction = await self._payment_transaction(payload, "Transaction not found")
        payment_id = razorpay_payment["id"]

        # a late failure event must not undo a confirmed payment
        if transaction.status == TransactionStatus.SUCCEEDED:
            return webhook_response("Payment already confirmed")

        transaction.status = TransactionStatus.FAILED
        transaction.merge_meta(
            {
                "razorpay_payment_id": payment_id,
                "razorpay_error": razorpay_payment.get("error_description") or "Payment failed",
            }
        )
        await self.repos.transactions.save(transaction)

        await self.repos.activity.add_log(
            "Razorpay Payment Failed",
            f"Payment ID: {payment_id} failed. Reason: {razorpay_payment.get('error_description') or 'Unknown'}",
            "error",
            module_name="order",
            module_id=transaction.order_id,
        )
        return webhook_response("Payment failure processed")

    async def handle_refund(self, payload: Dict[str, Any], order: Order) -> Dict[str, str]:
        refund = _get(payload, "refund.entity", {})
        refund_id = refund.get("id")
        payment_id = refund.get("payment_id")

        if not refund_id or not payment_id:
            raise WebhookException("Refund or Payment ID not found", 400)

        parent_transaction = await self.repos.transactions.get_by_payment_id(payment_id)
        if parent_transaction is None:
            raise WebhookException(
                f"Parent transaction not found for payment: {payment_id}", 404, error_code=ErrorCode.NOT_FOUND
            )

        status = refund_status_from_vendor(refund.get("status"))

        existing_refund = await self.repos.transactions.get_refund_by_vendor_id(refund_id)
        if existing_refund is not None and existing_refund.order_id == parent_transaction.order_id:
            if existing_refund.status != TransactionStatus.REFUNDED and status == TransactionStatus.REFUNDED:
                existing_refund.status = TransactionStatus.REFUNDED
                await self.repos.transactions.save(existing_refund)
            return webhook_response("Refund already exists")

        currency = (refund.get("currency") or parent_transaction.currency or "INR").upper()
        refund_data = RefundService.build_refund_data(
            parent_transaction,
            refund_id=refund_id,
            total=Money.from_vendor_amount(refund.get("amount", 0), currency).amount,
            status=status,
            meta={"refund_source": "webhook", "refund_notes": refund.get("notes") or {}},
        )
        refund_data["currency"] = currency
        refund_data["meta"]["razorpay_payment_id"] = payment_id

        await self.refunds.create_or_update_webhook_refund(refund_data, parent_transaction)

        await self.repos.activity.add_log(
            "Razorpay Refund Processed (Webhook)",
            f"Refund ID: {refund_id} processed successfully",
            module_name="order",
            module_id=parent_transaction.order_id,
        )
        return webhook_response("Refund processed successfully")

    async def handle_subscription_event(self, payload: Dict[str, Any], order: Order) -> Dict[str, str]:
        vendor_subscription_id = _get(payload, "subscription.entity.id")
        if not vendor_subscription_id:
            raise WebhookException("Subscription ID not found", 400)

        subscription = await self.repos.subscriptions.get_by_vendor_id(vendor_subscription_id)
        if subscription is None:
            raise WebhookException(
                f"Subscription not found: {vendor_subscription_id}", 404, error_code=ErrorCode.NOT_FOUND
            )

        try:
            await self.subscriptions.resync_from_remote(subscription)
        except RazorpayAPIException as e:
            logger.error(f"Subscription {vendor_subscription_id} resync failed: {e}")
            raise WebhookException("Failed to sync subscription", 500, error_code=ErrorCode.RAZORPAY_API_ERROR)

        return webhook_response("Subscription synced successfully")
