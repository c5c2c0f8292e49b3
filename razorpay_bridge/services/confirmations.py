"""
Payment confirmation.

Called when the checkout modal or a hosted payment link hands control back
to the shop. Every confirmation re-reads the payment from Razorpay and
checks that it belongs to the transaction being confirmed before any
local record is touched.
"""

import logging
from typing import Any, Dict, Optional

from razorpay_bridge.core.config import Settings, get_settings
from razorpay_bridge.db.models import Order, OrderTransaction
from razorpay_bridge.db.razorpay_client import RazorpayClient
from razorpay_bridge.db.repositories import Repositories
from razorpay_bridge.domain.status import (
    OrderType,
    SubscriptionStatus,
    TransactionStatus,
    extract_billing_info,
    get_next_billing_date,
    map_transaction_status,
    resolve_subscription_status,
)
from razorpay_bridge.domain.value_objects.money import Money
from razorpay_bridge.services.checkout import receipt_page_url
from razorpay_bridge.services.order_status import OrderStatusSynchronizer
from razorpay_bridge.services.renewals import RenewalService
from razorpay_bridge.utils.error_handler import PaymentConfirmationException, RazorpayAPIException
from razorpay_bridge.utils.signatures import (
    verify_checkout_signature,
    verify_payment_link_signature,
    verify_subscription_signature,
)

logger = logging.getLogger(__name__)

LOG_LEVELS = {"info": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}

SUBSCRIPTION_PAYMENT_STATUSES = ("captured", "authorized", "paid", "refunded")


def active_payment_method(billing_info: Dict[str, Any], vendor_subscription: Dict[str, Any]) -> Dict[str, Any]:
    """Billing info enriched with the mandate of a Razorpay subscription."""
    billing_info = dict(billing_info)
    payment_method = (vendor_subscription or {}).get("payment_method") or ""

    if payment_method:
        billing_info["payment_method"] = payment_method
        if payment_method == "card":
            billing_info["card_mandate_id"] = vendor_subscription.get("card_mandate_id", "")

    return billing_info


class PaymentConfirmationService:
    def __init__(self, repos: Repositories, client: RazorpayClient, settings: Optional[Settings] = None):
        self.repos = repos
        self.client = client
        self.settings = settings or get_settings()
        self.order_status = OrderStatusSynchronizer(repos)
        self.renewals = RenewalService(repos)

    async def _log(self, title: str, content: str, level: str = "info", module_name="order", module_id=None):
        logger.log(LOG_LEVELS.get(level, logging.INFO), f"{title}: {content}")
        await self.repos.activity.add_log(title, content, level, module_name=module_name, module_id=module_id)

    async def _get_razorpay_transaction(self, transaction_hash: str) -> OrderTransaction:
        transaction = await self.repos.transactions.get_by_uuid(transaction_hash)
        if transaction is None or transaction.payment_method != "razorpay":
            raise PaymentConfirmationException(404, reason=f"Transaction {transaction_hash} not found")
        return transaction

    async def confirm_modal_payment(
        self,
        transaction_hash: Optional[str],
        payment_id: Optional[str],
        razorpay_order_id: Optional[str] = None,
        razorpay_signature: Optional[str] = None,
        is_subscription: bool = False,
        razorpay_subscription_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Confirm a payment completed in the checkout modal.

        Raises:
            PaymentConfirmationException: 400/404 when the payment cannot be confirmed
        """
        if not transaction_hash:
            raise PaymentConfirmationException(400, reason="Missing transaction hash")
        if not payment_id:
            raise PaymentConfirmationException(400, reason="Missing payment id")

        if is_subscription:
            return await self.confirm_subscription_payment(
                transaction_hash, payment_id, razorpay_subscription_id, razorpay_signature
            )

        if razorpay_signature:
            if not verify_checkout_signature(
                razorpay_order_id or "", payment_id, razorpay_signature, self.settings.get_key_secret()
            ):
                raise PaymentConfirmationException(400, reason="Invalid checkout signature")

        try:
            razorpay_payment = await self.client.get_payment(payment_id)
        except RazorpayAPIException as e:
            raise PaymentConfirmationException(400, reason=e.message) from e

        transaction_hash_from_razorpay = (razorpay_payment.get("notes") or {}).get("transaction_hash")

        if not transaction_hash_from_razorpay:
            raise PaymentConfirmationException(404, reason="Payment carries no transaction hash")

        if transaction_hash_from_razorpay != transaction_hash:
            await self._log(
                "Razorpay Confirmation",
                f"Payment ownership mismatch. Payment {payment_id} belongs to transaction "
                f"{transaction_hash_from_razorpay}, not {transaction_hash}",
                "warning",
                module_name=None,
            )
            raise PaymentConfirmationException(400, reason="Payment ownership mismatch")

        transaction = await self._get_razorpay_transaction(transaction_hash)

        if transaction.status == TransactionStatus.SUCCEEDED:
            raise PaymentConfirmationException(400, reason="Transaction already confirmed")

        razorpay_payment = await self._capture_if_authorized(razorpay_payment, transaction)
        payment_status = razorpay_payment.get("status")

        # an authorized but uncaptured payment is not money received
        if payment_status in ("paid", "captured"):
            await self.confirm_payment_success_by_charge(transaction, razorpay_payment)
            return {
                "message": "Payment successful",
                "redirect_url": receipt_page_url(self.settings, transaction.uuid),
            }

        await self._log(
            "Razorpay Confirmation",
            f"Payment verification failed. Status: {payment_status}, Payment ID: {payment_id}",
            "warning",
            module_id=transaction.order_id,
        )
        raise PaymentConfirmationException(400, reason=f"Payment status {payment_status}")

    async def _capture_if_authorized(self, razorpay_payment: Dict[str, Any], transaction: OrderTransaction):
        if razorpay_payment.get("status") != "authorized" or razorpay_payment.get("captured"):
            return razorpay_payment

        try:
            return await self.client.capture_payment(
                razorpay_payment["id"],
                int(razorpay_payment.get("amount") or 0),
                razorpay_payment.get("currency") or "INR",
            )
        except RazorpayAPIException as e:
            await self._log(
                "Razorpay Confirmation",
                f"Failed to capture payment: {e.message}",
                "error",
                module_id=transaction.order_id,
            )
            raise PaymentConfirmationException(400, reason="Capture failed") from e

    async def confirm_subscription_payment(
        self,
        transaction_hash: str,
        payment_id: str,
        razorpay_subscription_id: Optional[str],
        razorpay_signature: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Confirm the first payment of a subscription paid in the checkout modal.

        Raises:
            PaymentConfirmationException: 400/404 when the payment cannot be confirmed
        """
        transaction = await self._get_razorpay_transaction(transaction_hash)

        if transaction.status == TransactionStatus.SUCCEEDED:
            raise PaymentConfirmationException(400, reason="Transaction already confirmed")

        order = await self.repos.orders.get(transaction.order_id)
        if order is None:
            raise PaymentConfirmationException(404, reason="Order not found")

        if not razorpay_subscription_id:
            raise PaymentConfirmationException(400, reason="Missing subscription id")

        if razorpay_signature and not verify_subscription_signature(
            payment_id, razorpay_subscription_id, razorpay_signature, self.settings.get_key_secret()
        ):
            raise PaymentConfirmationException(400, reason="Invalid checkout signature")

        try:
            vendor_subscription = await self.client.get_subscription(razorpay_subscription_id)
        except RazorpayAPIException as e:
            await self._log(
                "Razorpay Subscription Confirmation",
                f"Failed to fetch subscription: {e.message}",
                "error",
                module_id=order.id,
            )
            raise PaymentConfirmationException(400, reason="Subscription fetch failed") from e

        transaction_hash_from_razorpay = (vendor_subscription.get("notes") or {}).get("transaction_hash", "")

        if transaction_hash_from_razorpay != transaction_hash:
            await self._log(
                "Razorpay Subscription Confirmation",
                f"Transaction ownership mismatch. Transaction {transaction_hash} belongs to subscription "
                f"{transaction_hash_from_razorpay}, not {transaction_hash}",
                "error",
                module_id=order.id,
            )
            raise PaymentConfirmationException(400, reason="Subscription ownership mismatch")

        try:
            razorpay_payment = await self.client.get_payment(payment_id)
        except RazorpayAPIException as e:
            await self._log(
                "Razorpay Subscription Confirmation",
                f"Failed to fetch payment: {e.message}",
                "error",
                module_id=order.id,
            )
            raise PaymentConfirmationException(400, reason="Payment fetch failed") from e

        payment_status = razorpay_payment.get("status")

        # refunded: a zero first payment (trial or reactivation) is authorised then refunded
        if payment_status not in SUBSCRIPTION_PAYMENT_STATUSES:
            await self._log(
                "Razorpay Subscription Confirmation",
                f"Payment verification failed. Status: {payment_status}, Payment ID: {payment_id}",
                "warning",
                module_id=order.id,
            )
            raise PaymentConfirmationException(400, reason=f"Payment status {payment_status}")

        subscription = await self.repos.subscriptions.get_by_parent_order(order.id)
        if subscription is None and transaction.subscription_id:
            subscription = await self.repos.subscriptions.get(transaction.subscription_id)

        if subscription is not None:
            subscription_update: Dict[str, Any] = {
                "vendor_subscription_id": razorpay_subscription_id,
                "status": resolve_subscription_status(vendor_subscription),
                "vendor_response": vendor_subscription,
            }

            next_billing_date = get_next_billing_date(vendor_subscription)
            if next_billing_date:
                subscription_update["next_billing_date"] = next_billing_date

            if transaction.subscription_id is None:
                transaction.subscription_id = subscription.id

            await self.confirm_payment_success_by_charge(transaction, razorpay_payment, subscription_update)

            await self._log(
                "Razorpay Subscription Confirmed",
                f"Subscription {subscription.id} confirmed. Razorpay Subscription: "
                f"{razorpay_subscription_id}, Payment: {payment_id}",
                module_name="subscription",
                module_id=subscription.id,
            )

        return {
            "message": "Subscription payment confirmed",
            "redirect_url": receipt_page_url(self.settings, transaction.uuid),
        }

    async def confirm_hosted_payment(self, transaction_uuid: Optional[str], query: Dict[str, Any]) -> Dict[str, Any]:
        """
        Confirm a payment made on a Razorpay payment link.

        Args:
            transaction_uuid: `fluent_cart_payment` value of the callback URL
            query: Query parameters Razorpay appended to the callback URL

        Raises:
            PaymentConfirmationException: 400/404 when the payment cannot be confirmed
        """
        payment_id = query.get("razorpay_payment_id")
        link_id = query.get("razorpay_payment_link_id")
        reference_id = query.get("razorpay_payment_link_reference_id")
        link_status = query.get("razorpay_payment_link_status")
        signature = query.get("razorpay_signature")

        if not transaction_uuid or not payment_id or not signature:
            raise PaymentConfirmationException(400, reason="Missing callback parameters")

        if not verify_payment_link_signature(
            link_id or "", reference_id or "", link_status or "", payment_id, signature, self.settings.get_key_secret()
        ):
            raise PaymentConfirmationException(400, reason="Invalid payment link signature")

        if reference_id != transaction_uuid:
            raise PaymentConfirmationException(400, reason="Payment link reference mismatch")

        transaction = await self._get_razorpay_transaction(transaction_uuid)
        redirect_url = receipt_page_url(self.settings, transaction.uuid)

        # the webhook may have confirmed it before the customer came back
        if transaction.status == TransactionStatus.SUCCEEDED:
            return {"message": "Payment successful", "redirect_url": redirect_url}

        try:
            razorpay_payment = await self.client.get_payment(payment_id)
        except RazorpayAPIException as e:
            raise PaymentConfirmationException(400, reason=e.message) from e

        razorpay_payment = await self._capture_if_authorized(razorpay_payment, transaction)
        payment_status = razorpay_payment.get("status")

        if payment_status in ("paid", "captured"):
            transaction.update_meta("razorpay_payment_link_id", link_id)
            await self.confirm_payment_success_by_charge(transaction, razorpay_payment)
            return {"message": "Payment successful", "redirect_url": redirect_url}

        await self._log(
            "Razorpay Confirmation",
            f"Payment verification failed. Status: {payment_status}, Payment ID: {payment_id}",
            "warning",
            module_id=transaction.order_id,
        )
        raise PaymentConfirmationException(400, reason=f"Payment status {payment_status}")

    async def confirm_payment_success_by_charge(
        self,
        transaction: OrderTransaction,
        charge: Dict[str, Any],
        subscription_update: Optional[Dict[str, Any]] = None,
    ) -> Optional[Order]:
        """
        Record a successful Razorpay payment on the local transaction.

        Shared by modal and hosted confirmation and by the webhook handlers.

        Args:
            transaction: Local charge transaction
            charge: Razorpay payment entity
            subscription_update: Subscription column values to apply

        Returns:
            Order: The paid order, or None when nothing was updated
        """
        if transaction is None or transaction.status == TransactionStatus.SUCCEEDED:
            return None

        subscription_update = dict(subscription_update or {})

        order = await self.repos.orders.get(transaction.order_id)
        if order is None:
            await self._log(
                "Razorpay Payment Confirmation Error",
                f"Order not found for transaction ID: {transaction.id}",
                "error",
                module_name=None,
            )
            return None

        payment_id = charge.get("id")
        currency = (charge.get("currency") or transaction.currency or "INR").upper()
        amount = Money.from_vendor_amount(charge.get("amount", 0), currency)
        status = map_transaction_status(charge.get("status"))
        method = charge.get("method") or ""

        if status == TransactionStatus.REFUNDED and transaction.total <= 0:
            status = TransactionStatus.SUCCEEDED
            amount = Money.zero(currency)

        billing_info = extract_billing_info(charge)
        card = billing_info.get("card") or {}

        transaction.status = status
        transaction.total = amount.amount
        transaction.currency = currency
        transaction.payment_method = "razorpay"
        transaction.vendor_charge_id = payment_id
        transaction.payment_method_type = billing_info["payment_method"]
        transaction.card_last_4 = card.get("last4") or None
        transaction.card_brand = card.get("brand") or None
        transaction.merge_meta(
            {
                "razorpay_status": status,
                "razorpay_method": method,
                "razorpay_payment_id": payment_id,
                "billing_info": billing_info,
            }
        )
        await self.repos.transactions.save(transaction)

        await self._log(
            "Razorpay Payment Confirmation",
            f"Payment confirmed successfully. Payment ID: {payment_id}, Amount: {amount.display_amount()} "
            f"{currency}, Method: {billing_info['payment_method']}",
            module_id=order.id,
        )

        subscription = await self.repos.subscriptions.get(transaction.subscription_id)
        vendor_subscription = subscription_update.get("vendor_response") or {}
        payment_method_info = active_payment_method(billing_info, vendor_subscription)

        if order.type == OrderType.RENEWAL:
            subscription_update.update(
                {
                    "current_payment_method": "razorpay",
                    "canceled_at": None,
                    "status": SubscriptionStatus.ACTIVE,
                }
            )
            if subscription is not None:
                await self.renewals.record_manual_renewal(
                    subscription, transaction, payment_method_info, subscription_update
                )
            else:
                await self.order_status.sync(order, transaction)
        else:
            if subscription is not None:
                subscription.apply(subscription_update)
                subscription.update_meta("active_payment_method", payment_method_info)
                await self.repos.subscriptions.save(subscription)

                if subscription.status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING):
                    logger.info(f"Subscription {subscription.id} activated for order {order.id}")

            await self.order_status.sync(order, transaction)

        return order
