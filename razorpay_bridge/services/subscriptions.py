"""
Subscription management against Razorpay.

Cancel, pause and resume are forwarded to Razorpay and the resulting state
is written to the local subscription. `resync_from_remote` pulls the
subscription and its invoices back from Razorpay and books renewal
payments that were collected without a local record.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from razorpay_bridge.core.config import Settings, get_settings
from razorpay_bridge.db.models import Subscription
from razorpay_bridge.db.razorpay_client import RazorpayClient
from razorpay_bridge.db.repositories import Repositories
from razorpay_bridge.domain.status import (
    TransactionStatus,
    get_next_billing_date,
    map_subscription_status,
    resolve_subscription_status,
    timestamp_to_datetime,
)
from razorpay_bridge.domain.value_objects.money import Money
from razorpay_bridge.services.renewals import RenewalService
from razorpay_bridge.utils.error_handler import (
    ErrorCode,
    NotFoundException,
    PaymentGatewayException,
    RazorpayAPIException,
    ValidationException,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubscriptionManager:
    """Remote operations on Razorpay subscriptions."""

    def __init__(self, repos: Repositories, client: RazorpayClient, settings: Optional[Settings] = None):
        self.repos = repos
        self.client = client
        self.settings = settings or get_settings()
        self.renewals = RenewalService(repos)

    @staticmethod
    def _require_vendor_id(subscription: Subscription, message: str) -> str:
        if not subscription.vendor_subscription_id:
            raise PaymentGatewayException(message, error_code=ErrorCode.SUBSCRIPTION_ERROR)
        return subscription.vendor_subscription_id

    async def cancel(self, vendor_subscription_id: Optional[str], cancel_at_cycle_end: bool = False) -> Dict[str, Any]:
        """
        Cancel a Razorpay subscription.

        Args:
            vendor_subscription_id: Razorpay subscription id
            cancel_at_cycle_end: Let the current cycle run out first

        Returns:
            Dict: Local `status` and `canceled_at`
        """
        if not vendor_subscription_id:
            raise ValidationException(
                "Subscription ID is required for cancellation.", field="vendor_subscription_id"
            )

        response = await self.client.cancel_subscription(vendor_subscription_id, cancel_at_cycle_end)

        result = {
            "status": map_subscription_status(response.get("status")),
            "canceled_at": timestamp_to_datetime(response.get("ended_at")) or _utcnow(),
        }

        subscription = await self.repos.subscriptions.get_by_vendor_id(vendor_subscription_id)
        if subscription is not None:
            await self.renewals.sync_subscription_states(subscription, {**result, "vendor_response": response})

        logger.info(
            f"Razorpay subscription {vendor_subscription_id} canceled "
            f"(at cycle end: {cancel_at_cycle_end}, status: {result['status']})"
        )
        return result

    async def pause(self, subscription: Subscription, pause_at: str = "now") -> Dict[str, Any]:
        vendor_subscription_id = self._require_vendor_id(
            subscription, "No Razorpay subscription ID found for this subscription."
        )

        response = await self.client.pause_subscription(vendor_subscription_id, pause_at)

        result = {
            "status": map_subscription_status(response.get("status")),
            "paused_at": timestamp_to_datetime(response.get("paused_at")) or _utcnow(),
        }
        await self.renewals.sync_subscription_states(
            subscription, {"status": result["status"], "vendor_response": response}
        )

        return result

    async def resume(self, subscription: Subscription, resume_at: str = "now") -> Dict[str, Any]:
        vendor_subscription_id = self._require_vendor_id(
            subscription, "No Razorpay subscription ID found for this subscription."
        )

        response = await self.client.resume_subscription(vendor_subscription_id, resume_at)

        result = {
            "status": map_subscription_status(response.get("status")),
            "resumed_at": _utcnow(),
        }
        await self.renewals.sync_subscription_states(
            subscription, {"status": result["status"], "vendor_response": response}
        )

        return result

    async def resync_from_remote(self, subscription: Subscription) -> Subscription:
        """
        Pull the subscription state and new renewal payments from Razorpay.

        Returns:
            Subscription: The updated local subscription
        """
        vendor_subscription_id = self._require_vendor_id(subscription, "No Razorpay subscription ID found.")

        vendor_subscription = await self.client.get_subscription(vendor_subscription_id)

        razorpay_status = vendor_subscription.get("status")
        subscription_update: Dict[str, Any] = {
            "status": resolve_subscription_status(vendor_subscription),
            "vendor_response": vendor_subscription,
        }

        next_billing_date = get_next_billing_date(vendor_subscription)
        if next_billing_date:
            subscription_update["next_billing_date"] = next_billing_date

        ended_at = timestamp_to_datetime(vendor_subscription.get("ended_at"))
        if ended_at and razorpay_status in ("cancelled", "completed"):
            if razorpay_status == "cancelled":
                subscription_update["canceled_at"] = ended_at
            subscription_update["expire_at"] = ended_at

        payment_method_info = dict(subscription.get_meta("active_payment_method", {}) or {})
        payment_method = vendor_subscription.get("payment_method") or ""
        if payment_method:
            payment_method_info["payment_method"] = payment_method
            if payment_method == "card":
                payment_method_info["card_mandate_id"] = vendor_subscription.get("card_mandate_id", "")
        subscription.update_meta("active_payment_method", payment_method_info)

        try:
            invoices = await self.client.list_invoices(vendor_subscription_id)
        except RazorpayAPIException as e:
            await self.repos.activity.add_log(
                "Razorpay Subscription Sync",
                f"Failed to fetch invoices: {e.message}",
                "warning",
                module_name="subscription",
                module_id=subscription.id,
            )
            invoices = {"items": []}

        has_new_invoice = False

        for invoice in invoices.get("items") or []:
            if await self._sync_invoice(subscription, vendor_subscription_id, invoice, subscription_update):
                has_new_invoice = True

        if not has_new_invoice:
            await self.renewals.sync_subscription_states(subscription, subscription_update)

        return subscription

    async def _sync_invoice(
        self,
        subscription: Subscription,
        vendor_subscription_id: str,
        invoice: Dict[str, Any],
        subscription_update: Dict[str, Any],
    ) -> bool:
        """Book one Razorpay invoice; True when a new renewal was recorded."""
        payment_id = invoice.get("payment_id")
        invoice_subscription_id = invoice.get("subscription_id")

        if invoice_subscription_id != vendor_subscription_id:
            await self.repos.activity.add_log(
                "Razorpay Subscription Sync",
                f"Skipping invoice {invoice.get('id')} - belongs to subscription "
                f"{invoice_subscription_id}, not {vendor_subscription_id}",
                "warning",
                module_name="subscription",
                module_id=subscription.id,
            )
            return False

        if invoice.get("status") != "paid" or not payment_id:
            return False

        if await self.repos.transactions.get_by_payment_id(payment_id) is not None:
            return False

        try:
            payment = await self.client.get_payment(payment_id)
        except RazorpayAPIException as e:
            logger.warning(f"Skipping invoice {invoice.get('id')}, payment {payment_id} could not be fetched: {e}")
            return False

        pending_charge = await self.repos.transactions.get_pending_charge_for_subscription(subscription.id)
        if pending_charge is not None:
            pending_charge.vendor_charge_id = payment_id
            pending_charge.status = TransactionStatus.SUCCEEDED
            await self.repos.transactions.save(pending_charge)
            return False

        currency = (invoice.get("currency") or payment.get("currency") or "INR").upper()
        amount = invoice.get("amount_paid", payment.get("amount", 0))
        paid_at = timestamp_to_datetime(invoice.get("paid_at") or payment.get("created_at"))

        transaction_data = {
            "subscription_id": subscription.id,
            "payment_method": "razorpay",
            "vendor_charge_id": payment_id,
            "total": Money.from_vendor_amount(amount, currency).amount,
            "currency": currency,
            "created_at": paid_at or _utcnow(),
            "meta": {
                "razorpay_invoice_id": invoice.get("id"),
                "razorpay_payment_id": payment_id,
                "synced_from_remote": True,
            },
        }

        await self.renewals.record_renewal_payment(subscription, transaction_data, subscription_update)

        await self.repos.activity.add_log(
            "Razorpay Subscription Sync",
            f"Synced renewal payment: {payment_id}",
            module_name="subscription",
            module_id=subscription.id,
        )
        return True

    async def card_update(self, subscription_id: int) -> Dict[str, Any]:
        """Link where the customer can replace the card behind the mandate."""
        subscription = await self.repos.subscriptions.get(subscription_id)
        if subscription is None:
            raise NotFoundException("Subscription not found.", resource="subscription", identifier=subscription_id)

        vendor_subscription_id = self._require_vendor_id(subscription, "No Razorpay subscription ID found.")

        response = await self.client.get_update_card_url(vendor_subscription_id)

        short_url = response.get("short_url")
        if not short_url:
            raise PaymentGatewayException(
                "Failed to generate card update link.", error_code=ErrorCode.SUBSCRIPTION_ERROR
            )

        return {
            "status": "redirect",
            "redirect_url": short_url,
            "message": "Redirecting to Razorpay to update your card...",
        }

