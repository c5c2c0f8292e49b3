"""
Refunds.

Refunds are issued against the Razorpay payment of a charge transaction and
recorded locally as `refund` transactions whose `vendor_charge_id` is the
Razorpay refund id. The same records are reconciled when the
`refund.created` and `refund.processed` webhooks arrive.
"""

import logging
from typing import Any, Dict, Optional

from razorpay_bridge.core.config import Settings, get_settings
from razorpay_bridge.db.models import OrderTransaction
from razorpay_bridge.db.razorpay_client import RazorpayClient
from razorpay_bridge.db.repositories import Repositories
from razorpay_bridge.domain.status import TransactionStatus, TransactionType
from razorpay_bridge.domain.value_objects.money import Money
from razorpay_bridge.services.order_status import OrderStatusSynchronizer
from razorpay_bridge.utils.error_handler import ErrorCode, PaymentGatewayException, ValidationException

logger = logging.getLogger(__name__)

REFUND_REASONS = {
    "duplicate": "Duplicate payment",
    "fraudulent": "Fraudulent payment",
    "requested_by_customer": "Requested by customer",
}

ACCEPTED_REFUND_STATUSES = ("pending", "processed")


def refund_status_from_vendor(vendor_status: Optional[str]) -> str:
    return TransactionStatus.REFUNDED if vendor_status == "processed" else TransactionStatus.PENDING


class RefundService:
    def __init__(self, repos: Repositories, client: RazorpayClient, settings: Optional[Settings] = None):
        self.repos = repos
        self.client = client
        self.settings = settings or get_settings()
        self.order_status = OrderStatusSynchronizer(repos)

    async def process_remote_refund(
        self,
        transaction: OrderTransaction,
        amount: int,
        note: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> str:
        """
        Refund a charge in Razorpay.

        Args:
            transaction: Charge transaction to refund
            amount: Amount in local minor units
            note: Merchant note shown in the Razorpay dashboard
            reason: Refund reason, used as the note when none is given

        Returns:
            str: Razorpay refund id

        Raises:
            ValidationException: If the amount is missing
            PaymentGatewayException: If Razorpay does not accept the refund
        """
        refund = await self._create_remote_refund(transaction, amount, note, reason)
        return refund["id"]

    async def _create_remote_refund(
        self,
        transaction: OrderTransaction,
        amount: int,
        note: Optional[str],
        reason: Optional[str],
    ) -> Dict[str, Any]:
        """Create the refund in Razorpay and return the accepted refund entity."""
        if not amount:
            raise ValidationException("Refund amount is required.", field="amount", invalid_value=amount)

        razorpay_payment_id = transaction.vendor_charge_id
        if not razorpay_payment_id:
            raise PaymentGatewayException("Payment ID not found for refund", error_code=ErrorCode.REFUND_FAILED)

        refund_data: Dict[str, Any] = {
            "amount": Money(int(amount), transaction.currency).to_vendor_amount(),
        }

        if self.settings.RAZORPAY_REFUND_SPEED:
            refund_data["speed"] = self.settings.RAZORPAY_REFUND_SPEED

        if note:
            refund_data["notes"] = {"merchant_note": note}
        elif reason:
            refund_data["notes"] = {"merchant_note": REFUND_REASONS.get(reason, reason)}

        refund = await self.client.create_refund(razorpay_payment_id, refund_data)

        refund_id = refund.get("id")
        refund_status = refund.get("status")

        if not refund_id:
            raise PaymentGatewayException(
                "Refund ID not found in Razorpay response", error_code=ErrorCode.REFUND_FAILED
            )

        if refund_status not in ACCEPTED_REFUND_STATUSES:
            raise PaymentGatewayException(
                f"Refund could not be processed in Razorpay. Status: {refund_status}",
                error_code=ErrorCode.REFUND_FAILED,
            )

        await self.repos.activity.add_log(
            "Razorpay Refund Initiated",
            f"Refund created with ID: {refund_id}, Status: {refund_status}",
            module_name="order",
            module_id=transaction.order_id,
        )
        logger.info(f"Refund created with ID: {refund_id}, Status: {refund_status}")

        return refund

    async def refund(
        self,
        transaction: OrderTransaction,
        amount: int,
        note: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> OrderTransaction:
        """Refund a charge in Razorpay and record the local refund transaction."""
        refund = await self._create_remote_refund(transaction, amount, note, reason)

        refund_data = self.build_refund_data(
            transaction,
            refund_id=refund["id"],
            total=int(amount),
            status=refund_status_from_vendor(refund.get("status")),
            meta={"refund_source": "api", "refund_notes": refund.get("notes") or {}},
        )

        return await self.create_or_update_webhook_refund(refund_data, transaction)

    @staticmethod
    def build_refund_data(
        parent: OrderTransaction,
        refund_id: str,
        total: int,
        status: str,
        meta: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Column values of a refund transaction for a parent charge."""
        return {
            "order_id": parent.order_id,
            "subscription_id": parent.subscription_id,
            "transaction_type": TransactionType.REFUND,
            "status": status,
            "payment_method": "razorpay",
            "payment_mode": parent.payment_mode,
            "vendor_charge_id": refund_id,
            "total": total,
            "currency": parent.currency,
            "meta": {
                "parent_id": parent.id,
                "razorpay_refund_id": refund_id,
                "razorpay_payment_id": parent.vendor_charge_id,
                **(meta or {}),
            },
        }

    async def create_or_update_webhook_refund(
        self, refund_data: Dict[str, Any], parent: OrderTransaction
    ) -> OrderTransaction:
        """
        Upsert a refund transaction.

        A refund with the same Razorpay id is updated in place. A local refund
        recorded without a Razorpay id and with the same total is adopted.
        Otherwise a new refund is created and added to the parent's
        refunded total.
        """
        existing = await self.repos.transactions.get_refund_by_vendor_id(refund_data["vendor_charge_id"])

        if existing is not None:
            if existing.total != refund_data["total"] or existing.status != refund_data["status"]:
                self._fill(existing, refund_data)
                await self.repos.transactions.save(existing)
            await self._sync_order(parent)
            return existing

        for refund in await self.repos.transactions.get_refunds_for_order(parent.order_id):
            if not refund.vendor_charge_id and refund.total == refund_data["total"]:
                self._fill(refund, refund_data)
                await self.repos.transactions.save(refund)
                await self._sync_order(parent)
                return refund

        created_refund = OrderTransaction(**refund_data)
        await self.repos.transactions.add(created_refund)

        parent.refunded_total = min(int(parent.refunded_total or 0) + created_refund.total, int(parent.total or 0))
        await self.repos.transactions.save(parent)

        await self._sync_order(parent)
        logger.info(f"Refund {created_refund.vendor_charge_id} recorded for transaction {parent.uuid}")

        return created_refund

    @staticmethod
    def _fill(refund: OrderTransaction, refund_data: Dict[str, Any]) -> None:
        for key, value in refund_data.items():
            if key == "meta":
                refund.merge_meta(value)
            else:
                setattr(refund, key, value)

    async def _sync_order(self, parent: OrderTransaction) -> None:
        order = await self.repos.orders.get(parent.order_id)
        if order is not None:
            await self.order_status.sync(order, parent)
