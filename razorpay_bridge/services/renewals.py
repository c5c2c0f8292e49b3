"""
Renewal bookkeeping for subscriptions.

Records renewal charges against the local subscription: manual renewals
paid through the checkout modal and renewal payments discovered on
Razorpay invoices.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from razorpay_bridge.db.models import Order, OrderTransaction, Subscription
from razorpay_bridge.db.repositories import Repositories
from razorpay_bridge.domain.status import (
    OrderStatus,
    OrderType,
    PaymentStatus,
    TransactionStatus,
    TransactionType,
)
from razorpay_bridge.services.order_status import OrderStatusSynchronizer

logger = logging.getLogger(__name__)


class RenewalService:
    def __init__(self, repos: Repositories):
        self.repos = repos
        self.order_status = OrderStatusSynchronizer(repos)

    async def sync_subscription_states(
        self, subscription: Subscription, subscription_args: Dict[str, Any]
    ) -> Subscription:
        """Apply a remote state update to the local subscription."""
        old_status = subscription.status
        subscription.apply(subscription_args)
        await self.repos.subscriptions.save(subscription)

        if old_status != subscription.status:
            await self.repos.activity.add_log(
                "Subscription status changed",
                f"Subscription status changed from {old_status} to {subscription.status}",
                module_name="subscription",
                module_id=subscription.id,
            )

        return subscription

    async def record_manual_renewal(
        self,
        subscription: Subscription,
        transaction: OrderTransaction,
        billing_info: Dict[str, Any],
        subscription_args: Dict[str, Any],
    ) -> Subscription:
        """
        Record a renewal the customer paid by hand.

        Args:
            subscription: Subscription being renewed
            transaction: Succeeded charge of the renewal order
            billing_info: Payment method details of the charge
            subscription_args: Column values to apply to the subscription
        """
        subscription.apply(subscription_args)
        subscription.bill_count = int(subscription.bill_count or 0) + 1
        subscription.update_meta("active_payment_method", billing_info)
        await self.repos.subscriptions.save(subscription)

        if transaction.subscription_id is None:
            transaction.subscription_id = subscription.id
            await self.repos.transactions.save(transaction)

        order = await self.repos.orders.get(transaction.order_id)
        if order is not None:
            await self.order_status.sync(order, transaction)

        await self.repos.activity.add_log(
            "Subscription renewed",
            f"Subscription {subscription.id} renewed manually with transaction {transaction.uuid}",
            module_name="subscription",
            module_id=subscription.id,
        )

        return subscription

    async def record_renewal_payment(
        self,
        subscription: Subscription,
        transaction_data: Dict[str, Any],
        subscription_args: Optional[Dict[str, Any]] = None,
    ) -> OrderTransaction:
        """
        Book a renewal charge Razorpay collected on its own.

        Creates a renewal order under the subscription's parent order and a
        succeeded charge transaction for it.

        Args:
            subscription: Subscription that was billed
            transaction_data: Column values of the new charge
            subscription_args: Remote state to apply to the subscription
        """
        parent_order = await self.repos.orders.get(subscription.parent_order_id)

        renewal_order = Order(
            type=OrderType.RENEWAL,
            status=OrderStatus.COMPLETED,
            payment_status=PaymentStatus.PAID,
            mode=parent_order.mode if parent_order else "test",
            customer_id=subscription.customer_id,
            parent_id=subscription.parent_order_id,
            total_amount=int(transaction_data.get("total") or 0),
            currency=transaction_data.get("currency") or (parent_order.currency if parent_order else "INR"),
            items=[subscription.item_name] if subscription.item_name else [],
            completed_at=datetime.now(timezone.utc),
        )
        await self.repos.orders.add(renewal_order)

        transaction = OrderTransaction(
            order_id=renewal_order.id,
            transaction_type=TransactionType.CHARGE,
            status=TransactionStatus.SUCCEEDED,
            payment_mode=renewal_order.mode,
            **transaction_data,
        )
        await self.repos.transactions.add(transaction)

        subscription.apply(subscription_args or {})
        subscription.bill_count = int(subscription.bill_count or 0) + 1
        await self.repos.subscriptions.save(subscription)

        await self.repos.activity.add_log(
            "Renewal payment recorded",
            f"Renewal payment {transaction.vendor_charge_id} recorded for subscription {subscription.id}",
            module_name="order",
            module_id=renewal_order.id,
        )
        logger.info(f"Renewal order {renewal_order.id} recorded for subscription {subscription.id}")

        return transaction
