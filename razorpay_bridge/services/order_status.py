"""
Order status synchronization.

Derives an order's `status` and `payment_status` from its charge
transaction and the refunds recorded against it.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from razorpay_bridge.db.models import Order, OrderTransaction
from razorpay_bridge.db.repositories import Repositories
from razorpay_bridge.domain.status import (
    OrderStatus,
    OrderType,
    PaymentStatus,
    TransactionStatus,
)

logger = logging.getLogger(__name__)


class OrderStatusSynchronizer:
    """Keeps order statuses consistent with transaction outcomes."""

    def __init__(self, repos: Repositories):
        self.repos = repos

    async def sync(self, order: Order, transaction: Optional[OrderTransaction] = None) -> Order:
        """
        Recompute order statuses from a charge transaction.

        Args:
            order: Order to update
            transaction: Charge transaction; the latest charge of the order when omitted

        Returns:
            Order: The updated order
        """
        if transaction is None:
            transaction = await self.repos.transactions.get_latest_charge_for_order(order.id)
        if transaction is None:
            return order

        old_payment_status = order.payment_status
        old_status = order.status

        if transaction.refunded_total and transaction.refunded_total > 0:
            if transaction.refunded_total >= transaction.total:
                order.payment_status = PaymentStatus.REFUNDED
            else:
                order.payment_status = PaymentStatus.PARTIALLY_REFUNDED
        elif transaction.status == TransactionStatus.SUCCEEDED:
            order.payment_status = PaymentStatus.PAID
            if order.type == OrderType.RENEWAL:
                order.status = OrderStatus.COMPLETED
                order.completed_at = order.completed_at or datetime.now(timezone.utc)
            elif order.status in (OrderStatus.PENDING, OrderStatus.FAILED):
                order.status = OrderStatus.PROCESSING
        elif transaction.status == TransactionStatus.AUTHORIZED:
            order.payment_status = PaymentStatus.AUTHORIZED
        elif transaction.status == TransactionStatus.FAILED:
            order.payment_status = PaymentStatus.FAILED
        elif transaction.status == TransactionStatus.REFUNDED:
            order.payment_status = PaymentStatus.REFUNDED

        if (old_payment_status, old_status) != (order.payment_status, order.status):
            logger.info(
                f"Order {order.id} status synced: {old_status}/{old_payment_status} "
                f"-> {order.status}/{order.payment_status}"
            )
            await self.repos.orders.save(order)

        return order
