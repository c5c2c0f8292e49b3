"""
Subscription checkout.

Creates the Razorpay plan, customer and subscription for a subscription
order and returns the modal data. Razorpay subscriptions only work with
the checkout modal.

The first charge is shaped from the order totals:

1. Normal: first == recurring, no trial. The plan bills the first cycle.
2. Discounted first cycle with a trial: "Initial Payment" addon plus start_at.
3. Signup fee: first > recurring. Addon plus start_at one interval out.
4. Real trial (nothing due now): start_at after the trial days.
5. Fully discounted first cycle: same as 4.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from razorpay_bridge.core.config import Settings, get_settings
from razorpay_bridge.db.models import Customer, Order, OrderTransaction, Subscription
from razorpay_bridge.db.razorpay_client import RazorpayClient
from razorpay_bridge.db.repositories import Repositories
from razorpay_bridge.domain.status import OrderType
from razorpay_bridge.domain.value_objects.money import Money
from razorpay_bridge.services.customers import CustomerService, build_prefill
from razorpay_bridge.services.plans import DAY_IN_SECONDS, PlanService, interval_in_seconds
from razorpay_bridge.utils.error_handler import ErrorCode, PaymentGatewayException

logger = logging.getLogger(__name__)

# Razorpay needs a finite total_count; these cover about ten years
UNLIMITED_COUNTS = {
    "daily": 3650,
    "weekly": 520,
    "monthly": 120,
    "quarterly": 40,
    "half_yearly": 20,
    "yearly": 100,
}


def unlimited_total_count(billing_interval: str) -> int:
    return UNLIMITED_COUNTS.get(billing_interval, 120)


def _now_ts() -> int:
    return int(time.time())


class SubscriptionProcessor:
    def __init__(self, repos: Repositories, client: RazorpayClient, settings: Optional[Settings] = None):
        self.repos = repos
        self.client = client
        self.settings = settings or get_settings()
        self.customers = CustomerService(repos, client)
        self.plans = PlanService(repos, client)

    async def handle_subscription(
        self,
        order: Order,
        transaction: OrderTransaction,
        subscription: Subscription,
        customer: Customer,
        payment_args: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Create the Razorpay subscription behind a subscription or renewal order.

        Raises:
            PaymentGatewayException: If hosted checkout is configured
        """
        if self.settings.RAZORPAY_CHECKOUT_TYPE != "modal":
            raise PaymentGatewayException(
                "Hosted checkout is not supported for subscriptions. Please use modal checkout.",
                error_code=ErrorCode.SUBSCRIPTION_ERROR,
            )

        payment_args = payment_args or {}

        if order.type == OrderType.RENEWAL:
            return await self._handle_renewal_subscription(order, transaction, subscription, customer, payment_args)

        return await self._handle_initial_subscription(order, transaction, subscription, customer, payment_args)

    def _base_subscription_data(
        self,
        plan_id: str,
        vendor_customer_id: str,
        order: Order,
        transaction: OrderTransaction,
        subscription: Subscription,
        customer: Customer,
    ) -> Dict[str, Any]:
        notify_info = {"notify_email": customer.email}
        if customer.phone:
            notify_info["notify_phone"] = customer.phone

        return {
            "plan_id": plan_id,
            "customer_id": vendor_customer_id,
            # 1 forces the card to be saved for the mandate
            "customer_notify": 1,
            "notify_info": notify_info,
            "notes": {
                "fluent_cart_order_id": order.id,
                "fluent_cart_subscription_hash": subscription.uuid,
                "transaction_hash": transaction.uuid,
                "order_hash": order.uuid,
                "customer_email": customer.email,
            },
        }

    async def _handle_initial_subscription(
        self,
        order: Order,
        transaction: OrderTransaction,
        subscription: Subscription,
        customer: Customer,
        payment_args: Dict[str, Any],
    ) -> Dict[str, Any]:
        currency = transaction.currency.upper()
        first_payment = Money(int(transaction.total or 0), currency).to_vendor_amount()
        recurring_total = Money(int(subscription.recurring_total or 0), currency).to_vendor_amount()
        trial_days = int(subscription.trial_days or 0)
        billing_interval = subscription.billing_interval
        bill_times = int(subscription.bill_times or 0)

        vendor_customer_id = await self.customers.create_or_get_customer(customer)

        plan = await self.plans.get_or_create_plan(
            {
                "amount": recurring_total,
                "currency": currency,
                "billing_interval": billing_interval,
                "variation_id": subscription.variation_id,
                "item_name": subscription.item_name,
                "trial_days": trial_days,
            }
        )

        subscription_data = self._base_subscription_data(
            plan["id"], vendor_customer_id, order, transaction, subscription, customer
        )

        total_count = bill_times
        use_addon = False

        if first_payment == 0:
            if trial_days > 0:
                subscription_data["start_at"] = _now_ts() + trial_days * DAY_IN_SECONDS
        elif first_payment == recurring_total and trial_days == 0:
            pass
        else:
            use_addon = True
            subscription_data["addons"] = [
                {"item": {"name": "Initial Payment", "amount": first_payment, "currency": currency}}
            ]

            if trial_days > 0:
                subscription_data["start_at"] = _now_ts() + trial_days * DAY_IN_SECONDS
            else:
                subscription_data["start_at"] = _now_ts() + interval_in_seconds(billing_interval)

            # the addon pays for the first period
            if total_count > 0:
                total_count -= 1

        subscription_data["total_count"] = total_count if total_count > 0 else unlimited_total_count(billing_interval)

        vendor_subscription = await self.client.create_subscription(subscription_data)
        vendor_subscription_id = self._require_id(vendor_subscription)

        transaction.vendor_charge_id = vendor_subscription_id
        transaction.merge_meta(
            {
                "razorpay_subscription_id": vendor_subscription_id,
                "razorpay_plan_id": plan["id"],
                "use_addon": use_addon,
            }
        )
        subscription.apply(
            {
                "vendor_subscription_id": vendor_subscription_id,
                "vendor_plan_id": plan["id"],
                "vendor_customer_id": vendor_customer_id,
            }
        )
        await self.repos.subscriptions.save(subscription)

        logger.info(
            f"Razorpay subscription {vendor_subscription_id} created for order {order.id} "
            f"(addon: {use_addon}, total_count: {subscription_data['total_count']})"
        )

        return self._modal_response(
            vendor_subscription_id, order, transaction, customer, subscription.item_name, payment_args
        )

    async def _handle_renewal_subscription(
        self,
        order: Order,
        transaction: OrderTransaction,
        subscription: Subscription,
        customer: Customer,
        payment_args: Dict[str, Any],
    ) -> Dict[str, Any]:
        currency = transaction.currency.upper()
        renewal_amount = Money(int(subscription.recurring_total or 0), currency).to_vendor_amount()
        billing_interval = subscription.billing_interval
        bill_times = int(subscription.bill_times or 0)
        reactivation_trial_days = subscription.reactivation_trial_days

        vendor_customer_id = await self.customers.create_or_get_customer(customer)

        plan = await self.plans.get_or_create_plan(
            {
                "amount": renewal_amount,
                "currency": currency,
                "billing_interval": billing_interval,
                "variation_id": subscription.variation_id,
                "item_name": subscription.item_name,
                "trial_days": reactivation_trial_days,
            }
        )

        subscription_data = self._base_subscription_data(
            plan["id"], vendor_customer_id, order, transaction, subscription, customer
        )
        subscription_data["notes"]["is_renewal"] = True

        if bill_times > 0:
            remaining_bill_times = max(0, bill_times - int(subscription.bill_count or 0))
            if remaining_bill_times > 0:
                subscription_data["total_count"] = remaining_bill_times
        else:
            subscription_data["total_count"] = unlimited_total_count(billing_interval)

        if reactivation_trial_days > 0:
            subscription_data["start_at"] = _now_ts() + reactivation_trial_days * DAY_IN_SECONDS

        vendor_subscription = await self.client.create_subscription(subscription_data)
        vendor_subscription_id = self._require_id(vendor_subscription)

        old_subscription_id = subscription.vendor_subscription_id

        transaction.vendor_charge_id = vendor_subscription_id
        transaction.merge_meta(
            {
                "razorpay_subscription_id": vendor_subscription_id,
                "razorpay_plan_id": plan["id"],
                "is_renewal": True,
                "old_subscription_id": old_subscription_id,
            }
        )
        subscription.apply(
            {
                "vendor_subscription_id": vendor_subscription_id,
                "vendor_plan_id": plan["id"],
                "vendor_customer_id": vendor_customer_id,
            }
        )

        if old_subscription_id:
            old_subscriptions = list(subscription.get_meta("old_subscriptions", []))
            old_subscriptions.append(
                {
                    "vendor_subscription_id": old_subscription_id,
                    "replaced_at": datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S"),
                    "reason": "renewal",
                }
            )
            subscription.update_meta("old_subscriptions", old_subscriptions)

        await self.repos.subscriptions.save(subscription)

        logger.info(
            f"Razorpay renewal subscription {vendor_subscription_id} created for order {order.id}, "
            f"replacing {old_subscription_id}"
        )

        response = self._modal_response(
            vendor_subscription_id,
            order,
            transaction,
            customer,
            f"{subscription.item_name} - Renewal/Reactivation",
            payment_args,
        )
        response["payment_args"]["is_renewal"] = True
        return response

    @staticmethod
    def _require_id(vendor_subscription: Dict[str, Any]) -> str:
        vendor_subscription_id = vendor_subscription.get("id")
        if not vendor_subscription_id:
            raise PaymentGatewayException(
                "Unable to create subscription in Razorpay", error_code=ErrorCode.SUBSCRIPTION_ERROR
            )
        return vendor_subscription_id

    def _modal_response(
        self,
        vendor_subscription_id: str,
        order: Order,
        transaction: OrderTransaction,
        customer: Customer,
        description: str,
        payment_args: Dict[str, Any],
    ) -> Dict[str, Any]:
        modal_data = {
            "subscription_id": vendor_subscription_id,
            "api_key": self.settings.get_api_key(),
            "name": self.settings.STORE_NAME,
            "description": description,
            "prefill": build_prefill(customer),
            "theme": {"color": self.settings.RAZORPAY_THEME_COLOR},
        }

        return {
            "status": "success",
            "nextAction": "razorpay",
            "actionName": "custom",
            "message": "Payment Modal is opening, Please complete the payment",
            "payment_args": {
                **payment_args,
                "modal_data": modal_data,
                "transaction_hash": transaction.uuid,
                "order_hash": order.uuid,
                "checkout_type": "modal",
                "is_subscription": True,
            },
        }
