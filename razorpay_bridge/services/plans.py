"""
Razorpay plans for subscription products.

Plans are keyed by variation, vendor amount, period, interval and currency,
and the mapping to Razorpay plan ids is cached in the `vendor_plans` table.
"""

import logging
from typing import Any, Dict

from razorpay_bridge.db.razorpay_client import RazorpayClient
from razorpay_bridge.db.repositories import Repositories
from razorpay_bridge.utils.error_handler import (
    ErrorCode,
    PaymentGatewayException,
    RazorpayAPIException,
    ValidationException,
)

logger = logging.getLogger(__name__)

DAY_IN_SECONDS = 86400

INTERVAL_MAPPING = {
    "daily": {"period": "daily", "interval": 1},
    "weekly": {"period": "weekly", "interval": 1},
    "monthly": {"period": "monthly", "interval": 1},
    "quarterly": {"period": "monthly", "interval": 3},
    "half_yearly": {"period": "monthly", "interval": 6},
    "yearly": {"period": "yearly", "interval": 1},
}

INTERVAL_SECONDS = {
    "daily": DAY_IN_SECONDS,
    "weekly": 7 * DAY_IN_SECONDS,
    "monthly": 30 * DAY_IN_SECONDS,
    "quarterly": 90 * DAY_IN_SECONDS,
    "half_yearly": 182 * DAY_IN_SECONDS,
    "yearly": 365 * DAY_IN_SECONDS,
}

MAX_ITEM_NAME_LENGTH = 250


def map_to_razorpay_interval(billing_interval: str) -> Dict[str, Any]:
    """
    Razorpay period and interval multiplier for a local billing interval.

    Raises:
        ValidationException: If the interval has no Razorpay equivalent
    """
    if billing_interval not in INTERVAL_MAPPING:
        raise ValidationException(
            f"Unsupported billing interval: {billing_interval}. "
            "Supported: daily, weekly, monthly, quarterly, half_yearly, yearly.",
            field="billing_interval",
            invalid_value=billing_interval,
        )
    return INTERVAL_MAPPING[billing_interval]


def interval_in_seconds(billing_interval: str) -> int:
    return INTERVAL_SECONDS.get(billing_interval, 30 * DAY_IN_SECONDS)


def generate_plan_key(variation_id, amount, period: str, interval: int, currency: str) -> str:
    return f"fct_razorpay_{int(variation_id or 0)}_{int(amount)}_{period}_{int(interval)}_{currency.lower()}"


class PlanService:
    def __init__(self, repos: Repositories, client: RazorpayClient):
        self.repos = repos
        self.client = client

    async def get_or_create_plan(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Find or create the Razorpay plan for a subscription product.

        Args:
            data: `amount` (vendor units), `currency`, `billing_interval`,
                `variation_id`, `item_name` and `trial_days`

        Returns:
            Dict: Razorpay plan entity

        Raises:
            ValidationException: If amount or interval are missing or invalid
            RazorpayAPIException: If the plan cannot be created
        """
        amount = data.get("amount")
        currency = (data.get("currency") or "INR").upper()
        billing_interval = data.get("billing_interval")
        variation_id = data.get("variation_id") or 0
        item_name = data.get("item_name") or "Subscription Plan"

        if not amount or not billing_interval:
            raise ValidationException(
                "Amount and billing interval are required for plan creation.",
                field="amount" if not amount else "billing_interval",
            )

        razorpay_interval = map_to_razorpay_interval(billing_interval)
        period = razorpay_interval["period"]
        interval = razorpay_interval["interval"]

        plan_key = generate_plan_key(variation_id, amount, period, interval, currency)

        cached_plan_id = await self.repos.plans.get_plan_id(plan_key)
        if cached_plan_id:
            try:
                existing_plan = await self.client.get_plan(cached_plan_id)
                if existing_plan.get("id"):
                    return existing_plan
            except RazorpayAPIException as e:
                logger.warning(f"Cached Razorpay plan {cached_plan_id} could not be fetched, creating a new one: {e}")

        plan_data = {
            "period": period,
            "interval": interval,
            "item": {
                "name": item_name[:MAX_ITEM_NAME_LENGTH],
                "amount": int(amount),
                "currency": currency,
            },
            "notes": {
                "fluent_cart_plan_id": plan_key,
                "variation_id": variation_id,
                "billing_interval": billing_interval,
            },
        }

        plan = await self.client.create_plan(plan_data)
        if not plan.get("id"):
            raise PaymentGatewayException("Razorpay did not return a plan id", error_code=ErrorCode.SUBSCRIPTION_ERROR)

        await self.repos.plans.put_plan_id(plan_key, plan["id"])
        logger.info(f"Razorpay plan {plan['id']} created for {plan_key}")

        return plan
