"""
Checkout processing for one-time payments.

Modal checkout creates a Razorpay order and hands the browser everything
checkout.js needs. Hosted checkout creates a payment link and returns its
URL for a redirect. Subscription orders are handed to the subscription
processor.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

from razorpay_bridge.core.config import Settings, get_settings
from razorpay_bridge.db.models import Customer, Order, OrderTransaction, Subscription
from razorpay_bridge.db.razorpay_client import RazorpayClient
from razorpay_bridge.db.repositories import Repositories
from razorpay_bridge.domain.value_objects.money import Money, is_currency_supported
from razorpay_bridge.services.customers import build_prefill
from razorpay_bridge.services.subscription_processor import SubscriptionProcessor
from razorpay_bridge.utils.error_handler import ErrorCode, PaymentGatewayException

logger = logging.getLogger(__name__)

MODAL_OPENING_MESSAGE = "Payment Modal is opening, Please complete the payment"

CHECKOUT_TRANSLATIONS = {
    "Processing payment...": "Processing payment...",
    "Pay Now": "Pay Now",
    "Place Order": "Place Order",
    "Payment Modal is opening...": MODAL_OPENING_MESSAGE,
}


def add_query_args(url: str, args: Dict[str, Any]) -> str:
    """Append query arguments to a URL, keeping the existing ones."""
    parts = urlsplit(url or "")
    query = urlencode(args)
    if parts.query:
        query = f"{parts.query}&{query}"
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def receipt_page_url(settings: Settings, transaction_uuid: str) -> str:
    return add_query_args(settings.RECEIPT_PAGE_URL, {"trx_hash": transaction_uuid})


def get_product_name(order: Order) -> str:
    """
    Short description of the order items.

    Example:
        "T-Shirt, Mug, Poster + 2 more"
    """
    item_names: List[str] = [str(title) for title in (order.items or []) if title]

    if not item_names:
        return f"Order #{order.id}"

    product_name = ", ".join(item_names[:3])
    if len(item_names) > 3:
        product_name += f" + {len(item_names) - 3} more"

    return product_name


class CheckoutProcessor:
    """Builds the checkout response for an order transaction."""

    def __init__(self, repos: Repositories, client: RazorpayClient, settings: Optional[Settings] = None):
        self.repos = repos
        self.client = client
        self.settings = settings or get_settings()

    def check_currency_support(self, currency: str) -> None:
        """
        Raises:
            PaymentGatewayException: If Razorpay cannot charge the currency
        """
        if not is_currency_supported(currency):
            raise PaymentGatewayException(
                "Razorpay does not support the currency you are using!",
                error_code=ErrorCode.UNSUPPORTED_CURRENCY,
                status_code=422,
                details={"currency": currency},
            )

    def get_success_url(self, transaction: OrderTransaction) -> str:
        return receipt_page_url(self.settings, transaction.uuid)

    async def make_payment(
        self,
        order: Order,
        transaction: OrderTransaction,
        customer: Customer,
        subscription: Optional[Subscription] = None,
        payment_args: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Start the payment for an order transaction.

        Args:
            order: Order being paid
            transaction: Pending charge transaction of the order
            customer: Paying customer
            subscription: Subscription bought with the order, if any
            payment_args: Extra arguments echoed back to the checkout script

        Returns:
            Dict: Checkout response (`nextAction`, `actionName`, `payment_args`)
        """
        self.check_currency_support(transaction.currency)

        payment_args = {
            "success_url": self.get_success_url(transaction),
            **(payment_args or {}),
        }

        if subscription is not None:
            processor = SubscriptionProcessor(self.repos, self.client, self.settings)
            return await processor.handle_subscription(order, transaction, subscription, customer, payment_args)

        return await self.handle_single_payment(order, transaction, customer, payment_args)

    async def handle_single_payment(
        self,
        order: Order,
        transaction: OrderTransaction,
        customer: Customer,
        payment_args: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        payment_args = payment_args or {}

        if self.settings.RAZORPAY_CHECKOUT_TYPE == "modal":
            return await self._handle_modal_payment(order, transaction, customer, payment_args)
        return await self._handle_hosted_payment(order, transaction, customer, payment_args)

    async def _handle_modal_payment(
        self, order: Order, transaction: OrderTransaction, customer: Customer, payment_args: Dict[str, Any]
    ) -> Dict[str, Any]:
        money = Money(transaction.total, transaction.currency)

        order_data = {
            "amount": money.to_vendor_amount(),
            "currency": money.currency,
            "receipt": transaction.uuid,
            "notes": {
                "order_id": order.id,
                "transaction_id": transaction.id,
                "order_hash": order.uuid,
                "transaction_hash": transaction.uuid,
            },
        }

        razorpay_order = await self.client.create_order(order_data)
        razorpay_order_id = razorpay_order.get("id")
        if not razorpay_order_id:
            raise PaymentGatewayException(
                "Unable to create order in Razorpay", error_code=ErrorCode.RAZORPAY_API_ERROR
            )

        transaction.vendor_charge_id = razorpay_order_id
        transaction.update_meta("razorpay_order_id", razorpay_order_id)
        await self.repos.transactions.save(transaction)

        logger.info(f"Razorpay order {razorpay_order_id} created for transaction {transaction.uuid}")

        modal_data = {
            "amount": money.to_vendor_amount(),
            "currency": money.currency,
            "description": get_product_name(order),
            "order_id": razorpay_order_id,
            "key": self.settings.get_api_key(),
            "name": self.settings.STORE_NAME,
            "prefill": build_prefill(customer),
            "theme": {"color": self.settings.RAZORPAY_THEME_COLOR},
        }

        return {
            "status": "success",
            "nextAction": "razorpay",
            "actionName": "modal",
            "message": MODAL_OPENING_MESSAGE,
            "payment_args": {
                **payment_args,
                "modal_data": modal_data,
                "transaction_hash": transaction.uuid,
                "order_hash": order.uuid,
                "checkout_type": "modal",
            },
        }

    async def _handle_hosted_payment(
        self, order: Order, transaction: OrderTransaction, customer: Customer, payment_args: Dict[str, Any]
    ) -> Dict[str, Any]:
        money = Money(transaction.total, transaction.currency)
        notifications = self.settings.notification_channels

        listener_url = add_query_args(
            payment_args.get("success_url") or self.get_success_url(transaction),
            {"fluent_cart_payment": transaction.uuid, "payment_method": "razorpay"},
        )

        payment_link_data = {
            "amount": money.to_vendor_amount(),
            "currency": money.currency,
            "description": get_product_name(order),
            "reference_id": transaction.uuid,
            "customer": build_prefill(customer),
            "callback_url": listener_url,
            "callback_method": "get",
            "notes": {
                "order_id": order.id,
                "transaction_id": transaction.id,
                "order_hash": order.uuid,
                "transaction_hash": transaction.uuid,
            },
            "notify": {
                "email": notifications["email"],
                "sms": notifications["sms"],
            },
        }

        payment_link = await self.client.create_payment_link(payment_link_data)

        redirect_url = payment_link.get("short_url")
        if not redirect_url:
            raise PaymentGatewayException(
                "Unable to get payment URL from Razorpay", error_code=ErrorCode.RAZORPAY_API_ERROR
            )

        if payment_link.get("id"):
            transaction.update_meta("razorpay_payment_link_id", payment_link["id"])
            await self.repos.transactions.save(transaction)

        return {
            "status": "success",
            "nextAction": "razorpay",
            "actionName": "redirect",
            "message": "Redirecting to Razorpay payment page...",
            "payment_args": {
                **payment_args,
                "checkout_url": redirect_url,
                "checkout_type": "hosted",
            },
        }

    def get_order_info(self, currency: str) -> Dict[str, Any]:
        """Data the checkout script needs before the payment starts."""
        self.check_currency_support(currency)

        return {
            "status": "success",
            "message": "Order info retrieved!",
            "data": [],
            "payment_args": {
                "public_key": self.settings.get_api_key(),
                "checkout_type": self.settings.RAZORPAY_CHECKOUT_TYPE,
            },
        }

    def checkout_config(self, confirm_url: str) -> Dict[str, Any]:
        """Static configuration for the checkout script."""
        return {
            "public_key": self.settings.get_api_key(),
            "checkout_type": self.settings.RAZORPAY_CHECKOUT_TYPE,
            "confirm_url": confirm_url,
            "translations": dict(CHECKOUT_TRANSLATIONS),
        }
