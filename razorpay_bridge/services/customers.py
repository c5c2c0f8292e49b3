"""Razorpay customer records for local customers."""

import logging

from razorpay_bridge.db.models import Customer
from razorpay_bridge.db.razorpay_client import RazorpayClient
from razorpay_bridge.db.repositories import Repositories
from razorpay_bridge.utils.error_handler import ErrorCode, PaymentGatewayException

logger = logging.getLogger(__name__)


class CustomerService:
    def __init__(self, repos: Repositories, client: RazorpayClient):
        self.repos = repos
        self.client = client

    async def create_or_get_customer(self, customer: Customer) -> str:
        """
        Return the Razorpay customer id for a local customer.

        A stored id is reused. Otherwise the customer is created with
        `fail_existing=0`, so Razorpay answers with the existing record
        when the email is already registered.
        """
        if customer.vendor_customer_id:
            return customer.vendor_customer_id

        customer_data = {
            "name": customer.full_name or customer.email,
            "email": customer.email,
            "fail_existing": "0",
        }
        if customer.phone:
            customer_data["contact"] = customer.phone

        vendor_customer = await self.client.create_customer(customer_data)
        vendor_customer_id = vendor_customer.get("id")

        if not vendor_customer_id:
            raise PaymentGatewayException(
                "Unable to create customer in Razorpay",
                error_code=ErrorCode.RAZORPAY_API_ERROR,
            )

        customer.vendor_customer_id = vendor_customer_id
        await self.repos.customers.save(customer)
        logger.info(f"Razorpay customer {vendor_customer_id} linked to customer {customer.id}")

        return vendor_customer_id


def build_prefill(customer: Customer) -> dict:
    """Checkout prefill block for a customer."""
    return {
        "name": customer.full_name,
        "email": customer.email,
        "contact": customer.phone or "",
    }
