"""
Razorpay REST client.

Thin async wrapper over the Razorpay v1 API. Every call authenticates with
the key pair of the active payment mode. Rate limits (429) are retried
through the shared "razorpay" RetryHandler; network errors and 5xx are
retried only for GET, since a POST may already have been applied.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import aiohttp
from aiohttp import ClientTimeout

from razorpay_bridge.core.config import Settings, get_settings
from razorpay_bridge.core.logging_config import log_api_call
from razorpay_bridge.utils.error_handler import ConfigurationException, RazorpayAPIException
from razorpay_bridge.utils.retry_handler import RetryHandler, get_handler

logger = logging.getLogger(__name__)


class RazorpayClient:
    """
    Client for the Razorpay REST API.

    Covers the objects the bridge needs: orders, payments, payment links,
    refunds, customers, plans, subscriptions and invoices.
    """

    def __init__(self, settings: Optional[Settings] = None, retry_handler: Optional[RetryHandler] = None):
        """Initialize the client; the HTTP session is created lazily."""
        self.settings = settings or get_settings()
        self.base_url = self.settings.RAZORPAY_API_BASE_URL.rstrip("/")
        self.retry_handler = retry_handler or get_handler("razorpay")
        self.session: Optional[aiohttp.ClientSession] = None

    async def initialize(self):
        """Create the HTTP session."""
        if self.session and not self.session.closed:
            return

        timeout = ClientTimeout(total=self.settings.RAZORPAY_REQUEST_TIMEOUT, connect=10)
        connector = aiohttp.TCPConnector(limit=50, limit_per_host=20)

        self.session = aiohttp.ClientSession(
            timeout=timeout,
            connector=connector,
            headers={
                "Content-Type": "application/json",
                "User-Agent": f"{self.settings.APP_NAME}/{self.settings.APP_VERSION}",
            },
        )
        logger.info(f"Razorpay client initialized for {self.base_url} ({self.settings.RAZORPAY_PAYMENT_MODE} mode)")

    async def close(self):
        """Close the HTTP session and clean up resources."""
        if self.session:
            await self.session.close()
            self.session = None
            logger.info("Razorpay client closed")

    def _get_auth(self) -> aiohttp.BasicAuth:
        """
        Build basic auth credentials for the active mode.

        Raises:
            ConfigurationException: If keys are missing or malformed
        """
        mode = self.settings.RAZORPAY_PAYMENT_MODE
        keys = self.settings.get_api_keys(mode)

        if not keys:
            raise ConfigurationException(
                f"Razorpay API keys are not configured for {mode} mode. Please check your settings.",
                mode=mode,
            )

        if not keys["api_key"].startswith("rzp_"):
            raise ConfigurationException(
                'Invalid Razorpay Public Key format. Keys should start with "rzp_test_" or "rzp_live_".',
                mode=mode,
                details={"api_key_prefix": keys["api_key"][:10]},
            )

        return aiohttp.BasicAuth(keys["api_key"], keys["api_secret"])

    async def _request(self, method: str, path: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Execute an API call with retries.

        Args:
            method: HTTP method
            path: Path relative to the API base URL
            data: JSON body for POST, query parameters for GET

        Returns:
            Dict: Decoded response entity

        Raises:
            ConfigurationException: If keys are not usable
            RazorpayAPIException: If Razorpay answers with an error
        """
        auth = self._get_auth()
        await self.initialize()

        return await self.retry_handler.execute(
            self._send,
            method,
            path,
            data,
            auth,
            context={"method": method, "path": path},
            idempotent=method == "GET",
        )

    async def _send(
        self, method: str, path: str, data: Optional[Dict[str, Any]], auth: aiohttp.BasicAuth
    ) -> Dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        idempotent = method == "GET"
        request_kwargs: Dict[str, Any] = {"auth": auth}

        if method == "GET":
            if data:
                request_kwargs["params"] = {key: str(value) for key, value in data.items() if value is not None}
        else:
            request_kwargs["json"] = data or {}

        start_time = time.time()

        try:
            async with self.session.request(method, url, **request_kwargs) as response:
                duration = time.time() - start_time
                log_api_call(method, f"/{path}", response.status, duration)

                if response.status == 429:
                    retry_after = int(response.headers.get("Retry-After", 2))
                    logger.warning(f"Razorpay rate limit exceeded, retry after {retry_after}s")
                    raise RazorpayAPIException(
                        message="Razorpay rate limit exceeded",
                        api_response_code=429,
                        endpoint=path,
                        rate_limited=True,
                        retry_after=retry_after,
                    )

                try:
                    response_data = await response.json(content_type=None)
                except ValueError as e:
                    raise RazorpayAPIException(
                        message=f"Invalid JSON response from Razorpay (HTTP {response.status})",
                        api_response_code=response.status,
                        endpoint=path,
                        idempotent=idempotent,
                    ) from e

                if not isinstance(response_data, dict):
                    response_data = {"items": response_data}

                if response_data.get("error") or response.status >= 400:
                    raise RazorpayAPIException.from_response(
                        response_data, response.status, path, idempotent=idempotent
                    )

                return response_data

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RazorpayAPIException(
                message=f"Network error: {str(e)}", endpoint=path, idempotent=idempotent
            ) from e

    # === ORDERS & PAYMENTS ===

    async def create_order(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a Razorpay order (modal checkout)."""
        return await self._request("POST", "orders", data)

    async def get_payment(self, payment_id: str) -> Dict[str, Any]:
        """Fetch a payment entity."""
        return await self._request("GET", f"payments/{payment_id}")

    async def capture_payment(self, payment_id: str, amount: int, currency: str) -> Dict[str, Any]:
        """
        Capture an authorized payment.

        Args:
            payment_id: Razorpay payment id
            amount: Amount in the currency's smallest unit
            currency: Currency code
        """
        capture_data = {
            "amount": int(amount),
            "currency": (currency or "").upper(),
        }
        return await self._request("POST", f"payments/{payment_id}/capture", capture_data)

    async def create_payment_link(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a payment link (hosted checkout)."""
        return await self._request("POST", "payment_links", data)

    async def create_refund(self, payment_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Refund a captured payment, fully or partially."""
        return await self._request("POST", f"payments/{payment_id}/refund", data)

    # === CUSTOMERS & PLANS ===

    async def create_customer(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "customers", data)

    async def get_plan(self, plan_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"plans/{plan_id}")

    async def create_plan(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "plans", data)

    # === SUBSCRIPTIONS ===

    async def create_subscription(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "subscriptions", data)

    async def get_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"subscriptions/{subscription_id}")

    async def cancel_subscription(self, subscription_id: str, cancel_at_cycle_end: bool = False) -> Dict[str, Any]:
        """Cancel now, or at the end of the current billing cycle."""
        data = {"cancel_at_cycle_end": 1} if cancel_at_cycle_end else {}
        return await self._request("POST", f"subscriptions/{subscription_id}/cancel", data)

    async def pause_subscription(self, subscription_id: str, pause_at: str = "now") -> Dict[str, Any]:
        return await self._request("POST", f"subscriptions/{subscription_id}/pause", {"pause_at": pause_at})

    async def resume_subscription(self, subscription_id: str, resume_at: str = "now") -> Dict[str, Any]:
        return await self._request("POST", f"subscriptions/{subscription_id}/resume", {"resume_at": resume_at})

    async def list_invoices(self, subscription_id: str) -> Dict[str, Any]:
        """List the invoices Razorpay generated for a subscription."""
        return await self._request("GET", "invoices", {"subscription_id": subscription_id})

    async def get_update_card_url(self, subscription_id: str) -> Dict[str, Any]:
        """Generate a link where the customer can replace the card on file."""
        return await self._request("POST", f"subscriptions/{subscription_id}/update_card_url", {})


# === INSTANCIA GLOBAL ===

_razorpay_client: Optional[RazorpayClient] = None


def get_razorpay_client() -> RazorpayClient:
    """
    Get the process-wide Razorpay client.

    Returns:
        RazorpayClient: Shared client instance
    """
    global _razorpay_client
    if _razorpay_client is None:
        _razorpay_client = RazorpayClient()
    return _razorpay_client


async def close_razorpay_client():
    """Close the shared client, used on shutdown."""
    global _razorpay_client
    if _razorpay_client is not None:
        await _razorpay_client.close()
        _razorpay_client = None
