"""Tests unitarios para la creación de suscripciones de Razorpay."""

from unittest.mock import patch

import pytest

from razorpay_bridge.domain.status import OrderType
from razorpay_bridge.services.subscription_processor import SubscriptionProcessor, unlimited_total_count
from razorpay_bridge.utils.error_handler import PaymentGatewayException

NOW = 1_700_000_000
DAY = 86400


@pytest.fixture
def processor(repos, client, settings):
    client.create_customer.return_value = {"id": "cust_1"}
    client.create_plan.return_value = {"id": "plan_1"}
    client.create_subscription.return_value = {"id": "sub_1"}
    return SubscriptionProcessor(repos, client, settings)


def sent_subscription(client):
    return client.create_subscription.call_args.args[0]


class TestUnlimitedTotalCount:
    """Tests para el total de cobros en suscripciones sin límite."""

    def test_known_intervals(self):
        """Debe cubrir unos diez años según el intervalo."""
        assert unlimited_total_count("monthly") == 120
        assert unlimited_total_count("yearly") == 100
        assert unlimited_total_count("daily") == 3650

    def test_unknown_interval_defaults_to_monthly(self):
        """Debe usar 120 para intervalos desconocidos."""
        assert unlimited_total_count("fortnightly") == 120


@patch("razorpay_bridge.services.subscription_processor._now_ts", return_value=NOW)
class TestInitialSubscription:
    """Tests para los cinco escenarios del primer cobro."""

    @pytest.mark.asyncio
    async def test_normal_subscription_without_addon(
        self, _now, processor, client, subscription_order, subscription_transaction, subscription, customer
    ):
        """Debe crear la suscripción sin addon ni start_at cuando el primer cobro es el recurrente."""
        result = await processor.handle_subscription(
            subscription_order, subscription_transaction, subscription, customer
        )

        data = sent_subscription(client)
        assert data["plan_id"] == "plan_1"
        assert data["customer_id"] == "cust_1"
        assert data["customer_notify"] == 1
        assert data["total_count"] == 12
        assert "addons" not in data
        assert "start_at" not in data
        assert data["notes"]["transaction_hash"] == subscription_transaction.uuid
        assert data["notes"]["fluent_cart_subscription_hash"] == subscription.uuid
        assert data["notify_info"] == {"notify_email": "asha@example.com", "notify_phone": "+919999999999"}

        assert result["nextAction"] == "razorpay"
        assert result["payment_args"]["is_subscription"] is True
        assert result["payment_args"]["modal_data"]["subscription_id"] == "sub_1"
        assert result["payment_args"]["modal_data"]["description"] == "Pro Plan"

    @pytest.mark.asyncio
    async def test_records_vendor_ids(
        self, _now, processor, subscription_order, subscription_transaction, subscription, customer
    ):
        """Debe guardar los ids de Razorpay en la transacción y la suscripción."""
        await processor.handle_subscription(subscription_order, subscription_transaction, subscription, customer)

        assert subscription_transaction.vendor_charge_id == "sub_1"
        assert subscription_transaction.get_meta("razorpay_plan_id") == "plan_1"
        assert subscription_transaction.get_meta("use_addon") is False
        assert subscription.vendor_subscription_id == "sub_1"
        assert subscription.vendor_plan_id == "plan_1"
        assert subscription.vendor_customer_id == "cust_1"
        assert customer.vendor_customer_id == "cust_1"

    @pytest.mark.asyncio
    async def test_signup_fee_uses_addon_and_next_interval(
        self, _now, processor, client, subscription_order, subscription_transaction, subscription, customer
    ):
        """Debe cobrar el primer pago como addon y arrancar el plan un intervalo después."""
        subscription_transaction.total = 150000

        await processor.handle_subscription(subscription_order, subscription_transaction, subscription, customer)

        data = sent_subscription(client)
        assert data["addons"] == [{"item": {"name": "Initial Payment", "amount": 150000, "currency": "INR"}}]
        assert data["start_at"] == NOW + 30 * DAY
        assert data["total_count"] == 11
        assert subscription_transaction.get_meta("use_addon") is True

    @pytest.mark.asyncio
    async def test_discounted_first_cycle_with_trial(
        self, _now, processor, client, subscription_order, subscription_transaction, subscription, customer
    ):
        """Debe usar addon y start_at tras los días de prueba."""
        subscription_transaction.total = 50000
        subscription.trial_days = 7

        await processor.handle_subscription(subscription_order, subscription_transaction, subscription, customer)

        data = sent_subscription(client)
        assert data["addons"][0]["item"]["amount"] == 50000
        assert data["start_at"] == NOW + 7 * DAY
        assert data["total_count"] == 11

    @pytest.mark.asyncio
    async def test_real_trial_without_payment(
        self, _now, processor, client, subscription_order, subscription_transaction, subscription, customer
    ):
        """Debe aplazar el inicio sin addon cuando no hay nada que cobrar."""
        subscription_transaction.total = 0
        subscription.trial_days = 14

        await processor.handle_subscription(subscription_order, subscription_transaction, subscription, customer)

        data = sent_subscription(client)
        assert "addons" not in data
        assert data["start_at"] == NOW + 14 * DAY
        assert data["total_count"] == 12

    @pytest.mark.asyncio
    async def test_fully_discounted_without_trial(
        self, _now, processor, client, subscription_order, subscription_transaction, subscription, customer
    ):
        """Debe crear la suscripción sin addon ni start_at si el primer ciclo es gratis y no hay prueba."""
        subscription_transaction.total = 0

        await processor.handle_subscription(subscription_order, subscription_transaction, subscription, customer)

        data = sent_subscription(client)
        assert "addons" not in data
        assert "start_at" not in data

    @pytest.mark.asyncio
    async def test_unlimited_bill_times(
        self, _now, processor, client, subscription_order, subscription_transaction, subscription, customer
    ):
        """Debe usar el total de diez años cuando bill_times es 0."""
        subscription.bill_times = 0

        await processor.handle_subscription(subscription_order, subscription_transaction, subscription, customer)

        assert sent_subscription(client)["total_count"] == 120

    @pytest.mark.asyncio
    async def test_missing_subscription_id_raises(
        self, _now, processor, client, subscription_order, subscription_transaction, subscription, customer
    ):
        """Debe fallar si Razorpay no devuelve id de suscripción."""
        client.create_subscription.return_value = {}

        with pytest.raises(PaymentGatewayException):
            await processor.handle_subscription(
                subscription_order, subscription_transaction, subscription, customer
            )


class TestRenewalSubscription:
    """Tests para renovaciones y reactivaciones."""

    @pytest.mark.asyncio
    async def test_renewal_replaces_old_subscription(
        self, processor, client, subscription_order, subscription_transaction, subscription, customer
    ):
        """Debe crear una suscripción nueva y registrar la anterior en meta."""
        subscription_order.type = OrderType.RENEWAL
        subscription.vendor_subscription_id = "sub_old"
        subscription.bill_count = 4

        result = await processor.handle_subscription(
            subscription_order, subscription_transaction, subscription, customer
        )

        data = sent_subscription(client)
        assert data["notes"]["is_renewal"] is True
        assert data["total_count"] == 8
        assert subscription.vendor_subscription_id == "sub_1"
        assert subscription_transaction.get_meta("old_subscription_id") == "sub_old"
        old = subscription.get_meta("old_subscriptions")
        assert old[0]["vendor_subscription_id"] == "sub_old"
        assert old[0]["reason"] == "renewal"
        assert result["payment_args"]["is_renewal"] is True
        assert result["payment_args"]["modal_data"]["description"] == "Pro Plan - Renewal/Reactivation"

    @pytest.mark.asyncio
    @patch("razorpay_bridge.services.subscription_processor._now_ts", return_value=NOW)
    async def test_reactivation_trial_days(
        self, _now, processor, client, subscription_order, subscription_transaction, subscription, customer
    ):
        """Debe aplicar start_at con los días de prueba de reactivación."""
        subscription_order.type = OrderType.RENEWAL
        subscription.update_meta("reactivation_trial_days", 5)

        await processor.handle_subscription(subscription_order, subscription_transaction, subscription, customer)

        assert sent_subscription(client)["start_at"] == NOW + 5 * DAY


class TestCheckoutTypeGuard:
    """Tests para el rechazo del checkout hosted."""

    @pytest.mark.asyncio
    async def test_hosted_checkout_rejected(
        self, processor, client, settings, subscription_order, subscription_transaction, subscription, customer
    ):
        """Debe rechazar suscripciones con checkout hosted."""
        settings.RAZORPAY_CHECKOUT_TYPE = "hosted"

        with pytest.raises(PaymentGatewayException) as exc_info:
            await processor.handle_subscription(
                subscription_order, subscription_transaction, subscription, customer
            )

        assert "Hosted checkout is not supported" in exc_info.value.message
        client.create_subscription.assert_not_awaited()
