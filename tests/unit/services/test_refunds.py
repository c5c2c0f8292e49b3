"""Tests unitarios para reembolsos."""

import pytest

from razorpay_bridge.db.models import OrderTransaction
from razorpay_bridge.domain.status import PaymentStatus, TransactionStatus, TransactionType
from razorpay_bridge.services.refunds import RefundService, refund_status_from_vendor
from razorpay_bridge.utils.error_handler import PaymentGatewayException, ValidationException


@pytest.fixture
def service(repos, client, settings):
    return RefundService(repos, client, settings)


@pytest.fixture
def paid_transaction(transaction):
    transaction.vendor_charge_id = "pay_123"
    transaction.status = TransactionStatus.SUCCEEDED
    return transaction


class TestRefundStatus:
    """Tests para el estado local de un reembolso."""

    def test_processed_is_refunded(self):
        """Debe mapear processed a refunded."""
        assert refund_status_from_vendor("processed") == TransactionStatus.REFUNDED

    def test_other_statuses_are_pending(self):
        """Debe dejar pending cualquier otro estado."""
        assert refund_status_from_vendor("pending") == TransactionStatus.PENDING
        assert refund_status_from_vendor(None) == TransactionStatus.PENDING


class TestProcessRemoteRefund:
    """Tests para la llamada de reembolso a Razorpay."""

    @pytest.mark.asyncio
    async def test_sends_amount_speed_and_note(self, service, client, paid_transaction):
        """Debe enviar el monto, la velocidad y la nota del comercio."""
        client.create_refund.return_value = {"id": "rfnd_1", "status": "processed"}

        refund_id = await service.process_remote_refund(paid_transaction, 20000, note="Damaged item")

        assert refund_id == "rfnd_1"
        client.create_refund.assert_awaited_once_with(
            "pay_123", {"amount": 20000, "speed": "normal", "notes": {"merchant_note": "Damaged item"}}
        )

    @pytest.mark.asyncio
    async def test_reason_used_as_note(self, service, client, paid_transaction):
        """Debe usar el motivo como nota cuando no hay nota."""
        client.create_refund.return_value = {"id": "rfnd_1", "status": "pending"}

        await service.process_remote_refund(paid_transaction, 20000, reason="requested_by_customer")

        payload = client.create_refund.call_args.args[1]
        assert payload["notes"] == {"merchant_note": "Requested by customer"}

    @pytest.mark.asyncio
    async def test_zero_decimal_currency(self, service, client, paid_transaction):
        """Debe convertir el monto a unidades enteras para monedas sin decimales."""
        paid_transaction.currency = "JPY"
        client.create_refund.return_value = {"id": "rfnd_1", "status": "processed"}

        await service.process_remote_refund(paid_transaction, 150000)

        assert client.create_refund.call_args.args[1]["amount"] == 1500

    @pytest.mark.asyncio
    async def test_missing_amount(self, service, client, paid_transaction):
        """Debe exigir un monto."""
        with pytest.raises(ValidationException):
            await service.process_remote_refund(paid_transaction, 0)
        client.create_refund.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_payment_id(self, service, transaction):
        """Debe fallar si la transacción no tiene payment id."""
        with pytest.raises(PaymentGatewayException) as exc_info:
            await service.process_remote_refund(transaction, 20000)
        assert exc_info.value.message == "Payment ID not found for refund"

    @pytest.mark.asyncio
    async def test_rejected_status(self, service, client, paid_transaction):
        """Debe fallar si Razorpay devuelve un estado no aceptado."""
        client.create_refund.return_value = {"id": "rfnd_1", "status": "failed"}

        with pytest.raises(PaymentGatewayException) as exc_info:
            await service.process_remote_refund(paid_transaction, 20000)
        assert "Status: failed" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_refund_id(self, service, client, paid_transaction):
        """Debe fallar si Razorpay no devuelve id de reembolso."""
        client.create_refund.return_value = {"status": "processed"}

        with pytest.raises(PaymentGatewayException):
            await service.process_remote_refund(paid_transaction, 20000)


class TestRefund:
    """Tests para el registro local de reembolsos."""

    @pytest.mark.asyncio
    async def test_partial_refund_recorded(self, service, client, order, paid_transaction):
        """Debe crear la transacción de reembolso y marcar la orden parcialmente reembolsada."""
        client.create_refund.return_value = {"id": "rfnd_1", "status": "processed"}

        refund = await service.refund(paid_transaction, 20000, note="Damaged item")

        assert refund.transaction_type == TransactionType.REFUND
        assert refund.status == TransactionStatus.REFUNDED
        assert refund.vendor_charge_id == "rfnd_1"
        assert refund.total == 20000
        assert refund.get_meta("parent_id") == paid_transaction.id
        assert refund.get_meta("refund_source") == "api"
        assert paid_transaction.refunded_total == 20000
        assert order.payment_status == PaymentStatus.PARTIALLY_REFUNDED

    @pytest.mark.asyncio
    async def test_full_refund(self, service, client, order, paid_transaction):
        """Debe marcar la orden como reembolsada con un reembolso total."""
        client.create_refund.return_value = {"id": "rfnd_1", "status": "pending"}

        refund = await service.refund(paid_transaction, 50000)

        assert refund.status == TransactionStatus.PENDING
        assert order.payment_status == PaymentStatus.REFUNDED


class TestCreateOrUpdateWebhookRefund:
    """Tests para el upsert de reembolsos desde webhooks."""

    @pytest.mark.asyncio
    async def test_updates_existing_refund(self, service, order, paid_transaction):
        """Debe actualizar el reembolso existente sin sumar de nuevo al total reembolsado."""
        first = RefundService.build_refund_data(paid_transaction, "rfnd_1", 20000, TransactionStatus.PENDING)
        created = await service.create_or_update_webhook_refund(first, paid_transaction)

        second = RefundService.build_refund_data(paid_transaction, "rfnd_1", 20000, TransactionStatus.REFUNDED)
        updated = await service.create_or_update_webhook_refund(second, paid_transaction)

        assert updated.id == created.id
        assert updated.status == TransactionStatus.REFUNDED
        assert paid_transaction.refunded_total == 20000

    @pytest.mark.asyncio
    async def test_adopts_local_refund_without_vendor_id(self, service, repos, order, paid_transaction):
        """Debe adoptar un reembolso local sin id de Razorpay con el mismo total."""
        local_refund = await repos.transactions.add(
            OrderTransaction(
                order_id=order.id,
                transaction_type=TransactionType.REFUND,
                total=20000,
                currency="INR",
                meta={"note": "manual"},
            )
        )

        data = RefundService.build_refund_data(paid_transaction, "rfnd_9", 20000, TransactionStatus.REFUNDED)
        result = await service.create_or_update_webhook_refund(data, paid_transaction)

        assert result.id == local_refund.id
        assert result.vendor_charge_id == "rfnd_9"
        assert result.get_meta("note") == "manual"
        assert result.get_meta("razorpay_refund_id") == "rfnd_9"

    @pytest.mark.asyncio
    async def test_refunded_total_capped_at_charge_total(self, service, order, paid_transaction):
        """Debe limitar el total reembolsado al total del cobro."""
        paid_transaction.refunded_total = 40000
        data = RefundService.build_refund_data(paid_transaction, "rfnd_2", 20000, TransactionStatus.REFUNDED)

        await service.create_or_update_webhook_refund(data, paid_transaction)

        assert paid_transaction.refunded_total == 50000
