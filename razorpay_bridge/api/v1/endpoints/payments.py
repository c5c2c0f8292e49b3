"""
Endpoints de pagos usados por el script de checkout.

- POST /checkout: crea la orden o el payment link en Razorpay
- POST /confirm: confirma el resultado del modal (form o JSON)
- GET /hosted-callback: confirma el regreso desde un payment link
- GET /order-info y /checkout-config: datos públicos para el navegador
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query, Request
from pydantic import ValidationError

from razorpay_bridge.api.v1.dependencies import (
    get_checkout_processor,
    get_confirmation_service,
    get_repositories,
)
from razorpay_bridge.api.v1.schemas.payment_schemas import (
    CheckoutRequest,
    ConfirmPaymentRequest,
    ConfirmPaymentResponse,
)
from razorpay_bridge.db.repositories import Repositories
from razorpay_bridge.domain.status import OrderType, TransactionType, get_transaction_dashboard_url
from razorpay_bridge.services.checkout import CheckoutProcessor
from razorpay_bridge.services.confirmations import PaymentConfirmationService
from razorpay_bridge.utils.error_handler import NotFoundException, PaymentConfirmationException

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/checkout", summary="Iniciar pago de una transacción")
async def start_checkout(
    request_data: CheckoutRequest,
    repos: Repositories = Depends(get_repositories),
    processor: CheckoutProcessor = Depends(get_checkout_processor),
) -> Dict[str, Any]:
    """
    Crea el objeto remoto (orden, payment link o suscripción) para una
    transacción pendiente y devuelve los datos del checkout.
    """
    transaction = await repos.transactions.get_by_uuid(request_data.transaction_uuid)
    if transaction is None or transaction.transaction_type != TransactionType.CHARGE:
        raise NotFoundException(
            "Transaction not found.", resource="transaction", identifier=request_data.transaction_uuid
        )

    order = await repos.orders.get(transaction.order_id)
    if order is None:
        raise NotFoundException("Order not found.", resource="order", identifier=transaction.order_id)

    customer = await repos.customers.get(order.customer_id)
    if customer is None:
        raise NotFoundException("Customer not found.", resource="customer", identifier=order.customer_id)

    subscription = None
    if transaction.subscription_id:
        subscription = await repos.subscriptions.get(transaction.subscription_id)
    elif order.type == OrderType.SUBSCRIPTION:
        subscription = await repos.subscriptions.get_by_parent_order(order.id)

    logger.info(f"Starting checkout for order {order.id}, transaction {transaction.uuid}")

    return await processor.make_payment(order, transaction, customer, subscription, request_data.payment_args)


@router.post("/confirm", response_model=ConfirmPaymentResponse, summary="Confirmar pago del modal")
async def confirm_payment(
    request: Request,
    service: PaymentConfirmationService = Depends(get_confirmation_service),
) -> Dict[str, Any]:
    """
    Confirma un pago completado en el modal de Razorpay.

    Acepta `application/json` o el form que envía el script de checkout.
    """
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith("application/json"):
            raw_data = await request.json()
        else:
            raw_data = dict(await request.form())
    except ValueError as e:
        raise PaymentConfirmationException(400, reason=f"Unreadable confirmation body: {e}") from e

    try:
        data = ConfirmPaymentRequest.model_validate(raw_data or {})
    except ValidationError as e:
        raise PaymentConfirmationException(400, reason=str(e)) from e

    result = await service.confirm_modal_payment(
        data.transaction_hash,
        data.razorpay_payment_id,
        razorpay_order_id=data.razorpay_order_id,
        razorpay_signature=data.razorpay_signature,
        is_subscription=data.is_subscription,
        razorpay_subscription_id=data.razorpay_subscription_id,
    )
    return {"success": True, "data": result}


@router.get("/hosted-callback", response_model=ConfirmPaymentResponse, summary="Confirmar pago de payment link")
async def hosted_callback(
    request: Request,
    fluent_cart_payment: str = Query(..., description="UUID de la transacción"),
    service: PaymentConfirmationService = Depends(get_confirmation_service),
) -> Dict[str, Any]:
    """Confirma el pago con los parámetros firmados que Razorpay agrega al callback."""
    result = await service.confirm_hosted_payment(fluent_cart_payment, dict(request.query_params))
    return {"success": True, "data": result}


@router.get("/order-info", summary="Información pública para el checkout")
async def order_info(
    currency: str = Query(..., min_length=3, max_length=3),
    processor: CheckoutProcessor = Depends(get_checkout_processor),
) -> Dict[str, Any]:
    return processor.get_order_info(currency)


@router.get("/checkout-config", summary="Configuración del script de checkout")
async def checkout_config(
    request: Request,
    processor: CheckoutProcessor = Depends(get_checkout_processor),
) -> Dict[str, Any]:
    return processor.checkout_config(str(request.url_for("confirm_payment")))


@router.get("/transactions/{transaction_uuid}/dashboard-url", summary="Link al dashboard de Razorpay")
async def transaction_dashboard_url(
    transaction_uuid: str,
    repos: Repositories = Depends(get_repositories),
) -> Dict[str, str]:
    transaction = await repos.transactions.get_by_uuid(transaction_uuid)
    if transaction is None:
        raise NotFoundException("Transaction not found.", resource="transaction", identifier=transaction_uuid)

    parent = None
    if transaction.transaction_type == TransactionType.REFUND:
        parent = await repos.transactions.get_latest_charge_for_order(transaction.order_id)

    return {"url": get_transaction_dashboard_url(transaction, parent)}
