"""
Endpoints de gestión de suscripciones.

Operan sobre el id local de la suscripción; el id de Razorpay se toma del
registro guardado.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from razorpay_bridge.api.v1.dependencies import get_repositories, get_subscription_manager
from razorpay_bridge.api.v1.schemas.payment_schemas import (
    CancelSubscriptionRequest,
    PauseSubscriptionRequest,
    ResumeSubscriptionRequest,
    SubscriptionResponse,
)
from razorpay_bridge.db.models import Subscription
from razorpay_bridge.db.repositories import Repositories
from razorpay_bridge.services.subscriptions import SubscriptionManager
from razorpay_bridge.utils.error_handler import NotFoundException

logger = logging.getLogger(__name__)

router = APIRouter()


async def load_subscription(subscription_id: int, repos: Repositories = Depends(get_repositories)) -> Subscription:
    """Dependencia: suscripción local o 404."""
    subscription = await repos.subscriptions.get(subscription_id)
    if subscription is None:
        raise NotFoundException("Subscription not found.", resource="subscription", identifier=subscription_id)
    return subscription


@router.get("/{subscription_id}", response_model=SubscriptionResponse, summary="Obtener suscripción")
async def get_subscription(subscription: Subscription = Depends(load_subscription)) -> Subscription:
    return subscription


@router.post("/{subscription_id}/cancel", summary="Cancelar suscripción")
async def cancel_subscription(
    request_data: Optional[CancelSubscriptionRequest] = None,
    subscription: Subscription = Depends(load_subscription),
    manager: SubscriptionManager = Depends(get_subscription_manager),
) -> Dict[str, Any]:
    request_data = request_data or CancelSubscriptionRequest()
    result = await manager.cancel(subscription.vendor_subscription_id, request_data.cancel_at_cycle_end)
    logger.info(f"Subscription {subscription.id} canceled: {result['status']}")
    return result


@router.post("/{subscription_id}/pause", summary="Pausar suscripción")
async def pause_subscription(
    request_data: Optional[PauseSubscriptionRequest] = None,
    subscription: Subscription = Depends(load_subscription),
    manager: SubscriptionManager = Depends(get_subscription_manager),
) -> Dict[str, Any]:
    request_data = request_data or PauseSubscriptionRequest()
    return await manager.pause(subscription, request_data.pause_at)


@router.post("/{subscription_id}/resume", summary="Reanudar suscripción")
async def resume_subscription(
    request_data: Optional[ResumeSubscriptionRequest] = None,
    subscription: Subscription = Depends(load_subscription),
    manager: SubscriptionManager = Depends(get_subscription_manager),
) -> Dict[str, Any]:
    request_data = request_data or ResumeSubscriptionRequest()
    return await manager.resume(subscription, request_data.resume_at)


@router.post("/{subscription_id}/resync", response_model=SubscriptionResponse, summary="Re-sincronizar con Razorpay")
async def resync_subscription(
    subscription: Subscription = Depends(load_subscription),
    manager: SubscriptionManager = Depends(get_subscription_manager),
) -> Subscription:
    """Trae estado, próxima fecha de cobro y renovaciones pagadas desde Razorpay."""
    return await manager.resync_from_remote(subscription)


@router.post("/{subscription_id}/card-update", summary="Link para actualizar la tarjeta")
async def card_update(
    subscription_id: int,
    manager: SubscriptionManager = Depends(get_subscription_manager),
) -> Dict[str, Any]:
    return await manager.card_update(subscription_id)
