"""
Dependencias compartidas por los endpoints de la API v1.

Cada request trabaja sobre una única sesión de base de datos: los servicios
reciben los repositorios de esa sesión y todo se confirma (o se revierte)
al terminar el endpoint.
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import Depends

from razorpay_bridge.core.config import Settings, get_settings
from razorpay_bridge.db.connection import ConnDB, get_db_connection
from razorpay_bridge.db.razorpay_client import RazorpayClient, get_razorpay_client
from razorpay_bridge.db.repositories import ActivityLogRepository, Repositories
from razorpay_bridge.services.checkout import CheckoutProcessor
from razorpay_bridge.services.confirmations import PaymentConfirmationService
from razorpay_bridge.services.refunds import RefundService
from razorpay_bridge.services.subscriptions import SubscriptionManager
from razorpay_bridge.services.webhook_processor import WebhookProcessor

logger = logging.getLogger(__name__)


async def get_repositories() -> AsyncIterator[Repositories]:
    """
    Repositorios sobre una sesión transaccional de la request.

    Si la request falla, la sesión se revierte y las entradas del log de
    actividad se vuelven a escribir en una sesión nueva.
    """
    conn_db = get_db_connection()
    repos: Optional[Repositories] = None
    try:
        async with conn_db.get_session() as session:
            repos = Repositories(session)
            yield repos
    except Exception:
        if repos is not None and repos.activity.recorded:
            await restore_activity_logs(conn_db, repos.activity.recorded)
        raise


async def restore_activity_logs(conn_db: ConnDB, entries: List[Dict[str, Any]]) -> None:
    try:
        async with conn_db.get_session() as session:
            await ActivityLogRepository(session).restore(entries)
    except Exception as e:
        logger.error(f"No se pudieron guardar {len(entries)} entradas del log de actividad: {e}")


def get_client() -> RazorpayClient:
    return get_razorpay_client()


def get_checkout_processor(
    repos: Repositories = Depends(get_repositories),
    client: RazorpayClient = Depends(get_client),
    settings: Settings = Depends(get_settings),
) -> CheckoutProcessor:
    return CheckoutProcessor(repos, client, settings)


def get_confirmation_service(
    repos: Repositories = Depends(get_repositories),
    client: RazorpayClient = Depends(get_client),
    settings: Settings = Depends(get_settings),
) -> PaymentConfirmationService:
    return PaymentConfirmationService(repos, client, settings)


def get_refund_service(
    repos: Repositories = Depends(get_repositories),
    client: RazorpayClient = Depends(get_client),
    settings: Settings = Depends(get_settings),
) -> RefundService:
    return RefundService(repos, client, settings)


def get_subscription_manager(
    repos: Repositories = Depends(get_repositories),
    client: RazorpayClient = Depends(get_client),
    settings: Settings = Depends(get_settings),
) -> SubscriptionManager:
    return SubscriptionManager(repos, client, settings)


def get_webhook_processor(
    repos: Repositories = Depends(get_repositories),
    client: RazorpayClient = Depends(get_client),
    settings: Settings = Depends(get_settings),
) -> WebhookProcessor:
    return WebhookProcessor(repos, client, settings)
