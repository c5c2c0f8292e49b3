"""
Configuración centralizada de routers para la aplicación FastAPI.

Este módulo se encarga de registrar todos los routers de la API,
configurar endpoints base y organizar las rutas de manera estructurada.
"""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from razorpay_bridge.api.v1.endpoints.payments import router as payments_router
from razorpay_bridge.api.v1.endpoints.refunds import router as refunds_router
from razorpay_bridge.api.v1.endpoints.settings import router as settings_router
from razorpay_bridge.api.v1.endpoints.subscriptions import router as subscriptions_router
from razorpay_bridge.api.v1.endpoints.version import router as version_router
from razorpay_bridge.api.v1.endpoints.webhooks import router as webhooks_router
from razorpay_bridge.core.config import get_settings
from razorpay_bridge.db.connection import get_db_connection

logger = logging.getLogger(__name__)


def create_root_endpoints(app: FastAPI) -> None:
    """
    Crea endpoints raíz de la aplicación.

    Args:
        app: Instancia de FastAPI
    """
    settings = get_settings()

    @app.get("/", tags=["Root"], summary="API Info")
    async def root():
        """Información básica de la API."""
        return {
            "message": settings.APP_NAME,
            "description": "Razorpay payment gateway bridge",
            "version": settings.APP_VERSION,
            "status": "running",
            "payment_mode": settings.RAZORPAY_PAYMENT_MODE,
            "documentation": "/docs" if (settings.DEBUG or settings.ENABLE_DOCS) else "disabled",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "endpoints": {
                "health": "/health",
                "payments": "/api/v1/payments",
                "webhooks": "/api/v1/webhooks/razorpay",
                "refunds": "/api/v1/refunds",
                "subscriptions": "/api/v1/subscriptions",
                "version": "/api/v1/version",
            },
        }

    @app.get("/ping", tags=["Root"], summary="Simple Ping")
    async def ping():
        """Endpoint simple para verificar que la API responde."""
        return {"message": "pong", "timestamp": datetime.now(timezone.utc).isoformat()}


def create_health_endpoints(app: FastAPI) -> None:
    """
    Crea el endpoint de health check.

    Args:
        app: Instancia de FastAPI
    """
    settings = get_settings()

    @app.get("/health", tags=["Health"], summary="Health Check")
    async def health_check():
        """
        Verifica la base de datos local y la configuración de llaves.

        Returns:
            JSONResponse 200 si la base de datos responde, 503 si no
        """
        try:
            database = await get_db_connection().health_check()
            healthy = database["test_passed"]

            return JSONResponse(
                status_code=200 if healthy else 503,
                content={
                    "status": "healthy" if healthy else "unhealthy",
                    "version": settings.APP_VERSION,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "services": {
                        "database": database,
                        "razorpay": {
                            "mode": settings.RAZORPAY_PAYMENT_MODE,
                            "keys_configured": bool(settings.get_api_keys()),
                        },
                    },
                    "environment": settings.ENVIRONMENT,
                },
            )

        except Exception as e:
            logger.error(f"Error en health check: {e}")
            return JSONResponse(
                status_code=503,
                content={
                    "status": "unhealthy",
                    "error": str(e),
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "version": settings.APP_VERSION,
                },
            )


def configure_api_v1_routers(app: FastAPI) -> None:
    """
    Configura todos los routers de la API v1.

    Args:
        app: Instancia de FastAPI
    """
    logger.info("🔧 Configurando routers de API v1...")

    app.include_router(
        payments_router,
        prefix="/api/v1/payments",
        tags=["Payments"],
        responses={
            400: {"description": "Payment confirmation failed"},
            422: {"description": "Invalid checkout data"},
        },
    )
    logger.info("✅ Router de pagos configurado")

    app.include_router(
        webhooks_router,
        prefix="/api/v1/webhooks",
        tags=["Webhooks"],
        responses={
            401: {"description": "Invalid webhook signature"},
            404: {"description": "Order not found"},
            413: {"description": "Payload too large"},
        },
    )
    logger.info("✅ Router de webhooks configurado")

    app.include_router(
        refunds_router,
        prefix="/api/v1/refunds",
        tags=["Refunds"],
        responses={422: {"description": "Refund could not be processed"}},
    )
    logger.info("✅ Router de reembolsos configurado")

    app.include_router(
        subscriptions_router,
        prefix="/api/v1/subscriptions",
        tags=["Subscriptions"],
        responses={404: {"description": "Subscription not found"}},
    )
    logger.info("✅ Router de suscripciones configurado")

    app.include_router(settings_router, prefix="/api/v1/settings", tags=["Settings"])
    app.include_router(version_router, prefix="/api/v1/version", tags=["Version"])
    logger.info("✅ Routers de configuración y versión configurados")


def configure_all_routers(app: FastAPI) -> None:
    """
    Configura todos los routers y endpoints de la aplicación.

    Args:
        app: Instancia de FastAPI
    """
    create_root_endpoints(app)
    create_health_endpoints(app)
    configure_api_v1_routers(app)

    logger.info("✅ Todos los routers configurados correctamente")
