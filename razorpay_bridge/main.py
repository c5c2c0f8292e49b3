"""
Razorpay Bridge - FastAPI Application Entry Point

Servicio que conecta el backend de la tienda con Razorpay: crea órdenes,
payment links y suscripciones, confirma pagos del checkout, procesa
webhooks y mantiene sincronizados los registros locales.

Versión: Definida en pyproject.toml (ver razorpay_bridge.version.VERSION)
"""

import logging

import uvicorn
from fastapi import FastAPI

from razorpay_bridge.core.config import get_settings
from razorpay_bridge.core.exception_handlers import configure_exception_handlers
from razorpay_bridge.core.lifespan import lifespan
from razorpay_bridge.core.middleware import configure_all_middleware
from razorpay_bridge.core.routers import configure_all_routers
from razorpay_bridge.version import VERSION

settings = get_settings()
logger = logging.getLogger(__name__)


def create_application() -> FastAPI:
    """
    Factory para crear y configurar la aplicación FastAPI.

    Returns:
        FastAPI: Instancia configurada de la aplicación
    """
    logger.info("🏗️ Creando aplicación FastAPI...")

    docs_enabled = settings.DEBUG or settings.ENABLE_DOCS

    app = FastAPI(
        title=settings.APP_NAME,
        description="Razorpay payment gateway bridge",
        version=VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )

    # 1. Middleware (orden inverso de ejecución)
    configure_all_middleware(app)

    # 2. Manejadores de excepciones
    configure_exception_handlers(app)

    # 3. Routers y endpoints
    configure_all_routers(app)

    logger.info("✅ Aplicación FastAPI creada y configurada")
    return app


app = create_application()


if __name__ == "__main__":
    # Producción: uvicorn razorpay_bridge.main:app --host 0.0.0.0 --port 8080
    uvicorn_config = {
        "app": "razorpay_bridge.main:app",
        "host": settings.HOST,
        "port": settings.PORT,
        "reload": settings.DEBUG,
        "log_level": settings.LOG_LEVEL.lower(),
        "access_log": True,
    }

    if settings.DEBUG:
        uvicorn_config["reload_dirs"] = ["razorpay_bridge"]

    uvicorn.run(**uvicorn_config)
