"""
Startup y shutdown de la aplicación FastAPI.

Startup: logging, verificación de llaves de Razorpay y base de datos local.
Shutdown: cierre de la sesión HTTP de Razorpay y del engine.
"""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI

from razorpay_bridge.core.config import get_settings
from razorpay_bridge.core.logging_config import setup_logging
from razorpay_bridge.db.connection import get_db_connection
from razorpay_bridge.db.razorpay_client import close_razorpay_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Ciclo de vida de la aplicación.

    Un error en el startup cierra lo que se haya abierto y termina el
    proceso; un error en el shutdown solo se loggea.
    """
    setup_logging()
    logger.info(f"🚀 Iniciando {app.title}...")

    try:
        verify_gateway_configuration()
        await initialize_database()
    except Exception as e:
        logger.error(f"❌ Error durante el startup: {e}")
        await close_connections()
        sys.exit(1)

    logger.info("🎉 Aplicación iniciada correctamente")

    yield

    logger.info(f"🛑 Cerrando {app.title}...")
    try:
        await close_connections()
        logger.info("👋 Aplicación cerrada correctamente")
    except Exception as e:
        logger.error(f"❌ Error durante el shutdown: {e}")


def verify_gateway_configuration() -> None:
    """
    Advierte si faltan las llaves del modo activo.

    La aplicación arranca igual: webhooks y health check funcionan, y cada
    llamada a Razorpay falla con ConfigurationException hasta configurarlas.
    """
    settings = get_settings()
    mode = settings.RAZORPAY_PAYMENT_MODE

    if not settings.get_api_keys(mode):
        logger.warning(f"⚠️ Llaves de Razorpay no configuradas para el modo {mode}")
    elif not settings.get_api_key(mode).startswith("rzp_"):
        logger.warning(f"⚠️ La llave pública de {mode} no tiene el formato rzp_{mode}_")
    else:
        logger.info(f"✅ Razorpay en modo {mode}, checkout {settings.RAZORPAY_CHECKOUT_TYPE}")

    if settings.is_production and mode != "live":
        logger.warning("⚠️ Entorno de producción usando el modo test de Razorpay")


async def initialize_database() -> None:
    conn_db = get_db_connection()
    if not conn_db.is_initialized():
        await conn_db.initialize()

    health = await conn_db.health_check()
    logger.info(f"✅ Base de datos verificada: {health['response_time_ms']}ms")


async def close_connections() -> None:
    """Cierra el cliente de Razorpay y la base de datos."""
    await close_razorpay_client()
    await get_db_connection().close()
    logger.info("✅ Conexiones cerradas")
