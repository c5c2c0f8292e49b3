"""
Middlewares de la aplicación FastAPI.

- CORS: el script de checkout llama a /api/v1/payments desde el navegador
- TrustedHost fuera de debug
- Log de cada request con X-Request-ID y X-Process-Time
- Headers de seguridad
"""

import logging
import time
import uuid
from urllib.parse import parse_qsl, urlencode

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware

from razorpay_bridge.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

# Parámetros del callback de payment links que no deben quedar en los logs
SENSITIVE_QUERY_PARAMS = {"razorpay_signature"}

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


def configure_cors_middleware(app: FastAPI) -> None:
    """
    Configura CORS con ALLOWED_HOSTS como orígenes, o `*` si está vacío.

    Args:
        app: Instancia de FastAPI
    """
    origins = settings.allowed_hosts or ["*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Los navegadores rechazan credenciales con origen comodín
        allow_credentials=origins != ["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Accept", "Content-Type", "X-Request-ID", "X-Razorpay-Signature"],
        expose_headers=["X-Process-Time", "X-Request-ID"],
    )

    logger.info(f"✅ CORS configurado - Origins: {origins}")


def configure_trusted_host_middleware(app: FastAPI) -> None:
    if settings.DEBUG or not settings.allowed_hosts:
        return

    hosts = settings.allowed_hosts + ["localhost", "127.0.0.1"]
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=hosts)
    logger.info(f"✅ TrustedHost configurado - Hosts: {hosts}")


def configure_request_logging_middleware(app: FastAPI) -> None:
    """
    Loggea cada request y agrega X-Request-ID y X-Process-Time a la respuesta.

    Args:
        app: Instancia de FastAPI
    """

    @app.middleware("http")
    async def log_requests_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        request.state.request_id = request_id
        path = request.url.path

        logger.info(f"📨 [{request_id}] {request.method} {path} - Client: {get_client_ip(request)}")
        if request.url.query:
            logger.debug(f"🔍 [{request_id}] Query: {mask_query(request.url.query)}")

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"❌ [{request_id}] {request.method} {path} - Error: {e} - {time.perf_counter() - started:.3f}s")
            raise

        elapsed = time.perf_counter() - started
        response.headers["X-Process-Time"] = f"{elapsed:.3f}"
        response.headers["X-Request-ID"] = request_id

        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        logger.log(level, f"[{request_id}] {request.method} {path} - Status: {response.status_code} - {elapsed:.3f}s")

        if elapsed > settings.SLOW_REQUEST_THRESHOLD:
            logger.warning(f"🐌 [{request_id}] Slow request: {elapsed:.3f}s > {settings.SLOW_REQUEST_THRESHOLD}s")

        return response


def configure_security_headers_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def security_headers_middleware(request: Request, call_next):
        response = await call_next(request)

        for header, value in SECURITY_HEADERS.items():
            response.headers[header] = value

        # HSTS solo con HTTPS fuera de debug
        if not settings.DEBUG and request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


def configure_all_middleware(app: FastAPI) -> None:
    """
    Configura todos los middlewares.

    Se ejecutan en orden inverso al que se agregan; CORS va último para
    responder los OPTIONS antes que el resto.

    Args:
        app: Instancia de FastAPI
    """
    logger.info("🔧 Configurando middlewares...")

    configure_security_headers_middleware(app)
    configure_request_logging_middleware(app)
    configure_trusted_host_middleware(app)
    configure_cors_middleware(app)

    logger.info("✅ Middlewares configurados")


# Funciones auxiliares


def get_client_ip(request: Request) -> str:
    """IP del cliente considerando X-Forwarded-For y X-Real-IP."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


def mask_query(query: str) -> str:
    """Reemplaza por `***` los valores de SENSITIVE_QUERY_PARAMS."""
    pairs = parse_qsl(query, keep_blank_values=True)
    return urlencode([(key, "***" if key in SENSITIVE_QUERY_PARAMS else value) for key, value in pairs], safe="*")
