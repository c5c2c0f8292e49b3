"""
Configuración del sistema de logging.

- Consola con colores en debug, texto plano o JSON en producción
- Archivo rotativo opcional (LOG_FILE_PATH)
- Filtro que enmascara las llaves secretas de Razorpay antes de escribir
"""

import json
import logging
import logging.config
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from razorpay_bridge.core.config import get_settings

# Atributos propios de LogRecord; el resto viene de `extra=`
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "taskName"}

_DATEFMT = "%Y-%m-%d %H:%M:%S"


class ColoredFormatter(logging.Formatter):
    """Colorea el nivel cuando la salida es una terminal."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record):
        formatted = super().format(record)
        color = self.COLORS.get(record.levelname)
        if color and sys.stdout.isatty():
            formatted = formatted.replace(record.levelname, f"{color}{record.levelname}{self.RESET}", 1)
        return formatted


class StructuredFormatter(logging.Formatter):
    """
    Una línea JSON por record, con el modo de pago activo y los campos
    pasados en `extra=`.
    """

    def format(self, record):
        settings = get_settings()

        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
            "app_version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "payment_mode": settings.RAZORPAY_PAYMENT_MODE,
        }

        if record.exc_info:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        extra = {key: value for key, value in record.__dict__.items() if key not in _RECORD_ATTRS}
        if extra:
            entry["extra"] = extra

        return json.dumps(entry, ensure_ascii=False, default=str)


class SecretMaskingFilter(logging.Filter):
    """
    Reemplaza las llaves secretas y secretos de webhook configurados por
    `***` en el mensaje final.
    """

    MASK = "***"

    def __init__(self, secrets: List[str]):
        super().__init__()
        # Secretos cortos enmascararían texto cualquiera
        self.secrets = sorted({s for s in secrets if s and len(s) >= 8}, key=len, reverse=True)

    def filter(self, record):
        if not self.secrets:
            return True

        message = record.getMessage()
        masked = message
        for secret in self.secrets:
            masked = masked.replace(secret, self.MASK)

        if masked != message:
            record.msg = masked
            record.args = None
        return True


def _configured_secrets() -> List[str]:
    settings = get_settings()
    return [
        settings.RAZORPAY_TEST_KEY_SECRET,
        settings.RAZORPAY_LIVE_KEY_SECRET,
        settings.RAZORPAY_TEST_WEBHOOK_SECRET,
        settings.RAZORPAY_LIVE_WEBHOOK_SECRET,
    ]


def get_logging_configuration() -> Dict[str, Any]:
    """
    Configuración para logging.config.dictConfig según los settings.

    Returns:
        Dict: Configuración de formatters, handlers y loggers
    """
    settings = get_settings()

    if settings.LOG_JSON:
        console_formatter = "json"
    elif settings.DEBUG:
        console_formatter = "colored"
    else:
        console_formatter = "standard"

    handlers: Dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": settings.LOG_LEVEL,
            "formatter": console_formatter,
            "filters": ["secrets"],
            "stream": "ext://sys.stdout",
        }
    }

    if settings.LOG_FILE_PATH:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": settings.LOG_LEVEL,
            "formatter": "json" if settings.is_production else "detailed",
            "filters": ["secrets"],
            "filename": settings.LOG_FILE_PATH,
            "maxBytes": settings.LOG_MAX_SIZE_MB * 1024 * 1024,
            "backupCount": settings.LOG_BACKUP_COUNT,
            "encoding": "utf-8",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"secrets": {"()": SecretMaskingFilter, "secrets": _configured_secrets()}},
        "formatters": {
            "standard": {"format": settings.LOG_FORMAT, "datefmt": _DATEFMT},
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(module)s.%(funcName)s:%(lineno)d - %(message)s",
                "datefmt": _DATEFMT,
            },
            "colored": {"()": ColoredFormatter, "format": settings.LOG_FORMAT, "datefmt": _DATEFMT},
            "json": {"()": StructuredFormatter},
        },
        "handlers": handlers,
        "loggers": {
            "uvicorn.access": {"level": "INFO", "handlers": ["console"], "propagate": False},
            "uvicorn.error": {"level": "INFO", "handlers": ["console"], "propagate": False},
            "sqlalchemy.engine": {"level": "INFO" if settings.DATABASE_ECHO else "WARNING"},
            "httpx": {"level": "WARNING"},
            "httpcore": {"level": "WARNING"},
            "aiohttp.access": {"level": "WARNING"},
            "aiosqlite": {"level": "WARNING"},
        },
        "root": {"level": settings.LOG_LEVEL, "handlers": list(handlers)},
    }


def setup_logging() -> None:
    """Aplica la configuración de logging al iniciar la aplicación."""
    settings = get_settings()

    if settings.LOG_FILE_PATH:
        Path(settings.LOG_FILE_PATH).parent.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(get_logging_configuration())

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configurado - Nivel: {settings.LOG_LEVEL}")
    if settings.LOG_FILE_PATH:
        logger.info(f"Logs guardándose en: {settings.LOG_FILE_PATH}")


def log_api_call(method: str, path: str, status_code: int, duration: float, **kwargs) -> None:
    """
    Registra una llamada a la API de Razorpay.

    4xx se registra como warning y 5xx como error.
    """
    if status_code < 400:
        level = logging.INFO
    elif status_code < 500:
        level = logging.WARNING
    else:
        level = logging.ERROR

    logging.getLogger("razorpay_bridge.razorpay.api").log(
        level,
        f"Razorpay API: {method} {path} -> {status_code} ({duration * 1000:.1f}ms)",
        extra={"method": method, "path": path, "status_code": status_code, "duration_ms": round(duration * 1000, 2), **kwargs},
    )


def log_webhook_received(event: str, payload_size: int, **kwargs) -> None:
    logging.getLogger("razorpay_bridge.razorpay.webhook").info(
        f"Webhook received: {event} ({payload_size} bytes)",
        extra={"webhook_event": event, "payload_size": payload_size, **kwargs},
    )
