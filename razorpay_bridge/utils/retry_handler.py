"""
Reintentos con backoff exponencial y circuit breaker para Razorpay.

Solo se reintentan errores transitorios: fallas de red, 429 y 5xx. Un
rechazo 4xx de Razorpay es una respuesta definitiva y se propaga en el
primer intento.
"""

import asyncio
import logging
import random
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from razorpay_bridge.core.config import get_settings
from razorpay_bridge.utils.error_handler import AppException, RazorpayAPIException

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Estados del circuit breaker."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class RetryPolicy:
    """
    Cuántas veces reintentar y cuánto esperar entre intentos.

    Args:
        max_attempts: Intentos totales, incluyendo el primero
        base_delay: Espera del primer reintento en segundos
        max_delay: Tope de espera, también para Retry-After
        exponential_base: Factor de crecimiento entre reintentos
        jitter: Si variar la espera un ±10% para no sincronizar clientes
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter

    def should_retry(self, exception: Exception, attempt: int) -> bool:
        if attempt >= self.max_attempts:
            return False
        return isinstance(exception, AppException) and exception.is_retryable

    def calculate_delay(self, attempt: int, exception: Optional[Exception] = None) -> float:
        """
        Segundos a esperar antes del intento `attempt + 1`.

        Si Razorpay envió Retry-After se respeta, acotado por max_delay.
        """
        if isinstance(exception, RazorpayAPIException) and exception.retry_after:
            return min(exception.retry_after, self.max_delay)

        delay = self.base_delay * (self.exponential_base ** (attempt - 1))
        if self.jitter:
            delay += random.uniform(-0.1 * delay, 0.1 * delay)

        return max(min(delay, self.max_delay), 0)


class CircuitBreaker:
    """
    Corta las llamadas a Razorpay tras una racha de fallas.

    Después de `reset_timeout` segundos deja pasar llamadas de prueba
    (HALF_OPEN); `success_threshold` éxitos seguidos lo vuelven a cerrar.
    """

    def __init__(
        self,
        failure_threshold: int = 10,
        success_threshold: int = 2,
        timeout: float = 45.0,
        reset_timeout: float = 60.0,
    ):
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.timeout = timeout
        self.reset_timeout = reset_timeout

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self._opened_at: Optional[float] = None

    def can_execute(self) -> bool:
        if self.state != CircuitState.OPEN:
            return True

        if self._opened_at is not None and time.monotonic() - self._opened_at >= self.reset_timeout:
            self.state = CircuitState.HALF_OPEN
            self.success_count = 0
            logger.info("Razorpay circuit breaker HALF_OPEN, probing")
            return True

        return False

    def record_success(self) -> None:
        self.failure_count = 0
        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                self.state = CircuitState.CLOSED
                logger.info("Razorpay circuit breaker CLOSED")

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.state != CircuitState.OPEN:
                logger.warning(f"Razorpay circuit breaker OPEN after {self.failure_count} failures")
            self.state = CircuitState.OPEN
            self._opened_at = time.monotonic()

    def get_state_info(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.failure_threshold,
        }


class RetryHandler:
    """
    Ejecuta corrutinas aplicando una RetryPolicy y, opcionalmente, un
    CircuitBreaker compartido.
    """

    def __init__(
        self,
        name: str,
        retry_policy: Optional[RetryPolicy] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        enable_circuit_breaker: bool = True,
    ):
        self.name = name
        self.retry_policy = retry_policy or RetryPolicy()
        self.circuit_breaker = (circuit_breaker or CircuitBreaker()) if enable_circuit_breaker else None

    async def execute(
        self,
        func: Callable[..., Awaitable[Any]],
        *args,
        context: Optional[Dict[str, Any]] = None,
        idempotent: bool = True,
        **kwargs,
    ) -> Any:
        """
        Ejecuta `func(*args, **kwargs)` con reintentos.

        Args:
            func: Corrutina a ejecutar
            context: Datos extra para los logs (endpoint, método)
            idempotent: False si repetir la llamada puede duplicar su efecto

        Returns:
            Any: Resultado de la corrutina

        Raises:
            RazorpayAPIException: Si el circuito está abierto o la llamada
                excede el timeout
            Exception: El último error si se agotan los intentos
        """
        context = context or {}
        breaker = self.circuit_breaker

        if breaker and not breaker.can_execute():
            raise RazorpayAPIException(
                message=f"Circuit breaker is OPEN for {self.name}",
                details={"circuit_state": breaker.state.value, "context": context},
            )

        attempt = 0
        while True:
            attempt += 1
            try:
                if breaker:
                    result = await asyncio.wait_for(func(*args, **kwargs), timeout=breaker.timeout)
                else:
                    result = await func(*args, **kwargs)
            except asyncio.TimeoutError as e:
                error: Exception = RazorpayAPIException(
                    message=f"Operation {self.name} timed out",
                    details={"timeout": breaker.timeout if breaker else None, "context": context},
                    idempotent=idempotent,
                )
                error.__cause__ = e
            except Exception as e:
                error = e
            else:
                if breaker:
                    breaker.record_success()
                return result

            # 4xx no cuenta como falla de disponibilidad
            if breaker and getattr(error, "is_transient", getattr(error, "is_retryable", True)):
                breaker.record_failure()

            if not self.retry_policy.should_retry(error, attempt):
                if attempt >= self.retry_policy.max_attempts and attempt > 1:
                    logger.error(f"All {attempt} attempts failed for {self.name}: {error}", extra={"context": context})
                else:
                    logger.warning(f"Not retrying {self.name}: {type(error).__name__}: {error}", extra={"context": context})
                raise error

            delay = self.retry_policy.calculate_delay(attempt, error)
            logger.info(
                f"Retrying {self.name} in {delay:.2f}s (attempt {attempt + 1}/{self.retry_policy.max_attempts})",
                extra={"exception": str(error), "context": context},
            )
            await asyncio.sleep(delay)


def create_razorpay_retry_handler() -> RetryHandler:
    """Handler de la API de Razorpay con los reintentos de MAX_RETRIES y RETRY_*."""
    settings = get_settings()
    return RetryHandler(
        name="razorpay_api",
        retry_policy=RetryPolicy(
            max_attempts=max(settings.MAX_RETRIES, 1),
            base_delay=float(settings.RETRY_DELAY_SECONDS),
            max_delay=10.0,
            exponential_base=settings.RETRY_BACKOFF_FACTOR,
        ),
        # El timeout cubre la request completa más el margen del connect
        circuit_breaker=CircuitBreaker(timeout=settings.RAZORPAY_REQUEST_TIMEOUT + 15.0),
    )


RAZORPAY_RETRY_HANDLER = create_razorpay_retry_handler()


def get_handler(service: str) -> RetryHandler:
    """Handler compartido del servicio, o uno nuevo con la política por defecto."""
    handlers = {"razorpay": RAZORPAY_RETRY_HANDLER}
    return handlers.get(service.lower(), RetryHandler(name=service))
