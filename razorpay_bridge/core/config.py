"""
Configuración centralizada de la aplicación.

Este módulo maneja todas las variables de entorno y configuraciones
de la aplicación usando Pydantic Settings para validación automática.
"""

from functools import lru_cache
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

PAYMENT_MODES = ("test", "live")
CHECKOUT_TYPES = ("modal", "hosted")


class Settings(BaseSettings):
    """
    Configuración de la aplicación usando Pydantic Settings.

    Todas las configuraciones se cargan desde variables de entorno
    con valores por defecto apropiados para desarrollo.
    """

    # === CONFIGURACIÓN BÁSICA DE LA APP ===
    APP_NAME: str = "Razorpay Bridge"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development", env="ENV")
    DEBUG: bool = Field(default=True, env="DEBUG")

    # === CONFIGURACIÓN DEL SERVIDOR ===
    HOST: str = Field(default="0.0.0.0", env="HOST")
    PORT: int = Field(default=8080, env="PORT")
    LOG_LEVEL: str = Field(default="INFO", env="LOG_LEVEL")
    ALLOWED_HOSTS: Optional[str] = Field(default=None, env="ALLOWED_HOSTS")

    # === CONFIGURACIÓN DE BASE DE DATOS LOCAL ===
    DATABASE_URL: str = Field(default="sqlite+aiosqlite:///./razorpay_bridge.db", env="DATABASE_URL")
    DATABASE_ECHO: bool = Field(default=False, env="DATABASE_ECHO")

    # === CONFIGURACIÓN DE RAZORPAY ===
    RAZORPAY_PAYMENT_MODE: str = Field(default="test", env="RAZORPAY_PAYMENT_MODE")
    RAZORPAY_TEST_KEY_ID: str = Field(default="", env="RAZORPAY_TEST_KEY_ID")
    RAZORPAY_TEST_KEY_SECRET: str = Field(default="", env="RAZORPAY_TEST_KEY_SECRET")
    RAZORPAY_TEST_WEBHOOK_SECRET: str = Field(default="", env="RAZORPAY_TEST_WEBHOOK_SECRET")
    RAZORPAY_LIVE_KEY_ID: str = Field(default="", env="RAZORPAY_LIVE_KEY_ID")
    RAZORPAY_LIVE_KEY_SECRET: str = Field(default="", env="RAZORPAY_LIVE_KEY_SECRET")
    RAZORPAY_LIVE_WEBHOOK_SECRET: str = Field(default="", env="RAZORPAY_LIVE_WEBHOOK_SECRET")
    RAZORPAY_API_BASE_URL: str = Field(default="https://api.razorpay.com/v1", env="RAZORPAY_API_BASE_URL")
    RAZORPAY_REQUEST_TIMEOUT: int = Field(default=30, env="RAZORPAY_REQUEST_TIMEOUT")
    RAZORPAY_CHECKOUT_TYPE: str = Field(default="modal", env="RAZORPAY_CHECKOUT_TYPE")
    RAZORPAY_NOTIFICATIONS: str = Field(default="", env="RAZORPAY_NOTIFICATIONS")
    RAZORPAY_REFUND_SPEED: str = Field(default="normal", env="RAZORPAY_REFUND_SPEED")
    RAZORPAY_THEME_COLOR: str = Field(default="#3399cc", env="RAZORPAY_THEME_COLOR")

    # === CONFIGURACIÓN DE LA TIENDA ===
    STORE_NAME: str = Field(default="Store", env="STORE_NAME")
    RECEIPT_PAGE_URL: str = Field(default="http://localhost:8080/receipt", env="RECEIPT_PAGE_URL")

    # === CONFIGURACIÓN DE WEBHOOKS ===
    WEBHOOK_MAX_PAYLOAD_BYTES: int = Field(default=1048576, env="WEBHOOK_MAX_PAYLOAD_BYTES")

    # === CONFIGURACIÓN DE LOGGING ===
    LOG_FILE_PATH: Optional[str] = Field(default=None, env="LOG_FILE_PATH")
    LOG_MAX_SIZE_MB: int = Field(default=10, env="LOG_MAX_SIZE_MB")
    LOG_BACKUP_COUNT: int = Field(default=5, env="LOG_BACKUP_COUNT")
    LOG_FORMAT: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s", env="LOG_FORMAT")
    LOG_JSON: bool = Field(default=False, env="LOG_JSON")
    SLOW_REQUEST_THRESHOLD: float = Field(default=5.0, env="SLOW_REQUEST_THRESHOLD")

    # === CONFIGURACIÓN DE DOCUMENTACIÓN ===
    ENABLE_DOCS: bool = Field(default=True, env="ENABLE_DOCS")

    # === CONFIGURACIÓN DE RETRIES ===
    MAX_RETRIES: int = Field(default=3, env="MAX_RETRIES")
    RETRY_DELAY_SECONDS: int = Field(default=1, env="RETRY_DELAY_SECONDS")
    RETRY_BACKOFF_FACTOR: float = Field(default=2.0, env="RETRY_BACKOFF_FACTOR")

    # === CONFIGURACIÓN DE ACTUALIZACIONES ===
    GITHUB_REPO_OWNER: str = Field(default="razorpay-bridge", env="GITHUB_REPO_OWNER")
    GITHUB_REPO_NAME: str = Field(default="razorpay-bridge", env="GITHUB_REPO_NAME")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "allow",
    }

    @field_validator("RAZORPAY_PAYMENT_MODE")
    @classmethod
    def validate_payment_mode(cls, v):
        """Valida el modo de pago."""
        if v.lower() not in PAYMENT_MODES:
            raise ValueError(f"RAZORPAY_PAYMENT_MODE debe ser uno de: {list(PAYMENT_MODES)}")
        return v.lower()

    @field_validator("RAZORPAY_CHECKOUT_TYPE")
    @classmethod
    def validate_checkout_type(cls, v):
        """Valida el tipo de checkout."""
        if v.lower() not in CHECKOUT_TYPES:
            raise ValueError(f"RAZORPAY_CHECKOUT_TYPE debe ser uno de: {list(CHECKOUT_TYPES)}")
        return v.lower()

    @field_validator("RAZORPAY_REFUND_SPEED")
    @classmethod
    def validate_refund_speed(cls, v):
        """Valida la velocidad de reembolso."""
        if v.lower() not in ("normal", "optimum"):
            raise ValueError("RAZORPAY_REFUND_SPEED debe ser 'normal' u 'optimum'")
        return v.lower()

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Valida que el nivel de log sea válido."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL debe ser uno de: {valid_levels}")
        return v.upper()

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Valida que el entorno sea válido."""
        valid_envs = ["development", "staging", "production", "testing"]
        if v.lower() not in valid_envs:
            raise ValueError(f"ENVIRONMENT debe ser uno de: {valid_envs}")
        return v.lower()

    @field_validator("PORT")
    @classmethod
    def validate_port(cls, v):
        """Valida que el puerto esté en rango válido."""
        if not 1 <= v <= 65535:
            raise ValueError("PORT debe estar entre 1 y 65535")
        return v

    @property
    def is_production(self) -> bool:
        """Verifica si está en entorno de producción."""
        return self.ENVIRONMENT == "production"

    @property
    def allowed_hosts(self) -> List[str]:
        """Parsea ALLOWED_HOSTS como lista separada por comas."""
        if not self.ALLOWED_HOSTS:
            return []
        return [host.strip() for host in self.ALLOWED_HOSTS.split(",") if host.strip()]

    @property
    def notification_channels(self) -> Dict[str, bool]:
        """Canales de notificación para payment links (`RAZORPAY_NOTIFICATIONS=sms,email`)."""
        channels = {channel.strip().lower() for channel in self.RAZORPAY_NOTIFICATIONS.split(",")}
        return {
            "email": "email" in channels,
            "sms": "sms" in channels,
        }

    def _resolve_mode(self, mode: Optional[str]) -> str:
        return (mode or self.RAZORPAY_PAYMENT_MODE).lower()

    def get_api_keys(self, mode: Optional[str] = None) -> Dict[str, str]:
        """
        Obtiene las llaves de API para un modo.

        Args:
            mode: `test` o `live`; por defecto el modo activo

        Returns:
            dict: `{"api_key", "api_secret"}`, vacío si falta alguna de las dos
        """
        mode = self._resolve_mode(mode)
        key_id = (getattr(self, f"RAZORPAY_{mode.upper()}_KEY_ID", "") or "").strip()
        key_secret = (getattr(self, f"RAZORPAY_{mode.upper()}_KEY_SECRET", "") or "").strip()

        if not key_id or not key_secret:
            return {}

        return {"api_key": key_id, "api_secret": key_secret}

    def get_api_key(self, mode: Optional[str] = None) -> str:
        """Obtiene la llave pública (key id) del modo."""
        mode = self._resolve_mode(mode)
        return (getattr(self, f"RAZORPAY_{mode.upper()}_KEY_ID", "") or "").strip()

    def get_key_secret(self, mode: Optional[str] = None) -> str:
        """Obtiene la llave secreta del modo."""
        mode = self._resolve_mode(mode)
        return (getattr(self, f"RAZORPAY_{mode.upper()}_KEY_SECRET", "") or "").strip()

    def get_webhook_secret(self, mode: Optional[str] = None) -> str:
        """Obtiene el secreto de webhook del modo, usando la llave secreta si está vacío."""
        mode = self._resolve_mode(mode)
        secret = (getattr(self, f"RAZORPAY_{mode.upper()}_WEBHOOK_SECRET", "") or "").strip()
        return secret or self.get_key_secret(mode)


@lru_cache()
def get_settings() -> Settings:
    """
    Obtiene instancia singleton de configuración.

    Usa LRU cache para evitar recrear la configuración
    múltiples veces durante la ejecución.

    Returns:
        Settings: Instancia de configuración
    """
    return Settings()


def validate_gateway_settings(data: Dict[str, Any]) -> Dict[str, str]:
    """
    Valida un conjunto de llaves antes de guardarlo.

    El modo activo exige tanto la llave pública como la secreta.

    Args:
        data: Valores propuestos (`payment_mode`, `test_pub_key`, `test_secret_key`, ...)

    Returns:
        dict: Errores por campo; vacío si la configuración es válida
    """
    errors: Dict[str, str] = {}
    mode = (data.get("payment_mode") or "test").lower()

    if mode not in PAYMENT_MODES:
        errors["payment_mode"] = f"Payment mode must be one of: {', '.join(PAYMENT_MODES)}"
        return errors

    key_id = (data.get(f"{mode}_pub_key") or "").strip()
    key_secret = (data.get(f"{mode}_secret_key") or "").strip()
    label = mode.capitalize()

    if not key_id or not key_secret:
        errors[f"{mode}_pub_key"] = f"Please provide {label} Public Key and {label} Secret Key"
    elif not key_id.startswith("rzp_"):
        errors[f"{mode}_pub_key"] = f"{label} Public Key must start with 'rzp_{mode}_'"

    return errors

