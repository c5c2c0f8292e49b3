"""
Endpoints de versión y chequeo de actualizaciones.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from razorpay_bridge.version import VERSION, check_for_updates, clear_update_cache, version_info, version_string

logger = logging.getLogger(__name__)

router = APIRouter()


class VersionResponse(BaseModel):
    version: str
    name: str
    python_version: str
    git_commit: Optional[str] = None
    build_date: Optional[str] = None
    environment: str
    payment_mode: str


class ShortVersionResponse(BaseModel):
    version: str
    version_string: str


class UpdateCheckResponse(BaseModel):
    """Resultado del chequeo contra la última release de GitHub."""

    current_version: str
    latest_version: Optional[str] = None
    update_available: bool
    release_url: Optional[str] = None
    release_notes: Optional[str] = None
    checked_at: str
    error: Optional[str] = None


@router.get("", response_model=VersionResponse, summary="Información de versión")
async def get_version() -> Dict[str, Any]:
    return version_info()


@router.get("/short", response_model=ShortVersionResponse, summary="Versión corta")
async def get_version_short() -> Dict[str, str]:
    return {"version": VERSION, "version_string": version_string()}


@router.get("/updates", response_model=UpdateCheckResponse, summary="Buscar actualizaciones")
async def get_updates() -> Dict[str, Any]:
    """Consulta la última release en GitHub (cacheada una hora)."""
    return await check_for_updates()


@router.post("/updates/refresh", response_model=UpdateCheckResponse, summary="Forzar chequeo de actualizaciones")
async def refresh_updates() -> Dict[str, Any]:
    clear_update_cache()
    logger.info("Update cache cleared, checking GitHub again")
    return await check_for_updates()
