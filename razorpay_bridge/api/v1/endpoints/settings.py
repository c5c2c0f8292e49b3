"""
Validación de llaves del gateway antes de guardarlas.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from razorpay_bridge.api.v1.schemas.payment_schemas import GatewaySettingsRequest
from razorpay_bridge.core.config import validate_gateway_settings

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/validate", summary="Validar llaves de Razorpay")
async def validate_settings(request_data: GatewaySettingsRequest) -> JSONResponse:
    """
    Valida que el modo elegido tenga llave pública y secreta.

    Returns:
        JSONResponse: 200 si es válida, 422 con los errores por campo si no
    """
    errors = validate_gateway_settings(request_data.model_dump())

    if errors:
        logger.warning(f"Gateway settings rejected: {list(errors)}")
        return JSONResponse(status_code=422, content={"valid": False, "errors": errors})

    return JSONResponse(status_code=200, content={"valid": True, "errors": {}})
