"""
Endpoint para webhooks de Razorpay.

El webhook se procesa dentro de la request: Razorpay reintenta cualquier
respuesta distinta de 2xx, así que el código HTTP debe reflejar el resultado
real del procesamiento.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse

from razorpay_bridge.api.v1.dependencies import get_webhook_processor
from razorpay_bridge.services.webhook_processor import WebhookProcessor

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/razorpay", status_code=status.HTTP_200_OK)
async def receive_razorpay_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(default=None),
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> JSONResponse:
    """
    Recibe un webhook de Razorpay.

    La firma se calcula sobre el cuerpo crudo, por eso se lee como bytes
    antes de cualquier decodificación.

    Returns:
        JSONResponse: `{"message", "status": "success"}`; los rechazos los
        convierte el manejador de WebhookException
    """
    payload = await request.body()
    result = await processor.process(payload, x_razorpay_signature)

    logger.info(f"Razorpay webhook processed: {result['message']}")
    return JSONResponse(status_code=200, content=result)
