"""
Endpoint de reembolsos iniciados desde la tienda.
"""

import logging

from fastapi import APIRouter, Depends, status

from razorpay_bridge.api.v1.dependencies import get_refund_service, get_repositories
from razorpay_bridge.api.v1.schemas.payment_schemas import RefundRequest, RefundResponse, TransactionResponse
from razorpay_bridge.db.repositories import Repositories
from razorpay_bridge.domain.status import TransactionType
from razorpay_bridge.services.refunds import RefundService
from razorpay_bridge.utils.error_handler import NotFoundException

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/", response_model=RefundResponse, status_code=status.HTTP_200_OK, summary="Reembolsar un cobro")
async def create_refund(
    request_data: RefundRequest,
    repos: Repositories = Depends(get_repositories),
    service: RefundService = Depends(get_refund_service),
) -> RefundResponse:
    """
    Reembolsa total o parcialmente un cobro en Razorpay y registra la
    transacción de reembolso local.
    """
    transaction = await repos.transactions.get_by_uuid(request_data.transaction_uuid)
    if transaction is None or transaction.transaction_type != TransactionType.CHARGE:
        raise NotFoundException(
            "Transaction not found.", resource="transaction", identifier=request_data.transaction_uuid
        )

    refund = await service.refund(transaction, request_data.amount, request_data.note, request_data.reason)

    logger.info(f"Refund {refund.vendor_charge_id} recorded for transaction {transaction.uuid}")

    return RefundResponse(
        message="Refund processed successfully",
        refund=TransactionResponse.model_validate(refund),
    )
