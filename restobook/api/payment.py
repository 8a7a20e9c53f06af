import logging

from fastapi import APIRouter, Depends, Request

from restobook.api.deps import get_booking_service, get_context
from restobook.exceptions import ValidationError
from restobook.models.schemas import FinalizeResult, SessionContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payment", tags=["payment"])


@router.get("/return", response_model=FinalizeResult)
async def payment_return(request: Request,
                         ctx: SessionContext = Depends(get_context),
                         service=Depends(get_booking_service)):
    """Gateway redirect target; safe to hit again with the same transaction."""
    params = dict(request.query_params)
    transaction_ref = params.get("vnp_TxnRef")
    response_code = params.get("vnp_ResponseCode")
    if not transaction_ref or not response_code:
        raise ValidationError("Missing transaction reference or response code", field="vnp_TxnRef")

    if not service.gateway.verify_callback(params):
        logger.warning(f"Rejected unsigned payment callback for {transaction_ref}")
        raise ValidationError("Invalid payment signature", field="vnp_SecureHash")

    return service.finalize_payment(transaction_ref, response_code, ctx)
