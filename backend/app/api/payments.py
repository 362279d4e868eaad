"""Payment webhook routes"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from app.core.exceptions import StorageError, ValidationError
from app.schemas.fulfillment import PaymentWebhookRequest
from app.services.fulfillment_service import FulfillmentOrchestrator, get_orchestrator

router = APIRouter(prefix="/api", tags=["payments"])
logger = logging.getLogger(__name__)


@router.post("/paypal-webhook")
async def paypal_webhook(
    payment: PaymentWebhookRequest,
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator)
):
    """Handle a confirmed payment and grant the purchased reward

    Re-delivery of the same transaction_id returns the stored outcome
    without granting again.
    """
    try:
        outcome = await orchestrator.handle_payment(
            payment.transaction_id,
            payment.minecraft_nick,
            payment.item_type,
            quantity=payment.quantity,
            amount=payment.amount,
            payer_email=payment.payer_email,
        )
    except ValidationError as e:
        logger.warning(f"Rejected payment {payment.transaction_id}: {e}")
        raise HTTPException(400, str(e))
    except StorageError as e:
        logger.error(f"Payment {payment.transaction_id} could not be recorded: {e}")
        raise HTTPException(503, "Transaction ledger unavailable")

    if not outcome.success:
        # Failed grants keep a failed ledger entry for manual reconciliation
        return JSONResponse(status_code=502, content=outcome.model_dump(mode="json"))
    return outcome
