"""Voucher API routes"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from app.core.exceptions import StorageError, UnauthorizedError, ValidationError
from app.core.security import require_admin_key
from app.schemas.fulfillment import CreateVoucherRequest, RedeemVoucherRequest
from app.services.fulfillment_service import FulfillmentOrchestrator, get_orchestrator
from app.services.voucher_service import RedemptionReason

router = APIRouter(prefix="/api", tags=["vouchers"])
logger = logging.getLogger(__name__)

# Negative outcomes the caller can act on; everything else is a server-side failure
USER_FACING_REASONS = {
    RedemptionReason.NOT_FOUND,
    RedemptionReason.ALREADY_REDEEMED,
    RedemptionReason.PENDING_RECONCILIATION,
}


@router.post("/redeem-voucher")
async def redeem_voucher(
    redemption: RedeemVoucherRequest,
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator)
):
    """Redeem a voucher code for a player"""
    try:
        outcome = await orchestrator.handle_voucher_redemption(
            redemption.voucher_code, redemption.minecraft_nick
        )
    except ValidationError as e:
        raise HTTPException(400, str(e))
    except StorageError as e:
        logger.error(f"Voucher lookup failed for {redemption.voucher_code}: {e}")
        raise HTTPException(503, "Voucher ledger unavailable")

    if outcome.success or outcome.reason in USER_FACING_REASONS:
        return outcome
    return JSONResponse(status_code=502, content=outcome.model_dump(mode="json"))


@router.post("/create-voucher")
async def create_voucher(
    request_data: CreateVoucherRequest,
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator)
):
    """Issue a new voucher (admin only)"""
    try:
        voucher = await orchestrator.issue_voucher(
            request_data.item_type,
            request_data.quantity or 1,
            request_data.admin_key,
        )
    except UnauthorizedError:
        raise HTTPException(401, "Admin access required")
    except ValidationError as e:
        raise HTTPException(400, str(e))
    except StorageError as e:
        logger.error(f"Voucher could not be created: {e}")
        raise HTTPException(503, "Voucher ledger unavailable")

    return {"success": True, "voucher": voucher}


@router.get("/vouchers")
async def list_vouchers(
    _admin_key: str = Depends(require_admin_key),
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator)
):
    """List all vouchers (admin only)"""
    try:
        return await orchestrator.list_vouchers()
    except StorageError as e:
        logger.error(f"Voucher listing failed: {e}")
        raise HTTPException(503, "Voucher ledger unavailable")
