"""Admin API routes"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from app.core.exceptions import DispatchError, StorageError
from app.core.security import require_admin_key
from app.services.fulfillment_service import FulfillmentOrchestrator, get_orchestrator

router = APIRouter(prefix="/api", tags=["admin"])
logger = logging.getLogger(__name__)


@router.get("/transactions")
async def list_transactions(
    _admin_key: str = Depends(require_admin_key),
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator)
):
    """Full payment history, oldest first (admin only)"""
    try:
        return await orchestrator.list_transactions()
    except StorageError as e:
        logger.error(f"Transaction listing failed: {e}")
        raise HTTPException(503, "Transaction ledger unavailable")


@router.get("/test-rcon")
async def test_rcon(
    _admin_key: str = Depends(require_admin_key),
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator)
):
    """Check the RCON connection by listing online players (admin only)"""
    logger.info("Testing RCON connection...")
    try:
        response = await orchestrator.check_connection()
    except DispatchError as e:
        logger.error(f"RCON test failed: {e.cause}")
        raise HTTPException(502, f"RCON connection failed: {e.cause}")

    return {"success": True, "message": "RCON connection works", "response": response}
