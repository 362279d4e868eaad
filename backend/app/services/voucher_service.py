"""Voucher engine - issuance and redemption of single-use reward codes"""
import logging
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator, Optional, Set

from pydantic import BaseModel

from app.core.exceptions import UnauthorizedError
from app.core.locks import KeyedLock
from app.core.logging import security_logger
from app.core.metrics import vouchers_issued_counter
from app.core.security import is_admin_key_valid
from app.db.ledger import LedgerStore
from app.models.voucher import Voucher
from app.services.entitlement_service import validate_reward

logger = logging.getLogger(__name__)


class RedemptionReason(str, Enum):
    REDEEMED = "redeemed"
    AVAILABLE = "available"
    NOT_FOUND = "not_found"
    ALREADY_REDEEMED = "already_redeemed"
    PENDING_RECONCILIATION = "pending_reconciliation"
    DISPATCH_FAILED = "dispatch_failed"
    STORAGE_ERROR = "storage_error"


class RedemptionResult(BaseModel):
    """Lookup result for a redemption attempt. Negative results are not errors."""
    ok: bool
    reason: RedemptionReason
    code: str
    voucher: Optional[Voucher] = None


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


class VoucherEngine:
    def __init__(self, ledger: LedgerStore):
        self.ledger = ledger
        self._code_locks = KeyedLock()
        # Codes granted remotely whose redemption could not be written
        self._unreconciled: Set[str] = set()

    async def issue(self, item_type: str, quantity: int, requester_credential: Optional[str]) -> Voucher:
        """Create a voucher for an authorized administrator.

        Raises:
            UnauthorizedError: Credential does not match ADMIN_KEY
            ValidationError: Unknown item type or non-positive quantity
            StorageError: The vouchers file cannot be read or written
        """
        if not is_admin_key_valid(requester_credential):
            security_logger.warning(f"Unauthorized voucher issuance attempt for {item_type!r}")
            raise UnauthorizedError("Invalid admin credential")

        validate_reward(item_type, quantity)
        voucher = await self.ledger.create_voucher(item_type, quantity)
        vouchers_issued_counter.inc()
        return voucher

    @asynccontextmanager
    async def code_lock(self, code: str) -> AsyncIterator[None]:
        """Serialize redemption attempts on one code"""
        async with self._code_locks.hold(normalize_code(code)):
            yield

    async def redeem(self, code: str, nick: str) -> RedemptionResult:
        """Check that a voucher can be redeemed. Does not mark it redeemed.

        The caller grants the reward and then calls complete_redemption().
        """
        code = normalize_code(code)

        if code in self._unreconciled:
            return RedemptionResult(ok=False, reason=RedemptionReason.PENDING_RECONCILIATION, code=code)

        voucher = await self.ledger.find_voucher_by_code(code)
        if voucher is None:
            logger.info(f"Voucher {code} does not exist (nick {nick})")
            return RedemptionResult(ok=False, reason=RedemptionReason.NOT_FOUND, code=code)

        if voucher.redeemed:
            logger.info(f"Voucher {code} already redeemed by {voucher.redeemed_by}")
            return RedemptionResult(
                ok=False, reason=RedemptionReason.ALREADY_REDEEMED, code=code, voucher=voucher
            )

        return RedemptionResult(ok=True, reason=RedemptionReason.AVAILABLE, code=code, voucher=voucher)

    async def complete_redemption(self, code: str, nick: str) -> Voucher:
        """Mark the voucher redeemed after its reward was delivered"""
        return await self.ledger.mark_voucher_redeemed(normalize_code(code), nick)

    def quarantine(self, code: str) -> None:
        """Refuse further redemptions of a code whose grant could not be recorded"""
        self._unreconciled.add(normalize_code(code))

    @property
    def unreconciled_codes(self) -> Set[str]:
        return set(self._unreconciled)
