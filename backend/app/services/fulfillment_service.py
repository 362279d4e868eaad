"""Fulfillment orchestrator - payments and voucher redemptions

Payment path:
    received -> recorded (transaction stored as processing) -> dispatching
    -> fulfilled (completed) | dispatch_failed (failed)

Voucher path:
    received -> dispatching -> fulfilled (voucher marked redeemed)
    | dispatch_failed (voucher left unredeemed)

There is no transaction spanning the ledger and the RCON channel; ordering
is the only consistency mechanism. A payment is recorded before anything is
granted, and a voucher is only marked redeemed after its grant succeeded.
"""
from enum import Enum
from functools import lru_cache
from typing import List, Optional, Union

from pydantic import BaseModel

from app.core.exceptions import DispatchError, StorageError
from app.core.locks import KeyedLock
from app.core.logging import fulfillment_logger
from app.core.metrics import payments_counter, redemptions_counter
from app.db.ledger import LedgerStore
from app.models.transaction import Transaction, TransactionDraft, TransactionStatus
from app.models.voucher import Voucher
from app.services.entitlement_service import (
    EntitlementDispatcher, describe_reward, validate_nick, validate_reward
)
from app.services.rcon_service import RconChannel
from app.services.voucher_service import RedemptionReason, VoucherEngine

logger = fulfillment_logger


class FulfillmentState(str, Enum):
    RECEIVED = "received"
    RECORDED = "recorded"
    DISPATCHING = "dispatching"
    FULFILLED = "fulfilled"
    DISPATCH_FAILED = "dispatch_failed"


class FulfillmentOutcome(BaseModel):
    """Result of a payment webhook"""
    success: bool
    transaction_id: str
    minecraft_nick: str
    status: Optional[TransactionStatus] = None
    state: FulfillmentState
    duplicate: bool = False
    commands_sent: int = 0
    error: Optional[str] = None


class RedemptionOutcome(BaseModel):
    """Result of a voucher redemption. Unknown or used codes are a normal negative result."""
    success: bool
    code: str
    minecraft_nick: str
    reason: RedemptionReason
    reward: Optional[str] = None
    redeemed_by: Optional[str] = None
    commands_sent: int = 0
    error: Optional[str] = None


def _outcome_from_transaction(transaction: Transaction, duplicate: bool) -> FulfillmentOutcome:
    state = {
        TransactionStatus.PROCESSING: FulfillmentState.DISPATCHING,
        TransactionStatus.COMPLETED: FulfillmentState.FULFILLED,
        TransactionStatus.FAILED: FulfillmentState.DISPATCH_FAILED,
    }[transaction.status]
    return FulfillmentOutcome(
        success=transaction.status == TransactionStatus.COMPLETED,
        transaction_id=transaction.transaction_id,
        minecraft_nick=transaction.minecraft_nick,
        status=transaction.status,
        state=state,
        duplicate=duplicate,
        commands_sent=transaction.commands_sent,
        error=transaction.error,
    )


class FulfillmentOrchestrator:
    def __init__(self, ledger: LedgerStore, vouchers: VoucherEngine, dispatcher: EntitlementDispatcher):
        self.ledger = ledger
        self.vouchers = vouchers
        self.dispatcher = dispatcher
        self._payment_locks = KeyedLock()

    @classmethod
    def from_settings(cls) -> "FulfillmentOrchestrator":
        ledger = LedgerStore.from_settings()
        return cls(
            ledger,
            VoucherEngine(ledger),
            EntitlementDispatcher(RconChannel.from_settings()),
        )

    # -------------------------
    # Payments
    # -------------------------
    async def handle_payment(
        self,
        transaction_id: str,
        nick: str,
        item_type: str,
        quantity: int = 1,
        amount: Optional[Union[float, str]] = None,
        payer_email: Optional[str] = None,
    ) -> FulfillmentOutcome:
        """Record a payment and grant its reward exactly once per transaction_id.

        Raises:
            ValidationError: Unknown item type, bad quantity or nick. Nothing
                is recorded.
            StorageError: The transaction could not be recorded. Nothing is
                granted.
        """
        nick = validate_nick(nick)
        validate_reward(item_type, quantity)
        logger.info(
            f"Payment {transaction_id} received: {nick} bought {describe_reward(item_type, quantity)}"
            f" for {amount} ({payer_email})"
        )

        async with self._payment_locks.hold(transaction_id):
            existing = await self.ledger.get_transaction(transaction_id)
            if existing is not None:
                logger.info(
                    f"Payment {transaction_id} already handled ({existing.status.value}), not granting again"
                )
                payments_counter.labels(status="duplicate").inc()
                return _outcome_from_transaction(existing, duplicate=True)

            commands = self.dispatcher.resolve_commands(item_type, quantity, nick)

            transaction = await self.ledger.append_transaction(TransactionDraft(
                transaction_id=transaction_id,
                minecraft_nick=nick,
                item_type=item_type,
                quantity=quantity,
                amount=amount,
                payer_email=payer_email,
            ))
            logger.info(f"Payment {transaction_id}: {FulfillmentState.RECORDED.value}")

            logger.info(f"Payment {transaction_id}: {FulfillmentState.DISPATCHING.value} {len(commands)} command(s)")
            try:
                outcome = await self.dispatcher.dispatch(commands)
            except DispatchError as e:
                return await self._fail_payment(transaction, e)

            try:
                transaction = await self.ledger.update_transaction_status(
                    transaction_id, TransactionStatus.COMPLETED, commands_sent=outcome.succeeded
                )
            except StorageError as e:
                # Reward was granted but the ledger still says processing
                logger.error(
                    f"Payment {transaction_id} granted to {nick} ({commands}) but could not be "
                    f"marked completed: {e}"
                )
                payments_counter.labels(status="storage_error").inc()
                return FulfillmentOutcome(
                    success=False,
                    transaction_id=transaction_id,
                    minecraft_nick=nick,
                    status=TransactionStatus.PROCESSING,
                    state=FulfillmentState.FULFILLED,
                    commands_sent=outcome.succeeded,
                    error=str(e),
                )

        logger.info(f"Payment {transaction_id}: {FulfillmentState.FULFILLED.value}")
        payments_counter.labels(status="completed").inc()
        return _outcome_from_transaction(transaction, duplicate=False)

    async def _fail_payment(self, transaction: Transaction, error: DispatchError) -> FulfillmentOutcome:
        transaction_id = transaction.transaction_id
        logger.error(
            f"Payment {transaction_id}: {FulfillmentState.DISPATCH_FAILED.value} on {error.command!r} "
            f"({error.succeeded} command(s) applied): {error.cause}"
        )
        payments_counter.labels(status="failed").inc()
        try:
            transaction = await self.ledger.update_transaction_status(
                transaction_id, TransactionStatus.FAILED,
                error=str(error), commands_sent=error.succeeded
            )
        except StorageError as e:
            logger.error(f"Payment {transaction_id} could not be marked failed: {e}")
            return FulfillmentOutcome(
                success=False,
                transaction_id=transaction_id,
                minecraft_nick=transaction.minecraft_nick,
                status=TransactionStatus.PROCESSING,
                state=FulfillmentState.DISPATCH_FAILED,
                commands_sent=error.succeeded,
                error=f"{error}; {e}",
            )
        return _outcome_from_transaction(transaction, duplicate=False)

    # -------------------------
    # Vouchers
    # -------------------------
    async def handle_voucher_redemption(self, code: str, nick: str) -> RedemptionOutcome:
        """Grant a voucher's reward to nick and mark the voucher used.

        Raises:
            ValidationError: The nick cannot be used in a command
            StorageError: The voucher could not be looked up
        """
        nick = validate_nick(nick)
        logger.info(f"Voucher redemption attempt: code {code} by {nick}")

        async with self.vouchers.code_lock(code):
            result = await self.vouchers.redeem(code, nick)
            if not result.ok:
                redemptions_counter.labels(result=result.reason.value).inc()
                return RedemptionOutcome(
                    success=False,
                    code=result.code,
                    minecraft_nick=nick,
                    reason=result.reason,
                    redeemed_by=result.voucher.redeemed_by if result.voucher else None,
                )

            voucher = result.voucher
            reward = describe_reward(voucher.item_type, voucher.quantity)
            commands = self.dispatcher.resolve_commands(voucher.item_type, voucher.quantity, nick)

            logger.info(f"Voucher {voucher.code}: {FulfillmentState.DISPATCHING.value} {reward} to {nick}")
            try:
                outcome = await self.dispatcher.dispatch(commands)
            except DispatchError as e:
                logger.error(
                    f"Voucher {voucher.code}: {FulfillmentState.DISPATCH_FAILED.value} on {e.command!r} "
                    f"({e.succeeded} command(s) applied), voucher left unredeemed: {e.cause}"
                )
                redemptions_counter.labels(result=RedemptionReason.DISPATCH_FAILED.value).inc()
                return RedemptionOutcome(
                    success=False,
                    code=voucher.code,
                    minecraft_nick=nick,
                    reason=RedemptionReason.DISPATCH_FAILED,
                    reward=reward,
                    commands_sent=e.succeeded,
                    error=str(e),
                )

            try:
                voucher = await self.vouchers.complete_redemption(voucher.code, nick)
            except StorageError as e:
                self.vouchers.quarantine(voucher.code)
                logger.critical(
                    f"Voucher {voucher.code} granted to {nick} ({commands}) but not marked redeemed; "
                    f"code quarantined until reconciled: {e}"
                )
                redemptions_counter.labels(result=RedemptionReason.STORAGE_ERROR.value).inc()
                return RedemptionOutcome(
                    success=False,
                    code=voucher.code,
                    minecraft_nick=nick,
                    reason=RedemptionReason.STORAGE_ERROR,
                    reward=reward,
                    commands_sent=outcome.succeeded,
                    error=str(e),
                )

        logger.info(f"Voucher {voucher.code}: {FulfillmentState.FULFILLED.value}, {reward} granted to {nick}")
        redemptions_counter.labels(result=RedemptionReason.REDEEMED.value).inc()
        return RedemptionOutcome(
            success=True,
            code=voucher.code,
            minecraft_nick=nick,
            reason=RedemptionReason.REDEEMED,
            reward=reward,
            redeemed_by=voucher.redeemed_by,
            commands_sent=outcome.succeeded,
        )

    async def issue_voucher(self, item_type: str, quantity: int, credential: Optional[str]) -> Voucher:
        return await self.vouchers.issue(item_type, quantity, credential)

    # -------------------------
    # Reporting
    # -------------------------
    async def list_transactions(self) -> List[Transaction]:
        return await self.ledger.list_transactions()

    async def list_vouchers(self) -> List[Voucher]:
        return await self.ledger.list_vouchers()

    async def check_connection(self) -> str:
        return await self.dispatcher.check_connection()


@lru_cache
def get_orchestrator() -> FulfillmentOrchestrator:
    """Dependency for FastAPI endpoints. One orchestrator per process so the
    ledger locks are shared by every request."""
    return FulfillmentOrchestrator.from_settings()
