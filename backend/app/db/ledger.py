"""Ledger store - durable JSON collections of transactions and vouchers

Each collection is a JSON array rewritten in full on every mutation. All
reads and writes of one collection go through that collection's
asyncio.Lock, so concurrent handlers cannot interleave their
read-modify-write cycles. The two collections lock independently.
"""
import asyncio
import json
import os
import secrets
import string
from pathlib import Path
from typing import Generic, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.core.exceptions import (
    AlreadyRedeemedError, DuplicateTransactionError, InvalidTransitionError,
    NotFoundError, StorageError
)
from app.core.logging import ledger_logger
from app.core.metrics import storage_errors_counter
from app.models.transaction import Transaction, TransactionDraft, TransactionStatus
from app.models.voucher import Voucher

logger = ledger_logger

T = TypeVar("T", bound=BaseModel)

VOUCHER_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_voucher_code(prefix: str = "VOUCHER-", length: int = 8) -> str:
    """Random code such as VOUCHER-7K2QX9AB"""
    return prefix + "".join(secrets.choice(VOUCHER_CODE_ALPHABET) for _ in range(length))


class JsonCollection(Generic[T]):
    """One JSON file holding a list of records of a single model"""

    def __init__(self, name: str, path: Union[str, Path], model: Type[T]):
        self.name = name
        self.path = Path(path)
        self.model = model
        self.lock = asyncio.Lock()

    async def load(self) -> List[T]:
        return await asyncio.to_thread(self._read)

    async def save(self, records: List[T]) -> None:
        await asyncio.to_thread(self._write, records)

    def _read(self) -> List[T]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            storage_errors_counter.labels(collection=self.name).inc()
            raise StorageError(f"Cannot read {self.name} from {self.path}: {e}") from e

        if not isinstance(raw, list):
            storage_errors_counter.labels(collection=self.name).inc()
            raise StorageError(f"{self.path} does not contain a list of {self.name}")

        try:
            return [self.model.model_validate(item) for item in raw]
        except PydanticValidationError as e:
            storage_errors_counter.labels(collection=self.name).inc()
            raise StorageError(f"Malformed {self.name} record in {self.path}: {e}") from e

    def _write(self, records: List[T]) -> None:
        # Write atomically: write to tmp then move
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(
                    [record.model_dump(mode="json") for record in records],
                    f, indent=2, ensure_ascii=False
                )
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            storage_errors_counter.labels(collection=self.name).inc()
            raise StorageError(f"Cannot write {self.name} to {self.path}: {e}") from e


class LedgerStore:
    """Owner of the transaction and voucher collections"""

    def __init__(
        self,
        transactions_path: Union[str, Path],
        vouchers_path: Union[str, Path],
        code_prefix: str = "VOUCHER-",
        code_length: int = 8,
    ):
        self.transactions = JsonCollection("transactions", transactions_path, Transaction)
        self.vouchers = JsonCollection("vouchers", vouchers_path, Voucher)
        # Redemption looks codes up upper-cased
        self.code_prefix = code_prefix.upper()
        self.code_length = code_length

    @classmethod
    def from_settings(cls) -> "LedgerStore":
        return cls(
            settings.TRANSACTIONS_FILE,
            settings.VOUCHERS_FILE,
            code_prefix=settings.VOUCHER_CODE_PREFIX,
            code_length=settings.VOUCHER_CODE_LENGTH,
        )

    # -------------------------
    # Transactions
    # -------------------------
    async def append_transaction(self, draft: TransactionDraft) -> Transaction:
        """Record a new payment as processing and persist it before returning.

        Raises:
            DuplicateTransactionError: A transaction with this id is already stored
            StorageError: The transactions file cannot be read or written
        """
        async with self.transactions.lock:
            records = await self.transactions.load()
            if any(t.transaction_id == draft.transaction_id for t in records):
                raise DuplicateTransactionError(
                    f"Transaction {draft.transaction_id} is already recorded"
                )
            transaction = Transaction(**draft.model_dump(), status=TransactionStatus.PROCESSING)
            records.append(transaction)
            await self.transactions.save(records)

        logger.info(
            f"Recorded transaction {transaction.transaction_id} for {transaction.minecraft_nick}: "
            f"{transaction.item_type} x{transaction.quantity} (processing)"
        )
        return transaction

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        async with self.transactions.lock:
            records = await self.transactions.load()
        for transaction in records:
            if transaction.transaction_id == transaction_id:
                return transaction
        return None

    async def update_transaction_status(
        self,
        transaction_id: str,
        status: TransactionStatus,
        error: Optional[str] = None,
        commands_sent: Optional[int] = None,
    ) -> Transaction:
        """Move a processing transaction to a terminal status.

        Raises:
            NotFoundError: No transaction with this id
            InvalidTransitionError: The transaction is already terminal
            StorageError: The transactions file cannot be read or written
        """
        status = TransactionStatus(status)
        async with self.transactions.lock:
            records = await self.transactions.load()
            for index, transaction in enumerate(records):
                if transaction.transaction_id == transaction_id:
                    break
            else:
                raise NotFoundError(f"Transaction {transaction_id} not found")

            if not transaction.status.can_transition_to(status):
                raise InvalidTransitionError(
                    f"Transaction {transaction_id} cannot move from "
                    f"{transaction.status.value} to {status.value}"
                )

            update = {"status": status, "error": error}
            if commands_sent is not None:
                update["commands_sent"] = commands_sent
            records[index] = transaction.model_copy(update=update)
            await self.transactions.save(records)

        logger.info(f"Transaction {transaction_id} status: {transaction.status.value} -> {status.value}")
        return records[index]

    async def list_transactions(self) -> List[Transaction]:
        """Full history, oldest first"""
        async with self.transactions.lock:
            return await self.transactions.load()

    # -------------------------
    # Vouchers
    # -------------------------
    async def create_voucher(self, item_type: str, quantity: int = 1) -> Voucher:
        """Create and persist a voucher whose code is unique among stored codes"""
        async with self.vouchers.lock:
            records = await self.vouchers.load()
            existing = {v.code for v in records}
            code = generate_voucher_code(self.code_prefix, self.code_length)
            while code in existing:
                logger.warning(f"Voucher code collision on {code}, regenerating")
                code = generate_voucher_code(self.code_prefix, self.code_length)

            voucher = Voucher(code=code, item_type=item_type, quantity=quantity)
            records.append(voucher)
            await self.vouchers.save(records)

        logger.info(f"Created voucher {voucher.code}: {voucher.item_type} x{voucher.quantity}")
        return voucher

    async def find_voucher_by_code(self, code: str) -> Optional[Voucher]:
        async with self.vouchers.lock:
            records = await self.vouchers.load()
        for voucher in records:
            if voucher.code == code:
                return voucher
        return None

    async def mark_voucher_redeemed(self, code: str, redeemer_nick: str) -> Voucher:
        """Set the redemption fields of a voucher. Redemption is write-once.

        Raises:
            NotFoundError: Unknown code
            AlreadyRedeemedError: The voucher was redeemed before
            StorageError: The vouchers file cannot be read or written
        """
        async with self.vouchers.lock:
            records = await self.vouchers.load()
            for index, voucher in enumerate(records):
                if voucher.code == code:
                    break
            else:
                raise NotFoundError(f"Voucher {code} not found")

            if voucher.redeemed:
                raise AlreadyRedeemedError(code, voucher.redeemed_by)

            records[index] = voucher.redeem(redeemer_nick)
            await self.vouchers.save(records)

        logger.info(f"Voucher {code} marked redeemed by {redeemer_nick}")
        return records[index]

    async def list_vouchers(self) -> List[Voucher]:
        async with self.vouchers.lock:
            return await self.vouchers.load()
