"""Transaction ledger record"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field


class TransactionStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PROCESSING

    def can_transition_to(self, new_status: "TransactionStatus") -> bool:
        """Only processing -> completed and processing -> failed are allowed"""
        return self is TransactionStatus.PROCESSING and new_status.is_terminal


class TransactionDraft(BaseModel):
    """Fields supplied by a payment webhook"""
    transaction_id: str
    minecraft_nick: str
    item_type: str
    quantity: int = Field(default=1, ge=1)
    amount: Optional[Union[float, str]] = None
    payer_email: Optional[str] = None


class Transaction(TransactionDraft):
    """Payment fulfillment audit record"""
    status: TransactionStatus = TransactionStatus.PROCESSING
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    commands_sent: int = 0  # commands acknowledged by the server
    error: Optional[str] = None  # failure cause, kept for manual reconciliation
