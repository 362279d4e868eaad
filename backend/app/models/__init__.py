"""Ledger record models"""
from app.models.transaction import Transaction, TransactionDraft, TransactionStatus
from app.models.voucher import Voucher

# Export all for convenience
__all__ = [
    "Transaction", "TransactionDraft", "TransactionStatus", "Voucher"
]
