"""Exceptions for reward fulfillment."""
from typing import Optional


class FulfillmentError(Exception):
    """Base exception for fulfillment errors."""
    pass


class ValidationError(FulfillmentError):
    """Request data is malformed or refers to an unknown reward."""
    pass


class UnknownItemTypeError(ValidationError):
    """Item type has no command mapping."""

    def __init__(self, item_type: str):
        self.item_type = item_type
        super().__init__(f"Unknown item type: {item_type!r}")


class UnauthorizedError(FulfillmentError):
    """Administrative credential did not match."""
    pass


class NotFoundError(FulfillmentError):
    """Transaction or voucher does not exist."""
    pass


class AlreadyRedeemedError(FulfillmentError):
    """Voucher has already been redeemed."""

    def __init__(self, code: str, redeemed_by: Optional[str] = None):
        self.code = code
        self.redeemed_by = redeemed_by
        super().__init__(f"Voucher {code} already redeemed by {redeemed_by}")


class StorageError(FulfillmentError):
    """Ledger file could not be read or written."""
    pass


class DuplicateTransactionError(FulfillmentError):
    """A transaction with this id is already recorded."""
    pass


class InvalidTransitionError(FulfillmentError):
    """Transaction status change is not allowed."""
    pass


class DispatchError(FulfillmentError):
    """A command sent over RCON failed or was not acknowledged.

    Attributes:
        command: The command that failed
        cause: Short cause ('timeout', 'connection', 'send', 'rejected') or
            the underlying exception text
        succeeded: Number of commands of the same reward that were applied
            before the failure
    """

    def __init__(self, command: str, cause: str, succeeded: int = 0):
        self.command = command
        self.cause = cause
        self.succeeded = succeeded
        super().__init__(f"Command {command!r} failed: {cause}")
