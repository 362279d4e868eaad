"""Voucher ledger record"""
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class Voucher(BaseModel):
    """Single-use reward code"""
    code: str
    item_type: str
    quantity: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    redeemed: bool = False
    redeemed_by: Optional[str] = None
    redeemed_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_redemption_fields(self):
        # An unredeemed voucher carries no redeemer and no redemption time
        if not self.redeemed and (self.redeemed_by is not None or self.redeemed_at is not None):
            raise ValueError(f"Voucher {self.code} is not redeemed but has redemption fields set")
        return self

    def redeem(self, nick: str) -> "Voucher":
        """Return a redeemed copy of this voucher"""
        return self.model_copy(update={
            "redeemed": True,
            "redeemed_by": nick,
            "redeemed_at": datetime.now(timezone.utc),
        })
