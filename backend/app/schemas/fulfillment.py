"""Pydantic schemas for payment and voucher endpoints"""
from typing import Optional, Union

from pydantic import BaseModel, Field


class PaymentWebhookRequest(BaseModel):
    transaction_id: str = Field(min_length=1)
    minecraft_nick: str = Field(min_length=1)
    item_type: str
    quantity: int = 1
    amount: Optional[Union[float, str]] = None
    payer_email: Optional[str] = None
    details: Optional[dict] = None  # raw provider payload, not stored


class RedeemVoucherRequest(BaseModel):
    minecraft_nick: str = Field(min_length=1)
    voucher_code: str = Field(min_length=1)


class CreateVoucherRequest(BaseModel):
    item_type: str
    quantity: Optional[int] = None  # defaults to 1
    admin_key: Optional[str] = None
