"""
cryptofolio/schemas/wallet.py

Pydantic schemas for creating, updating, and reading Wallets.
target_pct is the wallet's share (0-100) of its root wallet's deposits.
"""

from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, field_validator
from typing import Optional


class WalletBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    parent_wallet_id: Optional[int] = None
    sort_order: int = 0
    target_pct: Optional[Decimal] = Field(default=None, ge=0, le=100)

    @field_validator("name")
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be blank.")
        return v


class WalletCreate(WalletBase):
    pass


class WalletUpdate(BaseModel):
    """
    All fields optional. Sending parent_wallet_id: null explicitly moves the
    wallet to the top level; leaving it out keeps the current parent.
    """
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    parent_wallet_id: Optional[int] = None
    sort_order: Optional[int] = None
    target_pct: Optional[Decimal] = Field(default=None, ge=0, le=100)


class WalletRead(WalletBase):
    id: int
    user_id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
