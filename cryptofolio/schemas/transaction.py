"""
cryptofolio/schemas/transaction.py

Pydantic v2 schemas for ledger transactions.

- TransactionCreate: used for creation; tickers/currencies upper-cased,
  quantities and fees non-negative, leverage >= 1, SWAP legs required
- TransactionUpdate: partial update, same field validation
- TransactionRead: output, includes 'id', 'user_id', timestamps
"""

from enum import Enum
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional
from datetime import datetime, timezone
from decimal import Decimal


class TxAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    SWAP = "SWAP"
    AIRDROP = "AIRDROP"
    FEE = "FEE"
    OPEN = "OPEN"
    CLOSE = "CLOSE"


class Direction(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


def _upper_or_none(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip().upper()
    return v or None


def _force_utc(v: Optional[datetime]) -> Optional[datetime]:
    if v is None:
        return None
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


class TransactionBase(BaseModel):
    """
    Shared fields for a transaction. `action` and `direction` are upper-cased
    before enum validation so "buy"/"short" are accepted.
    """
    date: datetime
    action: TxAction
    ticker: str = Field(min_length=1, max_length=32)
    quantity: Decimal = Field(ge=0)
    price: Optional[Decimal] = Field(default=None, ge=0)
    price_currency: Optional[str] = "USDT"
    fees: Optional[Decimal] = Field(default=Decimal("0"), ge=0)
    fees_currency: Optional[str] = "USDT"
    wallet_id: Optional[int] = None
    from_ticker: Optional[str] = None
    to_ticker: Optional[str] = None
    direction: Direction = Direction.LONG
    leverage: Optional[Decimal] = Field(default=None, ge=1)
    exchange: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("action", "direction", mode="before")
    def upper_enums(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("ticker")
    def ticker_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().upper()
        if not v:
            raise ValueError("ticker cannot be blank.")
        return v

    @field_validator("price_currency", "fees_currency", "from_ticker", "to_ticker")
    def upper_tickers(cls, v: Optional[str]) -> Optional[str]:
        return _upper_or_none(v)

    @field_validator("date")
    def force_utc_date(cls, v: datetime) -> datetime:
        """
        Ensures dates are UTC so replay order is consistent.
        """
        return _force_utc(v)

    @model_validator(mode="before")
    @classmethod
    def swap_ticker_defaults_to_received(cls, data):
        if isinstance(data, dict) and str(data.get("action", "")).upper() == "SWAP" and not data.get("ticker"):
            data = {**data, "ticker": data.get("to_ticker")}
        return data

    @model_validator(mode="after")
    def swap_needs_legs(self):
        if self.action == TxAction.SWAP and (not self.from_ticker or not self.to_ticker):
            raise ValueError("SWAP requires both from_ticker and to_ticker.")
        return self


class TransactionCreate(TransactionBase):
    pass


class TransactionUpdate(BaseModel):
    """
    Schema for partial updates. All fields optional.
    """
    date: Optional[datetime] = None
    action: Optional[TxAction] = None
    ticker: Optional[str] = Field(default=None, min_length=1, max_length=32)
    quantity: Optional[Decimal] = Field(default=None, ge=0)
    price: Optional[Decimal] = Field(default=None, ge=0)
    price_currency: Optional[str] = None
    fees: Optional[Decimal] = Field(default=None, ge=0)
    fees_currency: Optional[str] = None
    wallet_id: Optional[int] = None
    from_ticker: Optional[str] = None
    to_ticker: Optional[str] = None
    direction: Optional[Direction] = None
    leverage: Optional[Decimal] = Field(default=None, ge=1)
    exchange: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("action", "direction", mode="before")
    def upper_enums(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("ticker")
    def ticker_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().upper()
        if not v:
            raise ValueError("ticker cannot be blank.")
        return v

    @field_validator("price_currency", "fees_currency", "from_ticker", "to_ticker")
    def upper_tickers(cls, v: Optional[str]) -> Optional[str]:
        return _upper_or_none(v)

    @field_validator("date")
    def force_utc_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _force_utc(v)


class TransactionRead(BaseModel):
    id: int
    user_id: int
    wallet_id: Optional[int] = None
    date: datetime
    action: str
    ticker: str
    quantity: Decimal
    price: Optional[Decimal] = None
    price_currency: Optional[str] = None
    fees: Optional[Decimal] = None
    fees_currency: Optional[str] = None
    from_ticker: Optional[str] = None
    to_ticker: Optional[str] = None
    direction: str
    leverage: Optional[Decimal] = None
    exchange: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
