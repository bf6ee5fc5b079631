"""
cryptofolio/schemas/price.py

Schemas for the price cache.
"""

from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field
from typing import List, Optional


class PriceUpdate(BaseModel):
    price_usd: Decimal = Field(ge=0)


class PriceRead(BaseModel):
    ticker: str
    price_usd: Decimal
    source: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PriceRefreshResult(BaseModel):
    requested: int
    updated: int
    errors: List[str] = []
