"""
cryptofolio/models/price.py

Last known USD price per ticker, filled by the price refresh job or set by
hand. Used only for unrealized P&L; the accounting engine never reads it.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, String, Numeric

from cryptofolio.database import Base, UTCDateTime


class PriceCache(Base):
    __tablename__ = "price_cache"

    ticker = Column(String(32), primary_key=True)

    price_usd = Column(Numeric(28, 10), nullable=False)

    source = Column(String(32), nullable=True, doc="e.g. 'livecoinwatch' or 'manual'.")

    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self):
        return f"<PriceCache(ticker={self.ticker}, price_usd={self.price_usd})>"
