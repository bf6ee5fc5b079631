"""
cryptofolio/models/transaction.py

A single ledger row as entered by the user. The accounting engine reads these
rows as-is and derives lots and positions on every request; nothing derived
is stored back.

Field meanings by action:
 - BUY/SELL: quantity of `ticker` at `price` per unit in `price_currency`
 - DEPOSIT/WITHDRAWAL/AIRDROP: quantity of `ticker` moved in or out
 - SWAP: `from_ticker` paid, `to_ticker` received; quantity is the amount
   received and price the amount of `from_ticker` paid per unit received
 - direction/leverage: LONG or SHORT, leverage > 1 for margin trades
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Numeric, ForeignKey
from sqlalchemy.orm import relationship

from cryptofolio.database import Base, UTCDateTime


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    wallet_id = Column(Integer, ForeignKey("wallets.id"), nullable=True, index=True)

    date = Column(UTCDateTime, nullable=False, index=True, doc="Execution time (UTC); replay order key.")

    action = Column(String(16), nullable=False, doc="BUY, SELL, DEPOSIT, WITHDRAWAL, SWAP, AIRDROP, FEE.")

    ticker = Column(String(32), nullable=False)

    quantity = Column(Numeric(28, 10), nullable=False, default=0)

    price = Column(Numeric(28, 10), nullable=True, doc="Quote amount per unit, in price_currency.")

    price_currency = Column(String(16), nullable=True, default="USDT")

    fees = Column(Numeric(28, 10), nullable=True, default=0)

    fees_currency = Column(String(16), nullable=True, default="USDT")

    from_ticker = Column(String(32), nullable=True, doc="SWAP only: asset paid.")

    to_ticker = Column(String(32), nullable=True, doc="SWAP only: asset received.")

    direction = Column(String(8), nullable=False, default="LONG")

    leverage = Column(Numeric(10, 4), nullable=True)

    exchange = Column(String(64), nullable=True)

    notes = Column(String, nullable=True)

    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    wallet = relationship("Wallet", back_populates="transactions")

    def __repr__(self):
        return (
            f"<Transaction(id={self.id}, date={self.date}, action={self.action}, "
            f"ticker={self.ticker}, quantity={self.quantity}, wallet_id={self.wallet_id})>"
        )
