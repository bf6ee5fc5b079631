"""
cryptofolio/models/wallet.py

Defines the Wallet model. Wallets form a tree per user: a root wallet
(parent_wallet_id is NULL) receives the stable deposits, and its
sub-wallets each claim a target_pct share of that capital as their budget.

User => One-to-many => Wallet
Wallet => One-to-many => Wallet (children)
Wallet => One-to-many => Transaction
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Numeric, ForeignKey
from sqlalchemy.orm import relationship

from cryptofolio.database import Base, UTCDateTime


class Wallet(Base):
    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    name = Column(String(255), nullable=False)

    description = Column(String, nullable=True)

    parent_wallet_id = Column(
        Integer,
        ForeignKey("wallets.id"),
        nullable=True,
        index=True,
        doc="Parent wallet; NULL for a root wallet."
    )

    sort_order = Column(Integer, nullable=False, default=0)

    target_pct = Column(
        Numeric(7, 4),
        nullable=True,
        doc="Share (0-100) of the root wallet's net deposits allocated to this wallet."
    )

    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    # ---------------------------------------------------------------------
    # Relationships
    # ---------------------------------------------------------------------
    user = relationship("User", back_populates="wallets")

    parent = relationship("Wallet", remote_side=[id], back_populates="children")

    children = relationship(
        "Wallet",
        back_populates="parent",
        order_by="Wallet.sort_order",
        doc="Direct sub-wallets."
    )

    transactions = relationship(
        "Transaction",
        back_populates="wallet",
        doc="Transactions recorded in this wallet."
    )

    def __repr__(self):
        return (
            f"<Wallet(id={self.id}, user_id={self.user_id}, name={self.name}, "
            f"parent_wallet_id={self.parent_wallet_id})>"
        )
