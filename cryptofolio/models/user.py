"""
cryptofolio/models/user.py

Represents a user of Cryptofolio. Each user owns a tree of Wallets and the
Transactions recorded in them; every query in the service layer is scoped
by user_id.
"""

from __future__ import annotations
from typing import List, TYPE_CHECKING
import bcrypt
from sqlalchemy import Integer, String
from sqlalchemy.orm import relationship, Mapped, mapped_column
from cryptofolio.database import Base

if TYPE_CHECKING:
    from cryptofolio.models.wallet import Wallet


class User(Base):
    """Login account. Owns wallets; transactions hang off user_id directly."""

    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    wallets: Mapped[List[Wallet]] = relationship(
        "Wallet",
        back_populates="user",
        cascade="all, delete-orphan",
        doc="All wallets owned by this user."
    )

    def set_password(self, password: str) -> None:
        """
        Hash and store the user's password with bcrypt.
        bcrypt only reads the first 72 bytes, so longer passwords are refused.
        """
        encoded = password.encode("utf-8")
        if len(encoded) > 72:
            raise ValueError("Password cannot exceed 72 bytes.")
        self.password_hash = bcrypt.hashpw(encoded, bcrypt.gensalt()).decode("utf-8")

    def verify_password(self, password: str) -> bool:
        if not password or not self.password_hash:
            return False
        encoded = password.encode("utf-8")
        if len(encoded) > 72:
            return False
        try:
            return bcrypt.checkpw(encoded, self.password_hash.encode("utf-8"))
        except ValueError:
            # Malformed hash in the database
            return False

    def __repr__(self) -> str:
        return f"<User {self.id} {self.username!r}>"
