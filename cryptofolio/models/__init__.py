# cryptofolio/models/__init__.py

"""
Centralizes model imports so Base.metadata knows every table as soon as the
models package is imported.
"""

from cryptofolio.database import Base

from .user import User

from .wallet import Wallet

from .transaction import Transaction

from .price import PriceCache
