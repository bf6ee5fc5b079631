# FILE: cryptofolio/services/transaction.py

"""
cryptofolio/services/transaction.py

CRUD for ledger transactions. Rows are stored exactly as entered; positions,
cost basis and P&L are never persisted but recomputed by the accounting
engine from the full list on every request, so editing or back-dating a row
needs no follow-up work here.
"""

import logging
from typing import Iterable, List, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from cryptofolio.models.transaction import Transaction
from cryptofolio.schemas.transaction import TransactionCreate, TxAction
from cryptofolio.services import wallet as wallet_service

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------------------
# Queries
# ------------------------------------------------------------------------------
def get_transactions(
    db: Session,
    user_id: int,
    wallet_ids: Optional[Iterable[int]] = None,
    newest_first: bool = False,
) -> List[Transaction]:
    """
    Return a user's transactions in replay order (date, then id), optionally
    restricted to a set of wallets.
    """
    query = db.query(Transaction).filter(Transaction.user_id == user_id)
    if wallet_ids is not None:
        query = query.filter(Transaction.wallet_id.in_(list(wallet_ids)))
    if newest_first:
        query = query.order_by(Transaction.date.desc(), Transaction.id.desc())
    else:
        query = query.order_by(Transaction.date.asc(), Transaction.id.asc())
    return query.all()


def get_wallet_scope(db: Session, user_id: int, wallet_id: Optional[int], include_descendants: bool) -> Optional[List[int]]:
    """
    Wallet ids to filter on: None (all wallets) when wallet_id is None,
    otherwise the wallet itself plus, optionally, everything below it.
    """
    if wallet_id is None:
        return None
    wallet_service.get_wallet_or_404(db, user_id, wallet_id)
    scope = [wallet_id]
    if include_descendants:
        scope.extend(wallet_service.get_descendant_ids(db, user_id, wallet_id))
    return scope


def get_transaction_by_id(db: Session, user_id: int, transaction_id: int) -> Optional[Transaction]:
    return (
        db.query(Transaction)
        .filter(Transaction.id == transaction_id, Transaction.user_id == user_id)
        .first()
    )


# ------------------------------------------------------------------------------
# Mutations
# ------------------------------------------------------------------------------
def _check_wallet(db: Session, user_id: int, wallet_id: Optional[int]) -> None:
    if wallet_id is not None and not wallet_service.get_wallet_by_id(db, user_id, wallet_id):
        raise HTTPException(status_code=400, detail=f"Wallet {wallet_id} not found.")


def _enforce_swap_legs(tx: Transaction) -> None:
    if tx.action == TxAction.SWAP.value and (not tx.from_ticker or not tx.to_ticker):
        raise HTTPException(status_code=400, detail="SWAP requires both from_ticker and to_ticker.")


def create_transaction_record(db: Session, user_id: int, tx_data: TransactionCreate) -> Transaction:
    _check_wallet(db, user_id, tx_data.wallet_id)
    values = tx_data.model_dump()
    values["action"] = tx_data.action.value
    values["direction"] = tx_data.direction.value
    new_tx = Transaction(user_id=user_id, **values)
    db.add(new_tx)
    db.commit()
    db.refresh(new_tx)
    logger.info(
        f"Created transaction id={new_tx.id} {new_tx.action} {new_tx.quantity} {new_tx.ticker} "
        f"wallet={new_tx.wallet_id}"
    )
    return new_tx


def update_transaction_record(db: Session, user_id: int, transaction_id: int, tx_data: dict) -> Optional[Transaction]:
    """
    Apply a partial update (exclude_unset dump of TransactionUpdate).
    Returns None if the transaction does not exist.
    """
    tx = get_transaction_by_id(db, user_id, transaction_id)
    if not tx:
        return None
    if "wallet_id" in tx_data:
        _check_wallet(db, user_id, tx_data["wallet_id"])
    for field, value in tx_data.items():
        if field in ("action", "direction") and value is not None:
            value = value.value if hasattr(value, "value") else value
        if value is None and field in ("date", "action", "ticker", "quantity", "direction"):
            raise HTTPException(status_code=400, detail=f"'{field}' cannot be cleared.")
        setattr(tx, field, value)
    _enforce_swap_legs(tx)
    db.commit()
    db.refresh(tx)
    logger.info(f"Updated transaction id={tx.id}: {sorted(tx_data)}")
    return tx


def delete_transaction_record(db: Session, user_id: int, transaction_id: int) -> bool:
    tx = get_transaction_by_id(db, user_id, transaction_id)
    if not tx:
        return False
    db.delete(tx)
    db.commit()
    return True


def delete_all_transactions(db: Session, user_id: int) -> int:
    """
    Bulk cleanup: remove all of a user's transactions.
    Return how many were deleted.
    """
    count = (
        db.query(Transaction)
        .filter(Transaction.user_id == user_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info(f"Deleted {count} transactions for user {user_id}")
    return count
