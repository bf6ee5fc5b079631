"""
cryptofolio/services/wallet.py

Manages creation, update, deletion, and retrieval of Wallets, plus the
hierarchy helpers used by the summaries:
 - get_descendant_ids(): every wallet below a given one (graph traversal)
 - find_root(): walk parent links up to the top-level wallet

All functions are scoped to one user; a wallet id belonging to someone else
behaves exactly like a missing one (404).
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session
from fastapi import HTTPException

from cryptofolio.models.wallet import Wallet
from cryptofolio.models.transaction import Transaction
from cryptofolio.schemas.wallet import WalletCreate
from cryptofolio.services.accounting.aggregator import collect_descendants

logger = logging.getLogger(__name__)


def get_all_wallets(db: Session, user_id: int) -> List[Wallet]:
    return (
        db.query(Wallet)
        .filter(Wallet.user_id == user_id)
        .order_by(Wallet.sort_order, Wallet.id)
        .all()
    )


def get_wallet_by_id(db: Session, user_id: int, wallet_id: int) -> Optional[Wallet]:
    return (
        db.query(Wallet)
        .filter(Wallet.id == wallet_id, Wallet.user_id == user_id)
        .first()
    )


def get_wallet_or_404(db: Session, user_id: int, wallet_id: int) -> Wallet:
    wallet = get_wallet_by_id(db, user_id, wallet_id)
    if not wallet:
        raise HTTPException(status_code=404, detail="Wallet not found.")
    return wallet


def get_parent_map(db: Session, user_id: int) -> Dict[int, Optional[int]]:
    rows = db.query(Wallet.id, Wallet.parent_wallet_id).filter(Wallet.user_id == user_id).all()
    return {row.id: row.parent_wallet_id for row in rows}


def get_descendant_ids(db: Session, user_id: int, wallet_id: int) -> List[int]:
    """Ids of all wallets below `wallet_id`, breadth first, root excluded."""
    return collect_descendants(get_parent_map(db, user_id), wallet_id)


def find_root(db: Session, user_id: int, wallet_id: int) -> Wallet:
    """
    Follow parent links to the top-level wallet. Stops at the last wallet
    reached if the links loop back on themselves.
    """
    parent_of = get_parent_map(db, user_id)
    if wallet_id not in parent_of:
        raise HTTPException(status_code=404, detail="Wallet not found.")
    current = wallet_id
    seen = {current}
    while parent_of.get(current) is not None:
        parent = parent_of[current]
        if parent in seen or parent not in parent_of:
            logger.warning(f"Wallet {wallet_id} has a broken parent chain at {current}")
            break
        seen.add(parent)
        current = parent
    return get_wallet_or_404(db, user_id, current)


def _validate_parent(db: Session, user_id: int, wallet_id: Optional[int], parent_id: Optional[int]) -> None:
    if parent_id is None:
        return
    if not get_wallet_by_id(db, user_id, parent_id):
        raise HTTPException(status_code=400, detail="Parent wallet not found.")
    if wallet_id is None:
        return
    if parent_id == wallet_id:
        raise HTTPException(status_code=400, detail="A wallet cannot be its own parent.")
    if parent_id in get_descendant_ids(db, user_id, wallet_id):
        raise HTTPException(status_code=400, detail="A wallet cannot be moved under its own descendant.")


def create_wallet(db: Session, user_id: int, wallet_data: WalletCreate) -> Wallet:
    _validate_parent(db, user_id, None, wallet_data.parent_wallet_id)
    new_wallet = Wallet(user_id=user_id, **wallet_data.model_dump())
    db.add(new_wallet)
    db.commit()
    db.refresh(new_wallet)
    logger.info(f"Created wallet id={new_wallet.id} name={new_wallet.name} for user {user_id}")
    return new_wallet


def update_wallet(db: Session, user_id: int, wallet_id: int, wallet_data: dict) -> Optional[Wallet]:
    """
    Apply only the fields present in `wallet_data` (exclude_unset dump).
    Returns None if the wallet does not exist.
    """
    wallet = get_wallet_by_id(db, user_id, wallet_id)
    if not wallet:
        return None
    if "parent_wallet_id" in wallet_data:
        _validate_parent(db, user_id, wallet_id, wallet_data["parent_wallet_id"])
    if "name" in wallet_data and not (wallet_data["name"] or "").strip():
        raise HTTPException(status_code=400, detail="Wallet name cannot be blank.")
    for field, value in wallet_data.items():
        setattr(wallet, field, value)
    db.commit()
    db.refresh(wallet)
    return wallet


def delete_wallet(db: Session, user_id: int, wallet_id: int) -> bool:
    """
    Delete a wallet with no sub-wallets and no transactions.
    Returns False if the wallet does not exist.
    """
    wallet = get_wallet_by_id(db, user_id, wallet_id)
    if not wallet:
        return False
    has_children = db.query(Wallet.id).filter(Wallet.parent_wallet_id == wallet_id).first()
    if has_children:
        raise HTTPException(status_code=400, detail="Wallet has sub-wallets; move or delete them first.")
    has_transactions = db.query(Transaction.id).filter(Transaction.wallet_id == wallet_id).first()
    if has_transactions:
        raise HTTPException(status_code=400, detail="Wallet has transactions; delete or move them first.")
    db.delete(wallet)
    db.commit()
    return True
