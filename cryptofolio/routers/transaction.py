"""
cryptofolio/routers/transaction.py

Router for Transaction endpoints. Rows are stored as entered; the accounting
engine derives positions from them on read, so create/update/delete need no
follow-up recalculation here.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional
from sqlalchemy.orm import Session

from cryptofolio.schemas.transaction import (
    TransactionCreate,
    TransactionUpdate,
    TransactionRead
)
from cryptofolio.services import transaction as tx_service
from cryptofolio.database import get_db
from cryptofolio.utils.auth import get_current_user

router = APIRouter(tags=["transactions"])


@router.get("/", response_model=List[TransactionRead])
def list_transactions(
    wallet_id: Optional[int] = Query(None),
    include_descendants: bool = Query(False),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user),
):
    """
    List transactions newest first, optionally for one wallet (and its
    sub-wallets).
    """
    scope = tx_service.get_wallet_scope(db, user_id, wallet_id, include_descendants)
    return tx_service.get_transactions(db, user_id, scope, newest_first=True)


@router.post("/", response_model=TransactionRead, status_code=201)
def create_transaction(tx: TransactionCreate, db: Session = Depends(get_db),
                       user_id: int = Depends(get_current_user)):
    """
    Record a new ledger row. OPEN/CLOSE aliases are stored as given and
    resolved to BUY/SELL by the engine according to direction.
    """
    return tx_service.create_transaction_record(db, user_id, tx)


@router.delete("/delete_all")
def delete_all_transactions_endpoint(db: Session = Depends(get_db),
                                     user_id: int = Depends(get_current_user)):
    """
    Delete all of the current user's transactions.
    """
    deleted_count = tx_service.delete_all_transactions(db, user_id)
    return {"deleted_count": deleted_count}


@router.get("/{transaction_id}", response_model=TransactionRead)
def get_transaction(transaction_id: int, db: Session = Depends(get_db),
                    user_id: int = Depends(get_current_user)):
    tx = tx_service.get_transaction_by_id(db, user_id, transaction_id)
    if not tx:
        raise HTTPException(status_code=404, detail="Transaction not found.")
    return tx


@router.put("/{transaction_id}", response_model=TransactionRead)
def update_transaction(transaction_id: int, tx: TransactionUpdate, db: Session = Depends(get_db),
                       user_id: int = Depends(get_current_user)):
    updated_tx = tx_service.update_transaction_record(
        db, user_id, transaction_id, tx.model_dump(exclude_unset=True)
    )
    if not updated_tx:
        raise HTTPException(status_code=404, detail="Transaction not found.")
    return updated_tx


@router.delete("/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: int, db: Session = Depends(get_db),
                       user_id: int = Depends(get_current_user)):
    if not tx_service.delete_transaction_record(db, user_id, transaction_id):
        raise HTTPException(status_code=404, detail="Transaction not found.")
    return
