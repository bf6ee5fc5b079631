"""
cryptofolio/routers/wallet.py

FastAPI router handling Wallet endpoints: CRUD on the user's wallet tree
plus the per-wallet and root-level accounting summaries.
"""

from fastapi import APIRouter, Depends, HTTPException
from typing import Dict, List
from sqlalchemy.orm import Session

from cryptofolio.schemas.wallet import WalletCreate, WalletUpdate, WalletRead
from cryptofolio.services import wallet as wallet_service
from cryptofolio.services import portfolio
from cryptofolio.database import get_db
from cryptofolio.utils.auth import get_current_user
from cryptofolio.utils.serialization import convert_decimal

router = APIRouter(tags=["wallets"])


@router.get("/", response_model=List[WalletRead])
def list_wallets(db: Session = Depends(get_db), user_id: int = Depends(get_current_user)):
    """
    All of the current user's wallets, ordered by sort_order.
    """
    return wallet_service.get_all_wallets(db, user_id)


@router.post("/", response_model=WalletRead, status_code=201)
def create_wallet(wallet: WalletCreate, db: Session = Depends(get_db),
                  user_id: int = Depends(get_current_user)):
    return wallet_service.create_wallet(db, user_id, wallet)


@router.get("/{wallet_id}", response_model=WalletRead)
def get_wallet(wallet_id: int, db: Session = Depends(get_db),
               user_id: int = Depends(get_current_user)):
    return wallet_service.get_wallet_or_404(db, user_id, wallet_id)


@router.put("/{wallet_id}", response_model=WalletRead)
def update_wallet(wallet_id: int, wallet: WalletUpdate, db: Session = Depends(get_db),
                  user_id: int = Depends(get_current_user)):
    """
    Update name, description, parent, sort order or target share.
    Returns 404 if no such wallet exists, 400 if the new parent would
    create a cycle.
    """
    updated = wallet_service.update_wallet(db, user_id, wallet_id, wallet.model_dump(exclude_unset=True))
    if not updated:
        raise HTTPException(status_code=404, detail="Wallet not found.")
    return updated


@router.delete("/{wallet_id}", status_code=204)
def delete_wallet(wallet_id: int, db: Session = Depends(get_db),
                  user_id: int = Depends(get_current_user)):
    """
    Delete an empty wallet. Wallets with sub-wallets or transactions are
    refused with 400.
    """
    if not wallet_service.delete_wallet(db, user_id, wallet_id):
        raise HTTPException(status_code=404, detail="Wallet not found.")
    return


@router.get("/{wallet_id}/accounting-summary")
def get_accounting_summary(wallet_id: int, db: Session = Depends(get_db),
                           user_id: int = Depends(get_current_user)) -> Dict:
    """
    Budget, invested capital, realized/unrealized P&L and cash for one wallet.
    The budget is the wallet's target_pct of its root wallet's net deposits.
    """
    return convert_decimal(portfolio.get_accounting_summary(db, user_id, wallet_id))


@router.get("/{wallet_id}/root-summary")
def get_root_summary(wallet_id: int, db: Session = Depends(get_db),
                     user_id: int = Depends(get_current_user)) -> Dict:
    """
    Deposits and totals for a root wallet, with one row per sub-wallet.
    400 if the wallet has a parent.
    """
    return convert_decimal(portfolio.get_root_summary(db, user_id, wallet_id))
