"""
cryptofolio/routers/calculation.py

API endpoints for position calculations:
  - closed positions (realized P&L per closing trade, with summary)
  - open positions (average cost, live price, unrealized P&L)
  - portfolio KPIs per root wallet
  - per-exchange stats and detail

The underlying logic is implemented in cryptofolio/services/portfolio.py,
which runs the accounting engine over the requested wallet scope.
"""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from cryptofolio.database import get_db
from cryptofolio.services import portfolio
from cryptofolio.utils.auth import get_current_user
from cryptofolio.utils.serialization import convert_decimal

# main.py sets the final prefix ("/api/calculations") and tags.
router = APIRouter(tags=["calculations"])


@router.get("/closed-positions")
def api_get_closed_positions(
    wallet_id: Optional[int] = Query(None, description="Limit to this wallet"),
    include_descendants: bool = Query(True, description="Include sub-wallets of wallet_id"),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user),
) -> Dict:
    """
    Every partial or full closing trade in scope, newest first, plus
    count / total P&L / win rate and any warnings about skipped rows.
    """
    return convert_decimal(portfolio.get_closed_positions(db, user_id, wallet_id, include_descendants))


@router.get("/open-positions")
def api_get_open_positions(
    wallet_id: Optional[int] = Query(None, description="Limit to this wallet"),
    include_descendants: bool = Query(True, description="Include sub-wallets of wallet_id"),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user),
) -> Dict:
    """
    Open lots with quantity, invested cost, average cost and unrealized P&L
    from the price cache (null when a ticker has no cached price).
    """
    return convert_decimal(portfolio.get_open_positions(db, user_id, wallet_id, include_descendants))


@router.get("/kpis")
def api_get_portfolio_kpis(
    root_id: Optional[int] = Query(None, description="Only this root wallet"),
    root_name: Optional[str] = Query(None, description="Only root wallets with this name"),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user),
) -> Dict:
    """Per-root deposits, invested, realized/unrealized P&L, live balance and fees, with totals."""
    return convert_decimal(portfolio.get_portfolio_kpis(db, user_id, root_id, root_name))


@router.get("/exchanges")
def api_get_exchange_stats(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user),
) -> List[Dict]:
    return convert_decimal(portfolio.get_exchange_stats(db, user_id))


@router.get("/exchanges/{exchange_name}")
def api_get_exchange_detail(
    exchange_name: str = Path(..., min_length=1, max_length=200),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user),
) -> Dict:
    """Stats for one exchange plus its open tokens and latest movements."""
    return convert_decimal(portfolio.get_exchange_detail(db, user_id, exchange_name))
