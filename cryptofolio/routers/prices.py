from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from cryptofolio.database import get_db
from cryptofolio.schemas.price import PriceRead, PriceUpdate, PriceRefreshResult
from cryptofolio.services import prices as price_service
from cryptofolio.utils.auth import get_current_user

router = APIRouter(tags=["prices"])


@router.get("/", response_model=List[PriceRead])
def list_prices(db: Session = Depends(get_db), user_id: int = Depends(get_current_user)):
    """
    Cached USD prices, one row per ticker.
    """
    return price_service.get_all_prices(db)


@router.put("/{ticker}", response_model=PriceRead)
def set_price(ticker: str, body: PriceUpdate, db: Session = Depends(get_db),
              user_id: int = Depends(get_current_user)):
    """
    Set a price by hand, e.g. for a coin the price feed does not list.
    """
    if not ticker.strip():
        raise HTTPException(status_code=400, detail="Ticker cannot be blank.")
    return price_service.set_price(db, ticker.strip(), body.price_usd)


@router.post("/refresh", response_model=PriceRefreshResult, summary="Refresh prices from LiveCoinWatch")
async def refresh_prices(db: Session = Depends(get_db), user_id: int = Depends(get_current_user)):
    """
    Pull current USD rates for every non-stable ticker in the user's ledger.
    Provider failures are listed in `errors` rather than failing the request.
    """
    return await price_service.refresh_prices(db, user_id)
