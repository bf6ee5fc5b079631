# FILE: cryptofolio/routers/user.py

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from cryptofolio.schemas.user import UserCreate, UserRead, UserUpdate
from cryptofolio.services.user import (
    create_user,
    get_user_by_id,
    update_user as update_user_service,
    delete_user as delete_user_service
)
from cryptofolio.database import get_db
from cryptofolio.utils.auth import get_current_user, logout_session

router = APIRouter(tags=["users"])


@router.post("/register", response_model=UserRead, status_code=201)
def register_user(user: UserCreate, db: Session = Depends(get_db)):
    """
    Register a new user: POST /api/users/register
    Returns 409 if the username is taken.
    """
    return create_user(user, db)


@router.get("/me", response_model=UserRead)
def read_current_user(db: Session = Depends(get_db), user_id: int = Depends(get_current_user)):
    user = get_user_by_id(user_id, db)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.patch("/me", response_model=UserRead)
def patch_current_user(user_data: UserUpdate, db: Session = Depends(get_db),
                       user_id: int = Depends(get_current_user)):
    """
    Change the current user's username and/or password.
    """
    updated_user = update_user_service(user_id, user_data, db)
    if not updated_user:
        raise HTTPException(status_code=404, detail="User not found.")
    return updated_user


@router.delete("/me", status_code=204)
def delete_current_user(request: Request, db: Session = Depends(get_db),
                        user_id: int = Depends(get_current_user)):
    """
    Delete the current user and their wallets, then clear the session.
    """
    if not delete_user_service(user_id, db):
        raise HTTPException(status_code=404, detail="User not found.")
    logout_session(request)
    return
