"""
cryptofolio/services/user.py

Handles user-level operations (lookup, create, update, delete, authenticate).
"""

import logging
from sqlalchemy.orm import Session
from fastapi import HTTPException

from cryptofolio.models.user import User
from cryptofolio.models.transaction import Transaction
from cryptofolio.schemas.user import UserCreate, UserUpdate

logger = logging.getLogger(__name__)


def get_user_by_id(user_id: int, db: Session) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_username(username: str, db: Session) -> User | None:
    return db.query(User).filter(User.username == username).first()


def create_user(user_data: UserCreate, db: Session) -> User:
    """
    Create a new User record with a bcrypt-hashed password.
    Raises 409 if the username is taken.
    """
    if get_user_by_username(user_data.username, db):
        raise HTTPException(status_code=409, detail="Username already registered")

    account = User(username=user_data.username)
    try:
        account.set_password(user_data.password)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    db.add(account)
    db.commit()
    db.refresh(account)
    logger.info(f"Registered user id={account.id} username={account.username}")
    return account


def update_user(user_id: int, user_data: UserUpdate, db: Session) -> User | None:
    """
    Update username and/or password. Returns None if the user does not exist.
    """
    db_user = get_user_by_id(user_id, db)
    if not db_user:
        return None

    if user_data.username is not None:
        other = get_user_by_username(user_data.username, db)
        if other and other.id != user_id:
            raise HTTPException(status_code=409, detail="Username already registered")
        db_user.username = user_data.username
    if user_data.password:
        try:
            db_user.set_password(user_data.password)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

    db.commit()
    db.refresh(db_user)
    return db_user


def delete_user(user_id: int, db: Session) -> bool:
    """
    Delete a user with their transactions and wallets.
    """
    db_user = get_user_by_id(user_id, db)
    if db_user:
        db.query(Transaction).filter(Transaction.user_id == user_id).delete(synchronize_session=False)
        db.delete(db_user)
        db.commit()
        return True
    return False


def authenticate(username: str, password: str, db: Session) -> User | None:
    """
    Return the user when the credentials match, else None. Callers should not
    reveal which part was wrong.
    """
    user = get_user_by_username(username, db)
    if not user or not user.verify_password(password):
        logger.debug(f"Failed login attempt for username={username}")
        return None
    return user
