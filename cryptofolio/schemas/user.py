"""
cryptofolio/schemas/user.py

Defines the Pydantic schemas for user creation, update, read and login.
The client sends a raw 'password'; hashing happens in the service layer.
"""

from pydantic import BaseModel, Field
from typing import Optional


class UserBase(BaseModel):
    """
    Shared user fields. 'username' is the primary unique identifier.
    """
    username: str = Field(min_length=1, max_length=255)


class UserCreate(UserBase):
    password: str = Field(min_length=1)


class UserUpdate(BaseModel):
    """
    If 'password' is provided, it will be hashed before saving.
    """
    username: Optional[str] = None
    password: Optional[str] = None


class UserRead(UserBase):
    id: int

    class Config:
        from_attributes = True


class LoginRequest(BaseModel):
    """
    Schema for login JSON:
      { "username": "someName", "password": "somePass" }
    """
    username: str
    password: str
