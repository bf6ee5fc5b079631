"""
Session-based auth helpers.

Login stores the user's id in the signed session cookie (starlette
SessionMiddleware); protected routes depend on get_current_user().
"""

from fastapi import HTTPException, Request

SESSION_USER_KEY = "user_id"


def login_session(request: Request, user_id: int) -> None:
    request.session[SESSION_USER_KEY] = user_id


def logout_session(request: Request) -> None:
    request.session.clear()


def get_current_user(request: Request) -> int:
    """
    FastAPI dependency. Returns the logged-in user's id, or raises 401.
    """
    user_id = request.session.get(SESSION_USER_KEY)
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user_id
