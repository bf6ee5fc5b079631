"""
cryptofolio/main.py

FastAPI entry point for Cryptofolio, a personal crypto portfolio tracker
built around an average-cost position accounting engine.

Wires together logging, the session cookie, CORS for the web frontend,
the resource routers and the login/logout endpoints.

Run with: uvicorn cryptofolio.main:app --reload
"""

import logging
from fastapi import FastAPI, Request, Depends, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware
from sqlalchemy.orm import Session

from cryptofolio import config
from cryptofolio.database import create_tables, get_db
from cryptofolio.routers import transaction, user, wallet, calculation, prices
from cryptofolio.schemas.user import LoginRequest
from cryptofolio.services.user import authenticate
from cryptofolio.utils.auth import login_session, logout_session

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------
# App
# ---------------------------------------------------------
app = FastAPI(
    title="Cryptofolio API",
    description=(
        "Personal crypto portfolio tracker: wallets, transactions, average-cost "
        "positions and realized/unrealized P&L. Session-based auth."
    ),
    version="1.0",
    redirect_slashes=True,
)

# ---------------------------------------------------------
# Middleware
# ---------------------------------------------------------
app.add_middleware(
    SessionMiddleware,
    secret_key=config.SECRET_KEY,
    session_cookie="cryptofolio_session",
    https_only=False,  # plain HTTP for local use
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------
# Startup
# ---------------------------------------------------------
@app.on_event("startup")
def on_startup():
    """Create any missing tables. Existing rows are left alone."""
    create_tables()
    logger.info(f"Stable tickers: {', '.join(sorted(config.STABLE_TICKERS))}")


# ---------------------------------------------------------
# Routers
# ---------------------------------------------------------
app.include_router(transaction.router, prefix="/api/transactions", tags=["transactions"])
app.include_router(user.router, prefix="/api/users", tags=["users"])
app.include_router(wallet.router, prefix="/api/wallets", tags=["wallets"])
app.include_router(calculation.router, prefix="/api/calculations", tags=["calculations"])
app.include_router(prices.router, prefix="/api/prices", tags=["prices"])


# ---------------------------------------------------------
# Login / Logout
# ---------------------------------------------------------
@app.post("/api/login")
def login(login_req: LoginRequest, request: Request, db: Session = Depends(get_db)):
    """Check the credentials against the bcrypt hash and put the user id in the session."""
    found = authenticate(login_req.username, login_req.password, db)
    if not found:
        # same message for unknown user and bad password
        raise HTTPException(status_code=401, detail="Invalid username or password.")
    login_session(request, found.id)
    return {"detail": f"Logged in as {found.username}"}


@app.post("/api/logout")
def logout(request: Request):
    """Drop the session cookie contents."""
    logout_session(request)
    return {"detail": "Logged out"}


@app.get("/")
def read_root():
    """Liveness check."""
    return {"message": "Welcome to Cryptofolio"}
