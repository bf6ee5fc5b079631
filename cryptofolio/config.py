"""
cryptofolio/config.py

Central runtime settings, read once from the environment (and a .env file at
the project root). Other modules import these values instead of calling
os.getenv themselves, so the stable-ticker allowlist in particular is defined
in exactly one place and handed to the accounting engine as an input.
"""

import os
import secrets
from dotenv import load_dotenv

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(BASE_DIR)

load_dotenv(dotenv_path=os.path.join(PROJECT_ROOT, ".env"))


def _split_env(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# ---------------------------------------------------------
# Database
# ---------------------------------------------------------
# DATABASE_FILE may be absolute or relative to the project root.
_db_file = os.getenv("DATABASE_FILE", os.path.join("cryptofolio", "cryptofolio.db"))
DATABASE_FILE = _db_file if os.path.isabs(_db_file) else os.path.join(PROJECT_ROOT, _db_file)
os.makedirs(os.path.dirname(DATABASE_FILE), exist_ok=True)

DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATABASE_FILE}")

# ---------------------------------------------------------
# Session / CORS
# ---------------------------------------------------------
SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)

DEFAULT_ORIGINS = (
    "http://127.0.0.1:3000,"
    "http://localhost:3000,"
    "http://127.0.0.1:5173,"
    "http://localhost:5173"
)
ALLOWED_ORIGINS = _split_env("CORS_ALLOW_ORIGINS", DEFAULT_ORIGINS)

# ---------------------------------------------------------
# Accounting
# ---------------------------------------------------------
# Tickers valued 1:1 against USD. Fiat is treated as USD-equivalent.
DEFAULT_STABLE_TICKERS = "USD,USDT,USDC,DAI,BUSD,TUSD,USDP,GUSD,EUR,GBP,CHF"
STABLE_TICKERS = frozenset(
    t.upper() for t in _split_env("STABLE_TICKERS", DEFAULT_STABLE_TICKERS)
)

# ---------------------------------------------------------
# Price feed (LiveCoinWatch)
# ---------------------------------------------------------
LCW_API_KEY = os.getenv("LCW_API_KEY", "")
LCW_BASE_URL = os.getenv("LCW_BASE_URL", "https://api.livecoinwatch.com")
PRICE_REFRESH_BATCH = int(os.getenv("PRICE_REFRESH_BATCH", "100"))

# ---------------------------------------------------------
# Logging
# ---------------------------------------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
