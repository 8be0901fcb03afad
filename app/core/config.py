import os
from dotenv import load_dotenv

load_dotenv()

# -----------------------
# Database Config
# -----------------------
DB_TYPE = os.getenv("DB_TYPE", "sqlite").lower()

if DB_TYPE == "postgres":
    DATABASE_URL = os.getenv("DATABASE_URL")
    if not DATABASE_URL:
        raise ValueError("DATABASE_URL is required for Postgres setup")
elif DB_TYPE == "sqlite":
    SQLITE_PATH = os.getenv("SQLITE_PATH", "./procurement.db")
    DATABASE_URL = f"sqlite+aiosqlite:///{SQLITE_PATH}"
else:
    raise ValueError(f"Unsupported DB_TYPE: {DB_TYPE}")

# -----------------------
# JWT Config
# -----------------------
JWT_SECRET = os.getenv("JWT_SECRET")
if not JWT_SECRET:
    raise ValueError("JWT_SECRET environment variable must be set")

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
OWNER_ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("OWNER_ACCESS_TOKEN_EXPIRE_MINUTES", "240"))

# -----------------------
# App Config
# -----------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "INR")
SUPPORTED_CURRENCIES = ("INR", "USD", "EUR", "GBP")

MESSAGE_MAX_LENGTH = 2000
QUOTATION_NOTE_MAX_LENGTH = 500
