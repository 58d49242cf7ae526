import os
import secrets
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./booking_engine.db")

# Connection pool (ignored for SQLite)
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "20"))
DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
# Seconds a SQLite writer waits for the database lock before failing
DB_BUSY_TIMEOUT = float(os.getenv("DB_BUSY_TIMEOUT", "15"))
ENABLE_QUERY_LOGGING = os.getenv("DB_LOG_SLOW_QUERIES", "true").lower() == "true"
SLOW_QUERY_THRESHOLD = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))

# Upper bound for a single store round trip (reserve, commit, status update)
STORE_TIMEOUT_SECONDS = float(os.getenv("STORE_TIMEOUT_SECONDS", "5"))

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using a random per-process key - DO NOT USE IN PRODUCTION",
        RuntimeWarning,
        stacklevel=2,
    )
    SECRET_KEY = secrets.token_urlsafe(32)

JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Shared secret used by the payment collaborator to sign status webhooks
PAYMENT_WEBHOOK_SECRET = os.getenv("PAYMENT_WEBHOOK_SECRET", "")

# Fee schedule, all amounts in cents
BOOKING_FEE_CENTS = int(os.getenv("BOOKING_FEE_CENTS", "338"))  # $3.38 charged on every paid booking
PLATFORM_SHARE_CENTS = int(os.getenv("PLATFORM_SHARE_CENTS", "203"))  # 60% of the booking fee
PLATFORM_SHARE_REDUCED_CENTS = int(os.getenv("PLATFORM_SHARE_REDUCED_CENTS", "203"))  # fee-only mode

# Slot generation
DEFAULT_SLOT_GRANULARITY_MINUTES = int(os.getenv("DEFAULT_SLOT_GRANULARITY_MINUTES", "30"))

# Wizard session tokens expire after this many seconds of inactivity
WIZARD_TOKEN_MAX_AGE = int(os.getenv("WIZARD_TOKEN_MAX_AGE", "3600"))

# Frontend base URL for CORS
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
