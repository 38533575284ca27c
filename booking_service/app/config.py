import os
from datetime import timedelta
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

# postgresql:// URLs from the environment are run through asyncpg
DATABASE_URL = os.getenv("BOOKING_DB_URL", "sqlite+aiosqlite:///./car_hire.db").replace(
    "postgresql://", "postgresql+asyncpg://"
)
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() in {"1", "true", "yes"}

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# 16% VAT
TAX_RATE = Decimal(os.getenv("BOOKING_TAX_RATE", "0.16"))

# How long before pickup a booking may be activated; unset means any time
_grace_hours = os.getenv("ACTIVATION_GRACE_HOURS")
ACTIVATION_GRACE = timedelta(hours=float(_grace_hours)) if _grace_hours else None

# 0: a busy vehicle is refused at once instead of queuing
VEHICLE_LOCK_TIMEOUT = float(os.getenv("VEHICLE_LOCK_TIMEOUT", "0"))

REFERENCE_MAX_ATTEMPTS = int(os.getenv("REFERENCE_MAX_ATTEMPTS", "5"))
REFERENCE_BACKOFF_SECONDS = float(os.getenv("REFERENCE_BACKOFF_SECONDS", "0.05"))

BOOKING_REFERENCE_PREFIX = "BK"
PAYMENT_REFERENCE_PREFIX = "PAY"
