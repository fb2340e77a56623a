import os

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG = LOG_LEVEL == "DEBUG"

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL must be set in the environment")

# Postgres deployments keep everything in one schema; SQLite has none.
SCHEMA = os.getenv("DB_SCHEMA") or None

ALLOWED_ORIGINS: list[str] = [
    origin.strip() for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",") if origin.strip()
]

BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "Asia/Taipei")

PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")

# Admin endpoints use HTTP Basic Auth against these global credentials
ADMIN_USERNAME = os.getenv("ADMIN_USERNAME")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")

# =============================================================================
# Payment gateway
# =============================================================================

PAYMENT_ENV = os.getenv("PAYMENT_ENV", "test").strip().lower()
if PAYMENT_ENV not in ("test", "production"):
    raise ValueError(f"PAYMENT_ENV must be 'test' or 'production', got {PAYMENT_ENV!r}")

ECPAY_MERCHANT_ID = os.getenv("ECPAY_MERCHANT_ID")
ECPAY_HASH_KEY = os.getenv("ECPAY_HASH_KEY")
ECPAY_HASH_IV = os.getenv("ECPAY_HASH_IV")

# Production merchant; the unsuffixed set above is only used in the test environment
ECPAY_MERCHANT_ID_PROD = os.getenv("ECPAY_MERCHANT_ID_PROD")
ECPAY_HASH_KEY_PROD = os.getenv("ECPAY_HASH_KEY_PROD")
ECPAY_HASH_IV_PROD = os.getenv("ECPAY_HASH_IV_PROD")

# =============================================================================
# Mail
# =============================================================================

MAIL_FROM = os.getenv("MAIL_FROM", "no-reply@example.com")
RESEND_API_KEY = os.getenv("RESEND_API_KEY")

SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME = os.getenv("SMTP_USERNAME")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

# =============================================================================
# Scheduler
# =============================================================================

SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "true").lower() == "true"
SCHEDULER_TICK_SECONDS = float(os.getenv("SCHEDULER_TICK_SECONDS", "60"))
EXPIRY_SWEEP_HOUR = int(os.getenv("EXPIRY_SWEEP_HOUR", "1"))
