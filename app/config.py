import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./backoffice.db")

# Supabase-issued access tokens (HS256)
SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET")
SUPABASE_JWT_AUDIENCE = os.getenv("SUPABASE_JWT_AUDIENCE", "authenticated")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Frontend base URL for links in emails
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "EasyShiftHQ <noreply@easyshifthq.com>")

# OpenRouter (AI categorization)
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
OPENROUTER_API_URL = os.getenv(
    "OPENROUTER_API_URL", "https://openrouter.ai/api/v1/chat/completions"
)

# Stripe subscription billing
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
# Comma separated "price_id:tier" pairs, e.g. "price_123:starter,price_456:growth"
STRIPE_PRICE_ID_TO_TIER = os.getenv("STRIPE_PRICE_ID_TO_TIER", "")

# Square
SQUARE_ENVIRONMENT = os.getenv("SQUARE_ENVIRONMENT", "sandbox")  # sandbox or production
SQUARE_WEBHOOK_SIGNATURE_KEY = os.getenv(
    "SQUARE_WEBHOOK_SIGNATURE_KEY"
)  # Webhook signature key from Square Dashboard

# Toast
TOAST_WEBHOOK_SECRET = os.getenv("TOAST_WEBHOOK_SECRET")
TOAST_API_BASE_URL = os.getenv("TOAST_API_BASE_URL", "https://ws-api.toasttab.com")

# Clover
CLOVER_APP_ID = os.getenv("CLOVER_APP_ID")
CLOVER_APP_SECRET = os.getenv("CLOVER_APP_SECRET")
CLOVER_WEBHOOK_AUTH_CODE = os.getenv("CLOVER_WEBHOOK_AUTH_CODE")

# Gusto
GUSTO_WEBHOOK_SECRET = os.getenv("GUSTO_WEBHOOK_SECRET")

# Vendor token encryption (generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())")
POS_ENCRYPTION_KEY = os.getenv("POS_ENCRYPTION_KEY")

DEFAULT_RESTAURANT_TIMEZONE = os.getenv("DEFAULT_RESTAURANT_TIMEZONE", "America/Chicago")

REDIS_URL = os.getenv("REDIS_URL")

# CORS origins for the web frontend (comma separated)
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
