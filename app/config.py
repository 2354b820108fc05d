import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./fieldsy.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Access tokens default to 7 days
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", str(7 * 24 * 60)))

# Frontend base URL for links in emails
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Fieldsy <noreply@fieldsy.co.uk>")
# Copy of every field claim goes here for review
ADMIN_NOTIFICATION_EMAIL = os.getenv("ADMIN_NOTIFICATION_EMAIL")

# AWS S3 Configuration
AWS_REGION = os.getenv("AWS_REGION", "eu-west-2")
AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID")
AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY")
AWS_S3_BUCKET = os.getenv("AWS_S3_BUCKET", "fieldsy-uploads")

# Stripe Connect Configuration
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "gbp")

# Firebase Configuration (push notifications)
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")

# Rate limiting is on unless explicitly disabled
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() != "false"

# Platform commission fallback when no settings row exists
DEFAULT_COMMISSION_RATE = int(os.getenv("DEFAULT_COMMISSION_RATE", "20"))
