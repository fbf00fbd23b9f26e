import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./keepon.db")

APP_NAME = os.getenv("APP_NAME", "Keepon")
APP_EMAIL = os.getenv("APP_EMAIL", "hello@getkeepon.com")
NO_REPLY_EMAIL = os.getenv("NO_REPLY_EMAIL", "noreply@getkeepon.com")

# Public base URL of this API, used to build links that end up in emails
BASE_URL = os.getenv("BASE_URL", "http://localhost:8000").rstrip("/")

# Frontend base URL for links into the client dashboard
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")

# Stripe Connect Configuration
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_API_VERSION = os.getenv("STRIPE_API_VERSION", "2024-06-20")
STATEMENT_DESCRIPTOR_SUFFIX = os.getenv("STATEMENT_DESCRIPTOR_SUFFIX", "VIA Keepon")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", f"{APP_NAME} <{NO_REPLY_EMAIL}>")

# Access tokens slide forward on every authenticated request
TRAINER_TOKEN_TTL_DAYS = int(os.getenv("TRAINER_TOKEN_TTL_DAYS", "28"))
CLIENT_TOKEN_TTL_DAYS = int(os.getenv("CLIENT_TOKEN_TTL_DAYS", "7"))
CLIENT_LOGIN_CODE_TTL_MINUTES = int(os.getenv("CLIENT_LOGIN_CODE_TTL_MINUTES", "10"))

# Workflow outbox
OUTBOX_BATCH_SIZE = int(os.getenv("OUTBOX_BATCH_SIZE", "50"))

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]
