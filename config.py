import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent

load_dotenv(BASE_DIR / ".env")

APP_ENV = os.getenv("APP_ENV", "development")
PORT = int(os.getenv("PORT", 8000))

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "story_submissions")

# JWT settings
INSECURE_JWT_SECRET = "your-secret-key-change-in-production"
SECRET_KEY = os.getenv("JWT_SECRET", INSECURE_JWT_SECRET)
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24))

# Uploads
UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", BASE_DIR / "public" / "uploads"))
STATIC_DIR = BASE_DIR / "static"

MAX_FILE_SIZE = 50 * 1024 * 1024
MAX_TOTAL_FILE_SIZE = 100 * 1024 * 1024
# Text parts carry the base64 audio recording, so they need room too
MAX_FIELD_SIZE = 70 * 1024 * 1024
MAX_REQUEST_SIZE = MAX_TOTAL_FILE_SIZE + MAX_FIELD_SIZE

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Email
SMTP_HOST = os.getenv("SMTP_HOST", "").strip()
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "").strip()
SMTP_PASS = os.getenv("SMTP_PASS", "").strip()
SMTP_STARTTLS = os.getenv("SMTP_STARTTLS", "true").lower() in {"1", "true", "yes"}
EMAIL_FROM = os.getenv("EMAIL_FROM", "stories@corsep.org")


def check_secret_key():
    """Refuse to run production with the built-in signing secret."""
    if SECRET_KEY != INSECURE_JWT_SECRET:
        return None
    message = "JWT_SECRET is not set; tokens are signed with the insecure default key"
    if APP_ENV == "production":
        raise RuntimeError(message)
    return message
