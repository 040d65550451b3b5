from pathlib import Path
import os

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")

REQUIRED_ENV = ("JWT_SECRET_KEY", "DATABASE_URL")


def missing_required_env() -> list[str]:
    return [name for name in REQUIRED_ENV if not os.environ.get(name)]


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw else default


class Config:
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "")
    SECRET_KEY = os.environ.get("SECRET_KEY") or JWT_SECRET_KEY or "dev-change-me"
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    MAX_CONTENT_LENGTH = 5 * 1024 * 1024  # 5MB profile images

    PORT = _int_env("PORT", 8080)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    REQUEST_TIMEOUT_SECONDS = _int_env("REQUEST_TIMEOUT_SECONDS", 30)

    ACCESS_TOKEN_HOURS = _int_env("ACCESS_TOKEN_HOURS", 6)
    RESET_TOKEN_MINUTES = _int_env("RESET_TOKEN_MINUTES", 15)
    WEBHOOK_EVENT_TTL_DAYS = _int_env("WEBHOOK_EVENT_TTL_DAYS", 30)
    ADVANCE_INTERVAL_SECONDS = _int_env("ADVANCE_INTERVAL_SECONDS", 60)

    RESEND_API_KEY = os.environ.get("RESEND_API_KEY")
    MAIL_FROM = os.environ.get("MAIL_FROM", "Lama <no-reply@lama.app>")
    RESET_PASSWORD_URL = os.environ.get(
        "RESET_PASSWORD_URL", "http://localhost:3000/reset-password?token="
    )

    SUPABASE_URL = os.environ.get("SUPABASE_URL")
    SUPABASE_KEY = os.environ.get("SUPABASE_KEY")
    SUPABASE_BUCKET = os.environ.get("SUPABASE_BUCKET", "profile-images")

    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")
    STRIPE_API_KEY = os.environ.get("STRIPE_API_KEY")
    STRIPE_CURRENCY = os.environ.get("STRIPE_CURRENCY", "thb")
    STRIPE_SUCCESS_URL = os.environ.get(
        "STRIPE_SUCCESS_URL", "http://localhost:3000/payments/success"
    )
    STRIPE_CANCEL_URL = os.environ.get(
        "STRIPE_CANCEL_URL", "http://localhost:3000/payments/cancel"
    )
