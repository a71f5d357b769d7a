import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid integer for {name}: {raw!r}") from None


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./telehealth.db")
DATABASE_ECHO = _get_bool(os.getenv("DATABASE_ECHO"), default=False)

CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = _get_int("JWT_EXPIRES_MINUTES", 60)

# Booking windows
MIN_NOTICE_MINUTES = _get_int("MIN_NOTICE_MINUTES", 60)
MAX_ADVANCE_DAYS = _get_int("MAX_ADVANCE_DAYS", 90)
SLOT_GRANULARITY_MINUTES = _get_int("SLOT_GRANULARITY_MINUTES", 15)
DEFAULT_APPOINTMENT_DURATION_MINUTES = _get_int("DEFAULT_APPOINTMENT_DURATION_MINUTES", 30)
RESERVATION_LOCK_TIMEOUT_SECONDS = _get_int("RESERVATION_LOCK_TIMEOUT_SECONDS", 5)

NO_SHOW_GRACE_MINUTES = _get_int("NO_SHOW_GRACE_MINUTES", 30)

PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "usd")


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if SLOT_GRANULARITY_MINUTES <= 0:
        raise RuntimeError("SLOT_GRANULARITY_MINUTES must be positive.")
    if MIN_NOTICE_MINUTES < 0 or MAX_ADVANCE_DAYS <= 0:
        raise RuntimeError("Booking notice windows must be non-negative.")
