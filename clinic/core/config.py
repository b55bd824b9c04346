import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}

APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")
CORS_ALLOW_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]

STAFF_EMAIL_DOMAIN = os.getenv("STAFF_EMAIL_DOMAIN", "@clinic.edu").strip().lower()

DEFAULT_MAX_BOOKINGS_PER_DAY = int(os.getenv("DEFAULT_MAX_BOOKINGS_PER_DAY", "50"))
RESCHEDULE_HORIZON_DAYS = int(os.getenv("RESCHEDULE_HORIZON_DAYS", "365"))

MANUAL_POLICY_WARN = "warn"
MANUAL_POLICY_BLOCK = "block"
MANUAL_OVER_CAPACITY_POLICY = os.getenv("MANUAL_OVER_CAPACITY_POLICY", MANUAL_POLICY_WARN).strip().lower()

SEND_BOOKING_CONFIRMATIONS = _get_bool(os.getenv("SEND_BOOKING_CONFIRMATIONS"), default=True)
CLINIC_DISPLAY_NAME = os.getenv("CLINIC_DISPLAY_NAME", "University Clinic")

def validate_runtime_config() -> None:
    if DEFAULT_MAX_BOOKINGS_PER_DAY < 1:
        raise RuntimeError("DEFAULT_MAX_BOOKINGS_PER_DAY must be at least 1.")
    if RESCHEDULE_HORIZON_DAYS < 1:
        raise RuntimeError("RESCHEDULE_HORIZON_DAYS must be at least 1.")
    if MANUAL_OVER_CAPACITY_POLICY not in {MANUAL_POLICY_WARN, MANUAL_POLICY_BLOCK}:
        raise RuntimeError("MANUAL_OVER_CAPACITY_POLICY must be 'warn' or 'block'.")
    if APP_ENV.lower() == "production" and DATABASE_URL.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must point at Postgres in production.")
