import os

from dotenv import load_dotenv


load_dotenv()


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./sparks.db")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:3000"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# Sessions are 45 minutes long and start on the hour, leaving a 15 minute gap.
SESSION_DURATION_MINUTES = int(os.getenv("SESSION_DURATION_MINUTES", "45"))
SLOT_INTERVAL_MINUTES = int(os.getenv("SLOT_INTERVAL_MINUTES", "60"))
MAX_REPORTED_CONFLICTS = int(os.getenv("MAX_REPORTED_CONFLICTS", "5"))
AVAILABILITY_CHECK_BUFFER_MINUTES = int(os.getenv("AVAILABILITY_CHECK_BUFFER_MINUTES", "30"))

APP_URL = os.getenv("APP_URL", "http://localhost:3000").rstrip("/")
MEETING_TIMEZONE = os.getenv("MEETING_TIMEZONE", "Asia/Colombo")
MEETING_PROVIDER_TIMEOUT_SECONDS = float(os.getenv("MEETING_PROVIDER_TIMEOUT_SECONDS", "10"))

GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
GOOGLE_TOKEN_URL = os.getenv("GOOGLE_TOKEN_URL", "https://oauth2.googleapis.com/token")
GOOGLE_CALENDAR_API = os.getenv("GOOGLE_CALENDAR_API", "https://www.googleapis.com/calendar/v3")


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if SESSION_DURATION_MINUTES > SLOT_INTERVAL_MINUTES:
        raise RuntimeError("SESSION_DURATION_MINUTES cannot exceed SLOT_INTERVAL_MINUTES.")
