import os

# Database configuration
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./roster.db")

# Registration engine configuration
REGISTRATION_LOCK_TTL = float(os.getenv("REGISTRATION_LOCK_TTL", "10"))
REGISTRATION_TIMEOUT = float(os.getenv("REGISTRATION_TIMEOUT", "5"))
REGISTRATION_MAX_ATTEMPTS = int(os.getenv("REGISTRATION_MAX_ATTEMPTS", "3"))
REGISTRATION_RETRY_BACKOFF = float(os.getenv("REGISTRATION_RETRY_BACKOFF", "0.05"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")


def get_database_url() -> str:
    return DATABASE_URL


def get_lock_ttl() -> float:
    return REGISTRATION_LOCK_TTL


def get_default_timeout() -> float:
    return REGISTRATION_TIMEOUT


def get_max_attempts() -> int:
    return max(1, REGISTRATION_MAX_ATTEMPTS)


def get_retry_backoff() -> float:
    return REGISTRATION_RETRY_BACKOFF


def get_cors_origins() -> list[str]:
    return [origin.strip() for origin in CORS_ORIGINS.split(",") if origin.strip()]
