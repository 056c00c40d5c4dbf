"""
Environment-aware configuration.
Values are read from the environment (and .env if present) once, at import.
"""
import os
from dotenv import load_dotenv
from datetime import timedelta

load_dotenv()  # Read .env if present


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")  # Set a strong key in production
    DEBUG = False
    TESTING = False
    # CORS: in dev we usually allow '*', in prod supply a comma-separated list in env
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    APP_ENV = os.getenv("APP_ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    # number of trusted reverse proxies setting X-Forwarded-For; 0 trusts none
    PROXY_FIX_X_FOR = int(os.getenv("PROXY_FIX_X_FOR", "0"))

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///token-auth.db")
    SQL_ECHO = _env_bool("SQL_ECHO", "false")

    # Access and refresh tokens are signed with distinct secrets
    JWT_ACCESS_SECRET = os.getenv("JWT_ACCESS_SECRET", "dev-access-secret-change-me")
    JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET", "dev-refresh-secret-change-me")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "token-auth-service")
    ACCESS_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("ACCESS_TOKEN_EXPIRES_SECONDS", "900")))
    REFRESH_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("REFRESH_TOKEN_EXPIRES_SECONDS", str(7 * 24 * 3600))))
    MAX_REFRESH_TOKENS_PER_USER = int(os.getenv("MAX_REFRESH_TOKENS_PER_USER", "5"))

    # Refresh token cleanup
    TOKEN_MAX_AGE = timedelta(days=int(os.getenv("TOKEN_MAX_AGE_DAYS", "30")))
    TOKEN_SWEEP_ENABLED = _env_bool("TOKEN_SWEEP_ENABLED", "true")
    TOKEN_SWEEP_INTERVAL = timedelta(hours=float(os.getenv("TOKEN_SWEEP_INTERVAL_HOURS", "24")))
    TOKEN_SWEEP_INITIAL_DELAY = timedelta(seconds=int(os.getenv("TOKEN_SWEEP_INITIAL_DELAY_SECONDS", "60")))
    TOKEN_SWEEP_ON_REQUEST = _env_bool("TOKEN_SWEEP_ON_REQUEST", "true")
    TOKEN_SWEEP_WORKERS = int(os.getenv("TOKEN_SWEEP_WORKERS", "2"))

    PASSWORD_MIN_LENGTH = int(os.getenv("PASSWORD_MIN_LENGTH", "6"))


class DevelopmentConfig(BaseConfig):
    DEBUG = True


class ProductionConfig(BaseConfig):
    DEBUG = False


class TestingConfig(BaseConfig):
    TESTING = True
    DATABASE_URL = "sqlite://"
    TOKEN_SWEEP_ENABLED = False
    TOKEN_SWEEP_ON_REQUEST = False


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/prod/test).
    """
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig
