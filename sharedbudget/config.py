import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str
    secret_key: str
    access_token_expire_minutes: int = 60 * 24 * 7
    cors_origins: List[str] = field(default_factory=list)
    cookie_secure: bool = False
    invite_expiry_days: int = 14
    log_level: str = "INFO"


def load_settings() -> Settings:
    """
    Build Settings from the process environment (and a .env file if present).
    """
    load_dotenv()

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL environment variable is not set")
    secret_key = os.getenv("SECRET_KEY")
    if not secret_key:
        raise RuntimeError("SECRET_KEY environment variable is not set")

    cors_origins = os.getenv("CORS_ORIGINS", "")
    return Settings(
        database_url=database_url,
        secret_key=secret_key,
        access_token_expire_minutes=int(
            os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7))
        ),
        cors_origins=[o.strip() for o in cors_origins.split(",") if o.strip()],
        cookie_secure=_as_bool(os.getenv("COOKIE_SECURE")),
        invite_expiry_days=int(os.getenv("INVITE_EXPIRY_DAYS", "14")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
