"""
Runtime settings loaded from the environment (.env supported).
"""
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    database_url: str
    jwt_secret_key: str
    jwt_algorithm: str
    notification_webhook_url: Optional[str]
    notification_timeout_seconds: float
    log_level: str
    environment: str
    allowed_origins: Tuple[str, ...] = ()
    submission_rate_limit: str = "60/minute"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache()
def get_settings() -> Settings:
    """Read settings once per process."""
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./debate_engine.db"),
        jwt_secret_key=os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production"),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        notification_webhook_url=os.getenv("NOTIFICATION_WEBHOOK_URL") or None,
        notification_timeout_seconds=float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "5")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        environment=os.getenv("ENVIRONMENT", "development"),
        allowed_origins=tuple(
            origin.strip() for origin in os.getenv("ALLOWED_ORIGINS", "").split(",") if origin.strip()
        ),
        submission_rate_limit=os.getenv("SUBMISSION_RATE_LIMIT", "60/minute"),
    )
