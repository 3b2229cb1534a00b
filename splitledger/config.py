from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration, read from SPLITLEDGER_* environment variables"""
    model_config = SettingsConfigDict(env_prefix="SPLITLEDGER_", env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./splitledger.db"
    lock_timeout_ms: int = 5000
    contention_retries: int = 1

    secret_key: str = "your_secret_key"
    jwt_algorithm: str = "HS256"

    # Leave unset to run without an event bus
    rabbitmq_url: Optional[str] = None
    events_exchange: str = "ledger.events"

    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
