from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings, read from BOOKER_* environment variables or .env."""

    model_config = SettingsConfigDict(env_prefix="BOOKER_", env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./data/facility_booker.db"

    # JWT configuration
    secret_key: str = "secure-secret-key-1234567890"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    log_level: str = "INFO"

    # Reservation status policy
    strict_status_transitions: bool = False
    recheck_on_approve: bool = False


@lru_cache
def get_settings() -> Settings:
    return Settings()
