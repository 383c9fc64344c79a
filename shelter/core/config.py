# shelter/core/config.py
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "local"
    api_v1_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Database (async driver URL)
    database_url: str = "sqlite+aiosqlite:///./shelter.db"
    database_echo: bool = False

    # Realtime change feed
    redis_url: str | None = None
    change_feed_channel_prefix: str = "shelter:changes"
    change_feed_reconnect_initial_delay: float = 1.0
    change_feed_reconnect_max_delay: float = 30.0

    # Loading bounds (seconds); page loads must never hang
    snapshot_timeout_seconds: float = 10.0
    page_load_timeout_seconds: float = 8.0

    # Client search
    client_search_debounce_ms: int = 300
    client_search_min_length: int = 2
    client_search_limit: int = 5

    # Bulk intake fallback location
    general_ward_name: str = "General"
    general_room_name: str = "General Room"
    max_batch_beds: int = 50

    # Pydantic v2 style config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings instance so the .env is parsed once.
    """
    return Settings()
