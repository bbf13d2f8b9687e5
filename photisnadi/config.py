"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "Photisnadi Sync"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Supabase ---
    supabase_db_url: str  # direct postgres connection string for asyncpg
    db_pool_min_size: int = 1
    db_pool_max_size: int = 5
    db_command_timeout: float = 30.0

    # --- Local store ---
    local_store_path: str = "photisnadi.sqlite3"

    # --- Session ---
    # Supplied by the identity provider; sync is refused while unset.
    sync_user_id: str | None = None

    # --- Sync ---
    realtime_enabled: bool = True
    sync_config_path: str | None = None  # overrides the bundled sync_config.yaml

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
