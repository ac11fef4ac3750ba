import tempfile
import os
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    DATABASE_URL: str = "sqlite:///./dev.db"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    FRONTEND_ORIGINS: List[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"
    RESET_DB: bool = False

    # discovery
    DEFAULT_RADIUS_KM: float = 5.0

    # order placement
    CONFIRMATION_CODE_MAX_ATTEMPTS: int = 50
    PLACEMENT_MAX_RETRIES: int = 3
    LOCKS_DIR: str = os.path.join(tempfile.gettempdir(), "foodrescue_locks")
    LOCK_TIMEOUT_SECONDS: float = 10.0

    # order lifecycle: "permissive" or "strict"
    STATUS_TRANSITION_POLICY: str = "permissive"
    RESTORE_INVENTORY_ON_CANCEL: bool = False


settings = Settings()
