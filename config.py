from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Using pydantic_settings for robust configuration management.
    """
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    # Frappe backend settings
    FRAPPE_URL: str = "http://localhost:8000" # Site root, without /api
    FRAPPE_API_KEY: Optional[str] = None
    FRAPPE_API_SECRET: Optional[str] = None
    FRAPPE_SID: Optional[str] = None # Used only when no API key/secret pair is set
    REQUEST_TIMEOUT_SECONDS: float = 15.0

    # Debounce windows (seconds)
    SEARCH_DEBOUNCE_SECONDS: float = 0.3
    FETCH_DEBOUNCE_SECONDS: float = 0.4
    MATRIX_DEBOUNCE_SECONDS: float = 0.5

    # Link search
    LINK_SEARCH_LIMIT: int = 20

    # Form session housekeeping
    SESSION_IDLE_MINUTES: int = 30
    SESSION_SWEEP_MINUTES: int = 5

    LOG_LEVEL: str = "INFO"

settings = Settings()
