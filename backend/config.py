from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List, Literal


class Settings(BaseSettings):
    # "firestore" in production, "memory" for local play and tests
    store_backend: Literal["firestore", "memory"] = "firestore"
    google_cloud_project: str = ""
    google_application_credentials: str = ""
    firestore_emulator_host: Optional[str] = None
    # CORS origins — set ALLOWED_ORIGINS env var for production (comma-separated)
    allowed_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]
    # Extra production origin (e.g. Cloud Run URL); appended to allowed_origins
    extra_origin: str = ""
    debug: bool = False

    # Game rules
    min_players: int = 3
    max_players: int = 10
    mr_white_min_players: int = 4
    max_undercover_ratio: float = 0.5
    default_max_rounds: int = 3
    mr_white_marker: str = "Unknown"

    # Conflict retry (whole read-validate-write transaction is replayed)
    transaction_max_attempts: int = 6
    transaction_base_delay: float = 0.02  # seconds, doubled per attempt
    transaction_max_delay: float = 0.5

    # Pydantic v2 style (replaces deprecated inner class Config)
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )


settings = Settings()
