from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = "sqlite:///./codetrail.db"

    # JWT Authentication (reviewer endpoints)
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Application
    APP_NAME: str = "CodeTrail"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    BACKEND_CORS_ORIGINS: str = (
        "http://localhost:3000,"
        "http://127.0.0.1:3000"
    )

    # Capture
    SNAPSHOT_INTERVAL_MS: int = 1000
    # Snapshot only when content differs by at least this many characters
    MIN_CONTENT_CHANGE_THRESHOLD: int = 1
    AUTO_SAVE_INTERVAL_MS: int = 5000
    EVENT_BUFFER_MAX_SIZE: int = 100

    # Playback
    PLAYBACK_TICK_MS: int = 50
    PLAYBACK_SPEED_OPTIONS: list[float] = [0.25, 0.5, 1, 2, 4, 8]
    DEFAULT_PLAYBACK_SPEED: float = 1.0

    # Candidate-side HTTP sink
    API_BASE_URL: str = "http://localhost:8000/api/v1"
    HTTP_TIMEOUT_SECONDS: float = 10.0


settings = Settings()
