from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    LOCAL_DATABASE_URL: str = "sqlite+aiosqlite:///./moodsync_local.db"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Comma-separated allowed origins, or "*" to allow all.
    CORS_ORIGINS: str = "*"

    # "firestore" | "memory" | "none"
    REMOTE_BACKEND: str = "firestore"
    FIRESTORE_PROJECT: Optional[str] = None

    # Empty key means the summarization service is absent.
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_TIMEOUT_SECONDS: float = 30.0

    COMPRESS_JOURNAL_THRESHOLD: int = 10
    COMPRESS_MOOD_THRESHOLD: int = 10
    COMPRESS_REFRESH_HOURS: int = 24

    INSIGHT_TOKEN_BUDGET: int = 1200
    INSIGHT_DAILY_LIMIT: int = 50

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
