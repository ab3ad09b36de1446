"""
StudyGuard Configuration
Central configuration loaded from environment variables.
"""

from pathlib import Path
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # App
    APP_NAME: str = "StudyGuard"
    ENV: str = "development"
    DEBUG: bool = True

    # Auth
    SECRET_KEY: str = "change-me-in-dotenv"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24 hours

    # Database
    DATABASE_URL: str = "sqlite:///./studyguard.db"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # AI summaries
    AI_PROVIDER: str = "openai"   # "openai" or "anthropic"
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4-turbo-preview"
    ANTHROPIC_API_KEY: str = ""
    ANTHROPIC_MODEL: str = "claude-3-haiku-20240307"
    AI_MAX_TOKENS: int = 1500
    AI_TIMEOUT_SECONDS: float = 30.0

    # Analytics
    TREND_INTERVAL_MINUTES: int = 5
    ANALYTICS_DEFAULT_PERIOD_DAYS: int = 30
    PRODUCTIVITY_DEFAULT_PERIOD_DAYS: int = 7
    RECENT_SESSIONS_LIMIT: int = 100

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() == "production"

    @property
    def ai_api_key(self) -> str:
        if self.AI_PROVIDER.lower() == "anthropic":
            return self.ANTHROPIC_API_KEY
        return self.OPENAI_API_KEY

    @property
    def ai_model(self) -> str:
        if self.AI_PROVIDER.lower() == "anthropic":
            return self.ANTHROPIC_MODEL
        return self.OPENAI_MODEL

    class Config:
        env_file = Path(__file__).resolve().parent.parent.parent / ".env"
        extra = "allow"


settings = Settings()
