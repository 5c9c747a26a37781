from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql://localhost:5432/moodpulse"

    # LLM provider (OpenAI-compatible endpoint, OpenRouter by default)
    OPENROUTER_API_KEY: str = ""
    LLM_BASE_URL: str = "https://openrouter.ai/api/v1"
    LLM_MODEL: str = "google/gemini-2.5-flash"
    LLM_TIMEOUT_SECONDS: float = 30.0

    # Auth
    SECRET_KEY: str = "development-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_DAYS: int = 7

    # Tenancy
    ENVIRONMENT: str = "development"
    DEFAULT_TENANT_DOMAIN: str = "localhost"

    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    RATE_LIMIT_REQUESTS: int = 100
    RATE_LIMIT_WINDOW_SECONDS: int = 900
    # Only honour X-Forwarded-For behind a proxy that overwrites it
    TRUST_FORWARDED_FOR: bool = False

    # Analytics
    HISTORY_WINDOW_DAYS: int = 90
    FOLLOW_UP_DAYS: int = 7

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
