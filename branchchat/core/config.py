from typing import List
from pydantic_settings import BaseSettings
from pydantic import field_validator
import os

SUPPORTED_LLM_PROVIDERS = ("openai", "anthropic", "gemini")

class Settings(BaseSettings):
    # App Settings
    APP_NAME: str = "Branchchat"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database settings
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./branchchat.db")
    DB_POOL_SIZE: int = 3
    DB_MAX_OVERFLOW: int = 6

    # LLM
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "openai")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "")
    LLM_TEMPERATURE: float = 0.8
    LLM_MAX_TOKENS: int = 2048

    # OpenAI-compatible endpoint, OpenRouter by default
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "https://openrouter.ai/api/v1")
    ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")

    # Chat
    MAX_CONTEXT_MESSAGES: int = 50

    # CORS
    BACKEND_CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    @property
    def CORS_ORIGIN_LIST(self) -> List[str]:
        return [origin.strip() for origin in self.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]

    @field_validator("LLM_PROVIDER")
    def normalize_provider(cls, v: str) -> str:
        provider = v.strip().lower()
        if provider not in SUPPORTED_LLM_PROVIDERS:
            raise ValueError(
                f"Unsupported LLM provider: {v!r} (expected one of {', '.join(SUPPORTED_LLM_PROVIDERS)})"
            )
        return provider

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured database is SQLite"""
        return self.DATABASE_URL.startswith("sqlite")

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
