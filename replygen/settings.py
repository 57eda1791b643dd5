# replygen/settings.py
import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # core
    APP_NAME: str = Field(default="Reply Generator")
    ENV: str = Field(default=os.getenv("APP_ENV", "dev"))
    DEBUG: bool = Field(default=True)
    LOG_LEVEL: str = Field(default="INFO")

    # model backend (credential is only ever read from the environment)
    OPENAI_API_KEY: str | None = None
    USE_OLLAMA: bool = Field(default=False)
    OLLAMA_HOST: str = Field(default="http://localhost:11434")

    # tiers: primary = cheap/fast, secondary = higher quality
    PRIMARY_MODEL: str = Field(default="gpt-4o-mini")
    SECONDARY_MODEL: str | None = Field(default="gpt-4o")

    # generation params
    TEMPERATURE: float = Field(default=0.3)
    MAX_TOKENS: int = Field(default=1000)
    GROUNDING_ENABLED: bool = Field(default=False)
    PERSONA_KEY: str = Field(default="scientific-expert")

    # orchestration
    MAX_ATTEMPTS: int = Field(default=3, ge=1)
    CACHE_MAX_ENTRIES: int | None = None

    # read root-level .env.dev
    model_config = SettingsConfigDict(
        env_file=".env.dev",
        extra="ignore",
    )

    @property
    def app_name(self) -> str:
        return self.APP_NAME


settings = Settings()
