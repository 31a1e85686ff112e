"""Environment configuration using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file early to ensure environment variables are set
load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    content_path: Path
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"
    allowed_origins: str = "http://localhost:3000"

    fuzzy_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    min_match_char_length: int = Field(default=2, ge=1)
    snippet_context: int = Field(default=100, ge=0)
    max_snippets: int = Field(default=3, ge=0)
    max_per_category: int = Field(default=3, ge=1)
    default_limit: int = Field(default=20, ge=1, le=100)

    @property
    def allowed_origins_list(self) -> list[str]:
        """Parse allowed origins as a list."""
        return [o.strip() for o in self.allowed_origins.split(",")]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
