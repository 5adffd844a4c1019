"""
Configuration management.

Loads settings from environment variables and .env file.
Prefix: ECHOMAP_
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Development-only signing key; set ECHOMAP_TOKEN_SECRET anywhere else
DEFAULT_TOKEN_SECRET = "echomap-dev-secret-change-me-in-production"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ECHOMAP_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Storage
    data_dir: Path = Field(default=Path("data"), description="Data storage directory")
    db_name: str = Field(default="echomap.db", description="SQLite database name")

    # Identity
    token_secret: str = Field(
        default=DEFAULT_TOKEN_SECRET,
        description="Bearer token signing key",
    )
    token_algorithm: str = Field(default="HS256", description="Bearer token algorithm")

    # Discovery
    default_radius: float = Field(
        default=10.0, description="Nearby radius in degree units (planar)"
    )
    recent_limit: int = Field(default=20, description="Max memories in recent feed")

    # Unlocks
    allow_repeat_unlocks: bool = Field(
        default=True,
        description="Record every unlock, even repeats by the same user",
    )

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_name

    @property
    def uses_default_secret(self) -> bool:
        return self.token_secret == DEFAULT_TOKEN_SECRET


def get_settings() -> Settings:
    """Get settings instance."""
    return Settings()
