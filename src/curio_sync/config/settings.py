"""Application configuration settings."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class LocalStoreSettings(BaseSettings):
    """On-device cache configuration."""

    url: str = Field(default="sqlite:///./data/curio.db")

    class Config:
        env_prefix = "CURIO_DB_"
        env_file = ".env"
        extra = "ignore"


class SupabaseSettings(BaseSettings):
    """Supabase configuration."""

    url: str = Field(default="")
    anon_key: str = Field(default="")
    bucket: str = Field(default="curio-assets")
    # When disabled the server-side trigger owns updated_at.
    trust_client_timestamps: bool = Field(default=False)

    class Config:
        env_prefix = "CURIO_SUPABASE_"
        env_file = ".env"
        extra = "ignore"

    @property
    def is_configured(self) -> bool:
        """Whether enough is set to create a client."""
        return bool(self.url) and bool(self.anon_key) and self.url.startswith("http")


class SyncSettings(BaseSettings):
    """Sync engine configuration."""

    debounce_seconds: float = Field(default=1.5, ge=0)
    include_public: bool = Field(default=True)
    upload_retries: int = Field(default=2, ge=0)
    retry_delay_seconds: float = Field(default=0.5, ge=0)

    class Config:
        env_prefix = "CURIO_SYNC_"
        env_file = ".env"
        extra = "ignore"


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO")
    format: str = Field(default="console")
    file_path: Optional[str] = Field(default=None)

    class Config:
        env_prefix = "CURIO_LOG_"
        env_file = ".env"
        extra = "ignore"


class AppSettings(BaseSettings):
    """Main application settings."""

    name: str = Field(default="Curio Sync")
    version: str = Field(default="0.1.0")
    environment: str = Field(default="development")
    templates_file: Optional[str] = Field(default=None)
    seed_file: Optional[str] = Field(default=None)

    # Sub-settings
    database: LocalStoreSettings = Field(default_factory=LocalStoreSettings)
    supabase: SupabaseSettings = Field(default_factory=SupabaseSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    class Config:
        env_prefix = "CURIO_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


# Global settings instance
settings = AppSettings()


def get_settings() -> AppSettings:
    """Get application settings."""
    return settings
