"""Application settings loaded from environment variables and .env files."""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Hey future me - settings are grouped like the env vars: DATABASE__URL maps to
# settings.database.url because of env_nested_delimiter="__". Keep every group a
# plain BaseModel (not BaseSettings) or pydantic-settings reads the env twice!
class DatabaseSettings(BaseModel):
    """Catalog database connection settings."""

    url: str = Field(
        default="sqlite+aiosqlite:///./soundshelf.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(default=False, description="Log every SQL statement")
    pool_pre_ping: bool = Field(default=True)
    # Pool options are only applied for PostgreSQL (SQLite has no real pool)
    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    pool_timeout: int = Field(default=30, ge=1)
    pool_recycle: int = Field(default=3600, ge=-1)


class ScannerSettings(BaseModel):
    """Media scan settings (external tools and scheduling)."""

    ffprobe_path: str = Field(default="ffprobe", description="ffprobe executable")
    ffmpeg_path: str = Field(default="ffmpeg", description="ffmpeg executable")
    hash_algorithm: str = Field(
        default="sha256", description="Digest used for cover picture change detection"
    )
    rescan_interval_hours: float = Field(
        default=24.0, gt=0, description="Hours between background rescans"
    )
    scan_on_startup: bool = Field(
        default=True, description="Run the first background scan right away"
    )

    @field_validator("hash_algorithm")
    @classmethod
    def _normalize_hash_algorithm(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("hash_algorithm must not be empty")
        return value


class ObservabilitySettings(BaseModel):
    """Logging settings."""

    log_json_format: bool = Field(
        default=False, description="Emit JSON log lines instead of plain text"
    )


class Settings(BaseSettings):
    """Top-level application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    app_name: str = Field(default="soundshelf")
    log_level: str = Field(default="INFO")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    scanner: ScannerSettings = Field(default_factory=ScannerSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {value}")
        return level

    def get_sqlite_db_path(self) -> Path | None:
        """Return the database file path for file-backed SQLite URLs.

        Returns:
            Path of the SQLite file, or None for in-memory/non-SQLite URLs
        """
        url = self.database.url
        if not url.startswith("sqlite"):
            return None
        _, _, location = url.partition(":///")
        if not location or location == ":memory:" or location.startswith("file::memory:"):
            return None
        return Path(location.split("?", 1)[0])


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
