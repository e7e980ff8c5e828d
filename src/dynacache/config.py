"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Validates fields and provides typed access to settings.
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dynacache.types import RESERVED_ATTRIBUTES, ScalarKind

SerializerName = Literal["string", "json", "gzip-json", "pickle"]


class AttributeProperties(BaseModel):
    """One extra attribute of a configured cache."""

    name: str = Field(..., min_length=1)
    kind: ScalarKind = ScalarKind.STRING

    @field_validator("name")
    @classmethod
    def validate_not_reserved(cls, v: str) -> str:
        """Reject names that collide with key/value/ttl."""
        if v.lower() in RESERVED_ATTRIBUTES:
            raise ValueError(f"name must not equal '{v.lower()}'")
        return v


class CacheProperties(BaseModel):
    """Settings for one named cache, as given in CACHES."""

    cache_name: str = Field(..., min_length=1)
    ttl_seconds: int = Field(default=0, ge=0, description="0 disables expiration")
    flush_on_boot: bool = False
    read_capacity_units: int = Field(default=1, ge=1)
    write_capacity_units: int = Field(default=1, ge=1)
    serializer: SerializerName = "string"
    attributes: list[AttributeProperties] = Field(default_factory=list)

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds=self.ttl_seconds)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Optional:
        CACHE_DB_PATH: SQLite database used by the CLI and the manager
        CACHE_POLL_INTERVAL_MS: Sleep between lock checks; 0 disables locking
        CACHE_MAX_LOCK_WAIT_MS: Bound on lock waits; unset waits forever
        CACHE_CLEAR_CONCURRENCY: Maximum parallel deletes during clear
        CACHE_TTL_SECONDS: Default TTL; 0 disables expiration
        CACHE_READ_CAPACITY_UNITS / CACHE_WRITE_CAPACITY_UNITS: Provisioning hints
        CACHE_FLUSH_ON_BOOT: Clear caches when they are initialized
        CACHES: JSON list of per-cache properties
        LOG_LEVEL: Logging level
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    CACHE_DB_PATH: Path = Field(
        default=Path(".cache/dynacache.db"), description="SQLite database path"
    )

    # Locking
    CACHE_POLL_INTERVAL_MS: int = Field(
        default=0, ge=0, description="Sleep between lock checks (0 disables locking)"
    )
    CACHE_MAX_LOCK_WAIT_MS: int | None = Field(
        default=None, ge=1, description="Maximum lock wait (unset waits forever)"
    )
    CACHE_CLEAR_CONCURRENCY: int | None = Field(
        default=None, ge=1, description="Maximum parallel deletes during clear"
    )

    # Cache defaults
    CACHE_TTL_SECONDS: int = Field(default=0, ge=0, description="Default TTL in seconds")
    CACHE_READ_CAPACITY_UNITS: int = Field(default=1, ge=1)
    CACHE_WRITE_CAPACITY_UNITS: int = Field(default=1, ge=1)
    CACHE_FLUSH_ON_BOOT: bool = False

    CACHES: list[CacheProperties] = Field(default_factory=list)

    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )

    @property
    def poll_interval(self) -> timedelta:
        return timedelta(milliseconds=self.CACHE_POLL_INTERVAL_MS)

    @property
    def max_lock_wait(self) -> timedelta | None:
        if self.CACHE_MAX_LOCK_WAIT_MS is None:
            return None
        return timedelta(milliseconds=self.CACHE_MAX_LOCK_WAIT_MS)

    @property
    def locking_enabled(self) -> bool:
        return self.CACHE_POLL_INTERVAL_MS > 0

    @model_validator(mode="after")
    def validate_unique_cache_names(self) -> Settings:
        """Ensure every configured cache has a distinct name."""
        names = [c.cache_name for c in self.CACHES]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate cache names in CACHES: {', '.join(duplicates)}")
        return self

    def cache_properties(self, name: str) -> CacheProperties:
        """Properties for ``name``, falling back to the global defaults."""
        for props in self.CACHES:
            if props.cache_name == name:
                return props
        return CacheProperties(
            cache_name=name,
            ttl_seconds=self.CACHE_TTL_SECONDS,
            flush_on_boot=self.CACHE_FLUSH_ON_BOOT,
            read_capacity_units=self.CACHE_READ_CAPACITY_UNITS,
            write_capacity_units=self.CACHE_WRITE_CAPACITY_UNITS,
        )

    def display(self) -> dict[str, Any]:
        """Return the effective settings as plain values for display."""
        return {
            "CACHE_DB_PATH": str(self.CACHE_DB_PATH),
            "CACHE_POLL_INTERVAL_MS": self.CACHE_POLL_INTERVAL_MS,
            "CACHE_MAX_LOCK_WAIT_MS": self.CACHE_MAX_LOCK_WAIT_MS,
            "CACHE_CLEAR_CONCURRENCY": self.CACHE_CLEAR_CONCURRENCY,
            "CACHE_TTL_SECONDS": self.CACHE_TTL_SECONDS,
            "CACHE_READ_CAPACITY_UNITS": self.CACHE_READ_CAPACITY_UNITS,
            "CACHE_WRITE_CAPACITY_UNITS": self.CACHE_WRITE_CAPACITY_UNITS,
            "CACHE_FLUSH_ON_BOOT": self.CACHE_FLUSH_ON_BOOT,
            "CACHES": ", ".join(c.cache_name for c in self.CACHES) or None,
            "LOG_LEVEL": self.LOG_LEVEL,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
