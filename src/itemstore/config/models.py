# src/itemstore/config/models.py
"""
Pydantic models for itemstore configuration validation.

The loader (`itemstore.config.loader`) merges the packaged defaults, an
optional user TOML file and ``ITEMSTORE_*`` environment variables into a
plain dictionary, which is then validated against `AppConfig`.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class RetryConfig(BaseModel):
    """
    Reconnection policy for networked backends.

    The defaults reproduce the historical behaviour: retry every 30 seconds,
    forever, without backoff.
    """

    interval_seconds: float = Field(30.0, gt=0, description="Delay before the first retry")
    max_attempts: Optional[int] = Field(
        None, ge=1, description="Give up after this many attempts (None = never give up)"
    )
    backoff_factor: float = Field(1.0, ge=1.0, description="Multiplier applied to the delay after each failure")
    max_interval_seconds: float = Field(300.0, gt=0, description="Upper bound for the delay")

    @model_validator(mode="after")
    def check_interval_bounds(self) -> "RetryConfig":
        if self.max_interval_seconds < self.interval_seconds:
            raise ValueError("max_interval_seconds must not be smaller than interval_seconds")
        return self


class MongoConfig(BaseModel):
    """Document-store backend settings."""

    url: str = Field("mongodb://127.0.0.1:27017", description="MongoDB connection URI")
    database: str = Field("isabelle", description="Logical database name")
    server_selection_timeout_ms: int = Field(
        5000, gt=0, description="How long a single ping waits for a reachable server"
    )
    index_on_connect: bool = Field(
        False, description="Rebuild the secondary index from the remote collections after connecting"
    )
    retry: RetryConfig = Field(default_factory=RetryConfig)


class StorageConfig(BaseModel):
    """Which backend serves requests and where its local files live."""

    type: Literal["mongo", "file"] = Field("mongo", description="Primary store backend")
    data_path: str = Field("sample-data", description="Directory holding internals.js, settings.js and file collections")
    mongo: MongoConfig = Field(default_factory=MongoConfig)

    @field_validator("type", mode="before")
    @classmethod
    def lower_type(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


class LoggingConfig(BaseModel):
    """Subset of logging options understood by `itemstore.logging_config`."""

    console_enabled: bool = False
    console_level: str = "WARNING"
    file_enabled: bool = False
    file_level: str = "DEBUG"
    file_directory: str = "~/.local/share/itemstore/logs"
    file_mode: Literal["per_run", "single"] = "per_run"
    display_min_level: str = "INFO"
    components: Dict[str, str] = Field(default_factory=dict)


class AppConfig(BaseModel):
    """Top-level configuration document."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
