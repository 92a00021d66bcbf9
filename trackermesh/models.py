"""Pydantic models for trackermesh.

Provides validated configuration models for type safety and runtime validation.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DiscoveryConfig(BaseModel):
    """Tracker discovery configuration."""

    identifier: str = Field(
        default="",
        description="Application identifier hashed into the tracker lookup key",
    )
    announce_urls: list[str] = Field(
        default_factory=list,
        description="Tracker announce URLs, announced in order",
    )
    numwant: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Default number of peers requested per announce",
    )
    uploaded: int = Field(
        default=0,
        ge=0,
        description="Default uploaded byte count reported on announce",
    )
    downloaded: int = Field(
        default=0,
        ge=0,
        description="Default downloaded byte count reported on announce",
    )

    @field_validator("announce_urls")
    @classmethod
    def validate_announce_urls(cls, v: list[str]) -> list[str]:
        """Strip announce URLs and reject empty or duplicate entries."""
        urls: list[str] = []
        for raw in v:
            url = raw.strip()
            if not url:
                msg = "Announce URL must not be empty"
                raise ValueError(msg)
            if url in urls:
                msg = f"Duplicate announce URL: {url}"
                raise ValueError(msg)
            urls.append(url)
        return urls


class TransportConfig(BaseModel):
    """Message fragmentation configuration."""

    max_fragment_size: int = Field(
        default=16000,
        ge=1,
        le=262144,
        description="Maximum payload length of a single message fragment",
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Log level")
    log_file: str | None = Field(None, description="Log file path")
    structured_logging: bool = Field(
        default=True,
        description="Write JSON records to the log file",
    )
    log_correlation_id: bool = Field(
        default=True,
        description="Include correlation IDs",
    )


class Config(BaseModel):
    """Main configuration model."""

    discovery: DiscoveryConfig = Field(
        default_factory=DiscoveryConfig,
        description="Tracker discovery configuration",
    )
    transport: TransportConfig = Field(
        default_factory=TransportConfig,
        description="Message fragmentation configuration",
    )
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="Observability configuration",
    )
