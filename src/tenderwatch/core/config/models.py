"""
Pydantic configuration models for TenderWatch.

These models provide type-safe configuration with validation for:
- Procurement API access
- Supplier allow-list
- Scan pacing and date windows
- Push gateway delivery
- Database, logging and scheduler settings
"""

from __future__ import annotations

from datetime import time
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Enums
# =============================================================================


class ScanMode(str, Enum):
    """Order discovery modes."""

    TARGETED = "targeted"
    DAILY = "daily"


class RunStatus(str, Enum):
    """Lifecycle of a scan run record."""

    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


# =============================================================================
# Procurement API Configuration
# =============================================================================


class ApiConfig(BaseModel):
    """Access to the Mercado Publico public API."""

    base_url: str = Field(
        default="https://api.mercadopublico.cl/servicios/v1/publico",
        description="Base URL of the public procurement API",
    )
    ticket: str = Field(
        default="",
        description="API access ticket issued by the procurement service",
    )
    timeout_seconds: float = Field(
        default=45.0,
        ge=1.0,
        le=300.0,
        description="Per-call timeout in seconds",
    )
    max_attempts: int = Field(
        default=5,
        ge=1,
        le=10,
        description="Attempts per call before giving up",
    )


class SupplierConfig(BaseModel):
    """An allow-listed supplier."""

    name: str = Field(..., min_length=1, description="Supplier name as reported by the API")
    code: str = Field(..., min_length=1, description="Supplier code used by the order listing")


def _default_suppliers() -> list[SupplierConfig]:
    return [
        SupplierConfig(name="Therapía iv", code="1398417"),
        SupplierConfig(name="Fresenius Kabi Chile Ltda.", code="17793"),
    ]


DEFAULT_PRODUCT_LINES = [
    "Nutrición Parenteral",
    "Nutrición Parenteral Magistral",
    "Enterales y SO",
    "Anestesia",
    "Oncología",
]


# =============================================================================
# Scan Configuration
# =============================================================================


class ScanConfig(BaseModel):
    """Date windows and pacing for order discovery."""

    window_months: int = Field(
        default=6,
        ge=1,
        le=24,
        description="Months scanned back by targeted discovery",
    )
    sample_days: list[int] = Field(
        default_factory=lambda: [1, 15],
        description="Days of month sampled by targeted discovery",
    )
    list_delay_ms: int = Field(
        default=1000,
        ge=1000,
        description="Minimum gap before each order listing call",
    )
    detail_delay_ms: int = Field(
        default=500,
        ge=0,
        description="Minimum gap before each order detail call",
    )
    lookup_delay_ms: int = Field(
        default=300,
        ge=0,
        description="Minimum gap between manual order lookups",
    )
    refresh_delay_ms: int = Field(
        default=500,
        ge=0,
        description="Minimum gap between tender refresh calls",
    )

    @field_validator("sample_days")
    @classmethod
    def valid_days(cls, v: list[int]) -> list[int]:
        """Sampled days must exist in every month."""
        if not v:
            raise ValueError("sample_days must not be empty")
        for day in v:
            if day < 1 or day > 28:
                raise ValueError("sample_days must be between 1 and 28")
        return sorted(set(v))


# =============================================================================
# Push Configuration
# =============================================================================


class PushConfig(BaseModel):
    """Push gateway delivery settings."""

    enabled: bool = Field(default=True, description="Send push notifications after daily scans")
    gateway_url: str = Field(
        default="https://exp.host/--/api/v2/push/send",
        description="Push gateway endpoint",
    )
    batch_size: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Messages per gateway request",
    )
    max_workers: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Concurrent gateway requests",
    )
    timeout_seconds: float = Field(default=30.0, ge=1.0, le=120.0)


# =============================================================================
# Scheduler Configuration
# =============================================================================


class SchedulerConfig(BaseModel):
    """Scheduled trigger settings."""

    enabled: bool = Field(default=True)
    timezone: str = Field(default="America/Santiago")
    daily_scan_time: time = Field(
        default=time(1, 0),
        description="Local time of the daily order scan",
    )
    tender_refresh_time: time = Field(
        default=time(18, 0),
        description="Local time of the tender refresh",
    )
    lock_ttl_minutes: int = Field(
        default=180,
        ge=1,
        le=1440,
        description="Run-lock lifetime before it is considered stale",
    )
    data_store_url: str = Field(default="sqlite+aiosqlite:///data/schedules.db")


# =============================================================================
# Database Configuration
# =============================================================================


class DatabaseConfig(BaseModel):
    """Database connection settings."""

    url: str = Field(
        default="sqlite:///data/tenderwatch.db",
        description="SQLAlchemy database URL",
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements (debugging)",
    )


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    file: Path | None = Field(
        default=Path("logs/tenderwatch.log"),
        description="Log file path",
    )
    json_format: bool = Field(
        default=True,
        description="Use JSON format for file logs",
    )
    rich_console: bool = Field(
        default=True,
        description="Use Rich for console output",
    )


# =============================================================================
# Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """Root application configuration.

    This is the main configuration object loaded from app.yaml.
    """

    data_dir: Path = Field(default=Path("data"))

    api: ApiConfig = Field(default_factory=ApiConfig)
    suppliers: list[SupplierConfig] = Field(default_factory=_default_suppliers)
    product_lines: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PRODUCT_LINES),
        description="Product lines tenders are assigned to",
    )
    scan: ScanConfig = Field(default_factory=ScanConfig)
    push: PushConfig = Field(default_factory=PushConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def supplier_names(self) -> list[str]:
        return [s.name for s in self.suppliers]

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        if self.logging.file:
            self.logging.file.parent.mkdir(parents=True, exist_ok=True)
