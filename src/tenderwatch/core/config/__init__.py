"""Configuration loading and validation."""

from .models import (
    # Enums
    ScanMode,
    RunStatus,
    # Config models
    AppConfig,
    ApiConfig,
    SupplierConfig,
    ScanConfig,
    PushConfig,
    SchedulerConfig,
    DatabaseConfig,
    LoggingConfig,
)
from .loader import (
    DEFAULT_APP_YAML,
    DEFAULT_CONFIG_PATH,
    ConfigError,
    load_app_config,
    validate_config_file,
)

__all__ = [
    # Enums
    "ScanMode",
    "RunStatus",
    # Config models
    "AppConfig",
    "ApiConfig",
    "SupplierConfig",
    "ScanConfig",
    "PushConfig",
    "SchedulerConfig",
    "DatabaseConfig",
    "LoggingConfig",
    # Loaders
    "ConfigError",
    "load_app_config",
    "validate_config_file",
    "DEFAULT_APP_YAML",
    "DEFAULT_CONFIG_PATH",
]
