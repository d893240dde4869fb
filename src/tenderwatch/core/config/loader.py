"""
Configuration loader for YAML files.

Loads and validates configuration from YAML files into Pydantic models.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .models import AppConfig

DEFAULT_CONFIG_PATH = Path("configs/app.yaml")

_ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


class ConfigError(Exception):
    """Configuration loading or validation error."""

    def __init__(self, message: str, path: Path | None = None, details: str | None = None):
        self.path = path
        self.details = details
        super().__init__(message)


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dictionary.

    Raises:
        ConfigError: If file cannot be read or parsed
    """
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}", path=path)

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}", path=path, details=str(e)) from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}", path=path, details=str(e)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {path} must be a mapping", path=path)
    return data


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand environment variables in string values.

    Supports ${VAR} and ${VAR:-default} syntax.
    """
    def replacer(match: re.Match[str]) -> str:
        return os.environ.get(match.group(1), match.group(2) or "")

    if isinstance(data, str):
        return _ENV_PATTERN.sub(replacer, data)
    if isinstance(data, dict):
        return {k: _expand_env_vars(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    return data


def load_app_config(
    path: Path | str | None = None,
    expand_env: bool = True,
) -> AppConfig:
    """Load application configuration from YAML file.

    A missing file yields the defaults. The API ticket falls back to the
    MERCADO_PUBLICO_TICKET environment variable when the file leaves it empty.

    Raises:
        ConfigError: If configuration is invalid
    """
    path = DEFAULT_CONFIG_PATH if path is None else Path(path)

    data: dict[str, Any] = _load_yaml_file(path) if path.exists() else {}

    if expand_env:
        data = _expand_env_vars(data)

    try:
        config = AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid app configuration in {path}",
            path=path,
            details=str(e),
        ) from e

    if not config.api.ticket:
        config.api.ticket = os.environ.get("MERCADO_PUBLICO_TICKET", "")

    return config


def validate_config_file(path: Path | str) -> list[str]:
    """Validate a configuration file without loading it.

    Returns:
        List of validation error messages (empty if valid)
    """
    path = Path(path)
    try:
        data = _expand_env_vars(_load_yaml_file(path))
    except ConfigError as e:
        return [str(e)]

    errors: list[str] = []
    try:
        AppConfig.model_validate(data)
    except ValidationError as e:
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"{loc}: {error['msg']}")
    return errors


DEFAULT_APP_YAML = """\
# TenderWatch Configuration

data_dir: data

api:
  base_url: https://api.mercadopublico.cl/servicios/v1/publico
  ticket: ${MERCADO_PUBLICO_TICKET:-}
  timeout_seconds: 45
  max_attempts: 5

# Only orders from these suppliers are discovered and counted
suppliers:
  - name: "Therapía iv"
    code: "1398417"
  - name: "Fresenius Kabi Chile Ltda."
    code: "17793"

# Product lines offered when assigning a tender
product_lines:
  - "Nutrición Parenteral"
  - "Nutrición Parenteral Magistral"
  - "Enterales y SO"
  - "Anestesia"
  - "Oncología"

scan:
  window_months: 6
  sample_days: [1, 15]
  list_delay_ms: 1000
  detail_delay_ms: 500
  lookup_delay_ms: 300
  refresh_delay_ms: 500

push:
  enabled: true
  gateway_url: https://exp.host/--/api/v2/push/send
  batch_size: 100
  max_workers: 3

scheduler:
  enabled: true
  timezone: America/Santiago
  daily_scan_time: "01:00"
  tender_refresh_time: "18:00"
  lock_ttl_minutes: 180

database:
  url: sqlite:///data/tenderwatch.db
  echo: false

logging:
  level: INFO
  file: logs/tenderwatch.log
  json_format: true
  rich_console: true
"""
