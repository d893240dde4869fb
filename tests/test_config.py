"""Tests for YAML configuration loading."""
from datetime import time

import pytest

from tenderwatch.core.config import (
    DEFAULT_APP_YAML,
    ConfigError,
    load_app_config,
    validate_config_file,
)


def test_missing_file_gives_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("MERCADO_PUBLICO_TICKET", "env-ticket")

    config = load_app_config(tmp_path / "absent.yaml")

    assert config.api.ticket == "env-ticket"
    assert config.scan.sample_days == [1, 15]
    assert config.push.batch_size == 100
    assert len(config.suppliers) == 2


def test_default_yaml_loads(tmp_path, monkeypatch):
    monkeypatch.delenv("MERCADO_PUBLICO_TICKET", raising=False)
    path = tmp_path / "app.yaml"
    path.write_text(DEFAULT_APP_YAML, encoding="utf-8")

    config = load_app_config(path)

    assert config.scheduler.daily_scan_time == time(1, 0)
    assert config.scheduler.tender_refresh_time == time(18, 0)
    assert config.scheduler.timezone == "America/Santiago"
    assert config.api.ticket == ""
    assert config.supplier_names == ["Therapía iv", "Fresenius Kabi Chile Ltda."]


def test_env_vars_are_expanded(tmp_path, monkeypatch):
    monkeypatch.setenv("TW_DB", "sqlite:///tmp/test.db")
    path = tmp_path / "app.yaml"
    path.write_text(
        "database:\n  url: ${TW_DB}\napi:\n  base_url: ${TW_MISSING:-https://example.test}\n",
        encoding="utf-8",
    )

    config = load_app_config(path)

    assert config.database.url == "sqlite:///tmp/test.db"
    assert config.api.base_url == "https://example.test"


def test_invalid_values_raise_config_error(tmp_path):
    path = tmp_path / "app.yaml"
    path.write_text("scan:\n  sample_days: [1, 31]\n", encoding="utf-8")

    with pytest.raises(ConfigError) as exc_info:
        load_app_config(path)

    assert "sample_days" in exc_info.value.details


def test_non_mapping_yaml_is_rejected(tmp_path):
    path = tmp_path / "app.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_app_config(path)


def test_sample_days_are_sorted_and_deduplicated(tmp_path):
    path = tmp_path / "app.yaml"
    path.write_text("scan:\n  sample_days: [15, 1, 15]\n", encoding="utf-8")

    assert load_app_config(path).scan.sample_days == [1, 15]


def test_validate_config_file_reports_locations(tmp_path):
    path = tmp_path / "app.yaml"
    path.write_text("push:\n  batch_size: 500\n", encoding="utf-8")

    errors = validate_config_file(path)

    assert len(errors) == 1
    assert errors[0].startswith("push.batch_size:")
    assert validate_config_file(tmp_path / "absent.yaml")[0].startswith("Configuration file not found")


def test_listing_gap_cannot_drop_below_one_second(tmp_path):
    path = tmp_path / "app.yaml"
    path.write_text("scan:\n  list_delay_ms: 500\n", encoding="utf-8")

    with pytest.raises(ConfigError) as exc_info:
        load_app_config(path)

    assert "list_delay_ms" in exc_info.value.details
