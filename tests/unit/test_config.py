"""Unit tests for configuration models and loaders."""

import json
from decimal import Decimal

import pytest
from pydantic import ValidationError

from commerce_core.config.models import AppConfig, DatabaseSettings
from commerce_core.config.settings import get_config_from_env, load_config


class TestAppConfig:
    def test_defaults(self):
        config = AppConfig()

        assert config.pricing.bank_transfer_surcharge_rate == Decimal("0.04")
        assert config.rooms.max_members == 5
        assert config.rooms.ttl_seconds == 1800
        assert config.api_key is None

    def test_rejects_sync_database_driver(self):
        with pytest.raises(ValidationError):
            DatabaseSettings(url="sqlite:///data/commerce.db")

    def test_file_round_trip(self, tmp_path):
        path = tmp_path / "config" / "config.json"
        config = AppConfig.model_validate(
            {"catalog": {"title": "Otoño 2024"}, "rooms": {"max_members": 3}}
        )

        config.to_file(path)
        loaded = load_config(path.parent)

        assert loaded == config
        assert json.loads(path.read_text())["catalog"]["title"] == "Otoño 2024"

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        with pytest.raises(ValueError):
            AppConfig.from_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            AppConfig.from_file(tmp_path / "missing.json")


class TestEnvironmentConfig:
    def test_no_variables(self):
        assert get_config_from_env({}) is None

    def test_variables_map_to_sections(self):
        config = get_config_from_env(
            {
                "COMMERCE_ROOM_MAX_MEMBERS": "3",
                "COMMERCE_BANK_TRANSFER_RATE": "0.05",
                "COMMERCE_API_KEY": "secret",
            }
        )

        assert config.rooms.max_members == 3
        assert config.pricing.bank_transfer_surcharge_rate == Decimal("0.05")
        assert config.api_key == "secret"

    def test_invalid_value(self):
        with pytest.raises(ValueError):
            get_config_from_env({"COMMERCE_ROOM_MAX_MEMBERS": "zero"})
