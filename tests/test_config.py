"""Tests for settlement configuration loading."""

import json
import os
from decimal import Decimal
from pathlib import Path
from unittest import mock

import pytest

from splitsettle.config import API_KEY_ENV, PARAMS_FILENAME, SettlementConfig
from splitsettle.errors import ConfigurationError
from splitsettle.models.payment import FeeMode


def _params(**overrides) -> dict:
    params = {
        "commission": {"default_percentage_rate": "10", "apply_default_rate": False},
        "platform_fee": {"default_mode": "on_top"},
        "gateway": {
            "base_url": "https://gateway.test/v1/",
            "timeout_seconds": 20,
            "platform_label": "splitsettle",
        },
    }
    params.update(overrides)
    return params


def _write(config_dir: Path, params: dict) -> None:
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / PARAMS_FILENAME).write_text(json.dumps(params), encoding="utf-8")


class TestFromDict:
    def test_valid_params(self) -> None:
        config = SettlementConfig.from_dict(_params(), api_key="sk_test")
        assert config.default_percentage_rate == Decimal("10")
        assert config.apply_default_rate is False
        assert config.default_fee_mode == FeeMode.ON_TOP
        assert config.gateway.base_url == "https://gateway.test/v1"
        assert config.gateway.timeout_seconds == 20.0
        assert config.gateway.api_key == "sk_test"

    def test_missing_section(self) -> None:
        params = _params()
        del params["gateway"]
        with pytest.raises(ConfigurationError, match="Invalid settlement parameters"):
            SettlementConfig.from_dict(params)

    def test_unknown_fee_mode(self) -> None:
        with pytest.raises(ConfigurationError):
            SettlementConfig.from_dict(_params(platform_fee={"default_mode": "sideways"}))

    def test_rate_out_of_range(self) -> None:
        params = _params(commission={"default_percentage_rate": "150"})
        with pytest.raises(ConfigurationError, match="outside"):
            SettlementConfig.from_dict(params)

    def test_non_numeric_rate(self) -> None:
        params = _params(commission={"default_percentage_rate": "ten"})
        with pytest.raises(ConfigurationError):
            SettlementConfig.from_dict(params)

    def test_non_positive_timeout(self) -> None:
        params = _params()
        params["gateway"]["timeout_seconds"] = 0
        with pytest.raises(ConfigurationError, match="timeout"):
            SettlementConfig.from_dict(params)


class TestFromConfigDir:
    """load_dotenv writes to os.environ, so each test restores it."""

    def test_reads_key_from_env_file(self, tmp_path) -> None:
        config_dir = tmp_path / "config"
        _write(config_dir, _params())
        (tmp_path / ".env").write_text(f"{API_KEY_ENV}=sk_from_file\n", encoding="utf-8")

        with mock.patch.dict(os.environ):
            os.environ.pop(API_KEY_ENV, None)
            config = SettlementConfig.from_config_dir(config_dir)
        assert config.gateway.api_key == "sk_from_file"

    def test_environment_wins_over_env_file(self, tmp_path) -> None:
        config_dir = tmp_path / "config"
        _write(config_dir, _params())
        (tmp_path / ".env").write_text(f"{API_KEY_ENV}=sk_from_file\n", encoding="utf-8")

        with mock.patch.dict(os.environ, {API_KEY_ENV: "sk_from_env"}):
            config = SettlementConfig.from_config_dir(config_dir)
        assert config.gateway.api_key == "sk_from_env"

    def test_missing_key_is_empty(self, tmp_path) -> None:
        config_dir = tmp_path / "config"
        _write(config_dir, _params())

        with mock.patch.dict(os.environ):
            os.environ.pop(API_KEY_ENV, None)
            config = SettlementConfig.from_config_dir(config_dir)
        assert config.gateway.api_key == ""

    def test_missing_parameter_file(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError, match="Missing parameter file"):
            SettlementConfig.from_config_dir(tmp_path)

    def test_repository_params_load(self, tmp_path) -> None:
        root = Path(__file__).resolve().parents[1]
        with mock.patch.dict(os.environ):
            config = SettlementConfig.from_config_dir(
                root / "config", env_file=tmp_path / "missing.env",
            )
        assert config.default_fee_mode == FeeMode.ON_TOP
        assert config.gateway.base_url.startswith("https://")
