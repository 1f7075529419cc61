"""Settlement configuration — parameter file plus gateway credentials.

Parameters live in ``config/settlement_params.json``. Credentials never
do: the gateway API key is read from the environment
(``SPLITSETTLE_GATEWAY_API_KEY``), optionally populated from a ``.env``
file beside the config directory.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from splitsettle.errors import ConfigurationError
from splitsettle.models.payment import FeeMode

PARAMS_FILENAME = "settlement_params.json"
API_KEY_ENV = "SPLITSETTLE_GATEWAY_API_KEY"


@dataclass(frozen=True)
class GatewayConfig:
    """Connection parameters for the card gateway."""
    base_url: str
    timeout_seconds: float
    platform_label: str = ""
    api_key: str = ""


@dataclass(frozen=True)
class SettlementConfig:
    """Engine-wide parameters.

    ``default_percentage_rate`` applies to line items no commission rule
    matches, but only when ``apply_default_rate`` is set; otherwise such
    items carry no commission.
    """
    default_percentage_rate: Decimal
    apply_default_rate: bool
    default_fee_mode: FeeMode
    gateway: GatewayConfig

    @classmethod
    def from_dict(cls, params: dict[str, Any], api_key: str = "") -> SettlementConfig:
        try:
            commission = params["commission"]
            gateway = params["gateway"]
            rate = Decimal(str(commission["default_percentage_rate"]))
            mode = FeeMode(params.get("platform_fee", {}).get("default_mode", "on_top"))
            config = cls(
                default_percentage_rate=rate,
                apply_default_rate=bool(commission.get("apply_default_rate", False)),
                default_fee_mode=mode,
                gateway=GatewayConfig(
                    base_url=str(gateway["base_url"]).rstrip("/"),
                    timeout_seconds=float(gateway.get("timeout_seconds", 20)),
                    platform_label=str(gateway.get("platform_label", "")),
                    api_key=api_key,
                ),
            )
        except (KeyError, ValueError, ArithmeticError) as exc:
            raise ConfigurationError(f"Invalid settlement parameters: {exc}") from exc

        if not (Decimal("0") <= config.default_percentage_rate <= Decimal("100")):
            raise ConfigurationError(
                f"default_percentage_rate {config.default_percentage_rate} outside [0, 100]"
            )
        if config.gateway.timeout_seconds <= 0:
            raise ConfigurationError("gateway.timeout_seconds must be positive")
        return config

    @classmethod
    def from_config_dir(
        cls,
        config_dir: Path,
        env_file: Optional[Path] = None,
    ) -> SettlementConfig:
        """Load parameters from ``config_dir`` and the key from the environment."""
        params_path = config_dir / PARAMS_FILENAME
        if not params_path.exists():
            raise ConfigurationError(f"Missing parameter file: {params_path}")
        params = json.loads(params_path.read_text(encoding="utf-8"))

        load_dotenv(env_file or config_dir.parent / ".env")
        return cls.from_dict(params, api_key=os.getenv(API_KEY_ENV, "").strip())
