#!/usr/bin/env python3
"""Settlement parameter invariant checks against config/settlement_params.json."""

import json
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from urllib.parse import urlparse


ROOT = Path(__file__).resolve().parents[1]
PARAMS_PATH = ROOT / "config" / "settlement_params.json"

VALID_FEE_MODES = {"on_top", "included"}


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def check_commission(commission: dict, errors: list[str]) -> None:
    raw = commission.get("default_percentage_rate")
    if isinstance(raw, float):
        errors.append("commission.default_percentage_rate must be a string or integer, not float")
        return
    try:
        rate = Decimal(str(raw))
    except InvalidOperation:
        errors.append(f"commission.default_percentage_rate is not a number: {raw!r}")
        return
    if not (Decimal("0") <= rate <= Decimal("100")):
        errors.append(f"commission.default_percentage_rate must be in [0, 100], got {rate}")
    if not isinstance(commission.get("apply_default_rate", False), bool):
        errors.append("commission.apply_default_rate must be a boolean")


def check_gateway(gateway: dict, errors: list[str]) -> None:
    url = urlparse(str(gateway.get("base_url", "")))
    if url.scheme != "https" or not url.netloc:
        errors.append("gateway.base_url must be an https URL")
    timeout = gateway.get("timeout_seconds")
    if not isinstance(timeout, (int, float)) or timeout <= 0:
        errors.append("gateway.timeout_seconds must be a positive number")
    elif timeout > 60:
        errors.append(f"gateway.timeout_seconds must be <= 60, got {timeout}")
    if "api_key" in gateway:
        errors.append("gateway.api_key must not be stored in the parameter file")


def check(params_path: Path = PARAMS_PATH) -> int:
    params = load_json(params_path)
    errors: list[str] = []

    for section in ("commission", "gateway"):
        if section not in params:
            errors.append(f"Missing section: {section}")

    # --- Commission invariants ---
    if "commission" in params:
        check_commission(params["commission"], errors)

    # --- Platform fee invariants ---
    mode = params.get("platform_fee", {}).get("default_mode", "on_top")
    if mode not in VALID_FEE_MODES:
        errors.append(f"platform_fee.default_mode must be one of {sorted(VALID_FEE_MODES)}")

    # --- Gateway invariants ---
    if "gateway" in params:
        check_gateway(params["gateway"], errors)

    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1

    print("Invariant check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(check(Path(sys.argv[1]) if len(sys.argv) > 1 else PARAMS_PATH))
