"""
Engine configuration.

Typed configuration objects for:
- Pricing (callback budget ceiling, overheads, premium, flat fee, unit price)
- Domain separation (chain id, application prefix) and the signature scheme

Provides:
- validated dataclasses, with copy-on-update for admin pricing changes
- TRAND_* environment overrides (prefix configurable)
- JSON files, or YAML when PyYAML is installed
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict

from .constants import DEFAULT_APPLICATION, SCHEME_BN254

# -------------------------
# Pricing
# -------------------------


@dataclass
class PricingConfig:
    """
    Compute-unit pricing.

    max_callback_budget:     largest callback budget a request may ask for
    fixed_overhead:          units spent after the callback (accounting, events)
    pairing_check_overhead:  units charged for the signature verification
    dispatch_overhead:       minimum units reserved and charged for dispatching the callback
    premium_percentage:      markup applied to the metered base price
    flat_fee:                added once per request, after the premium
    price_per_unit:          unit price used when the caller does not supply one
    """

    max_callback_budget: int = 2_500_000
    fixed_overhead: int = 33_285
    pairing_check_overhead: int = 800_000
    dispatch_overhead: int = 5_000
    premium_percentage: int = 10
    flat_fee: int = 0
    price_per_unit: int = 1

    def validate(self) -> None:
        for f in fields(self):
            v = getattr(self, f.name)
            if not isinstance(v, int) or isinstance(v, bool):
                raise ValueError(f"{f.name} must be an int")
            if v < 0:
                raise ValueError(f"{f.name} must be >= 0")
        if self.premium_percentage > 1_000:
            raise ValueError("premium_percentage must be <= 1000")

    def updated(self, **changes: Any) -> "PricingConfig":
        """Return a validated copy with ``changes`` applied."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ValueError(f"unknown pricing field(s): {', '.join(unknown)}")
        cfg = replace(self, **changes)
        cfg.validate()
        return cfg

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# -------------------------
# Top-level config
# -------------------------


@dataclass
class EngineConfig:
    """
    chain_id:    mixed into the randomness DST so signatures are chain-bound
    application: DST prefix (``<application>-randomness-v01-...``)
    scheme_id:   registry key of the scheme randomness requests are signed with
    pricing:     see PricingConfig
    """

    chain_id: int = 31337
    application: str = DEFAULT_APPLICATION
    scheme_id: str = SCHEME_BN254
    pricing: PricingConfig = field(default_factory=PricingConfig)

    def validate(self) -> None:
        if self.chain_id < 0:
            raise ValueError("chain_id must be >= 0")
        if not self.application or not self.application.isascii():
            raise ValueError("application must be a non-empty ASCII string")
        if not self.scheme_id:
            raise ValueError("scheme_id must be non-empty")
        self.pricing.validate()

    # -------------------------
    # Serialization helpers
    # -------------------------

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)

    # -------------------------
    # Loaders
    # -------------------------

    @staticmethod
    def from_env(prefix: str = "TRAND_") -> "EngineConfig":
        """
        Build a config from ``<prefix>*`` variables; unset ones keep their defaults.

        Supported keys:
          - TRAND_CHAIN_ID=31337
          - TRAND_APPLICATION=trand
          - TRAND_SCHEME_ID=BN254

          - TRAND_MAX_CALLBACK_BUDGET=2500000
          - TRAND_FIXED_OVERHEAD=33285
          - TRAND_PAIRING_CHECK_OVERHEAD=800000
          - TRAND_DISPATCH_OVERHEAD=5000
          - TRAND_PREMIUM_PERCENTAGE=10
          - TRAND_FLAT_FEE=0
          - TRAND_PRICE_PER_UNIT=1
        """

        def _get(name: str, cast: Any, default: Any) -> Any:
            key = prefix + name
            raw = os.getenv(key)
            if raw is None:
                return default
            try:
                return cast(raw)
            except Exception as e:
                raise ValueError(f"Invalid value for {key}: {raw!r}") from e

        d = PricingConfig()
        cfg = EngineConfig(
            chain_id=_get("CHAIN_ID", int, 31337),
            application=_get("APPLICATION", str, DEFAULT_APPLICATION),
            scheme_id=_get("SCHEME_ID", str, SCHEME_BN254),
            pricing=PricingConfig(
                **{f.name: _get(f.name.upper(), int, getattr(d, f.name)) for f in fields(d)}
            ),
        )
        cfg.validate()
        return cfg

    @staticmethod
    def from_file(path: str) -> "EngineConfig":
        """
        Load configuration from a JSON or YAML file. Keys mirror the dataclass
        structure. Example (YAML):

            chain_id: 31337
            application: trand
            pricing:
              max_callback_budget: 2500000
              premium_percentage: 10
        """
        with open(path, "r", encoding="utf-8") as f:
            data = _parse_json_or_yaml(f.read(), path)
        return EngineConfig.from_dict(data)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "EngineConfig":
        data = dict(data or {})
        pricing_d = dict(data.pop("pricing", None) or {})
        known = {f.name for f in fields(PricingConfig)}
        unknown = sorted(set(pricing_d) - known)
        if unknown:
            raise ValueError(f"unknown pricing key(s): {', '.join(unknown)}")
        cfg = EngineConfig(
            chain_id=int(data.pop("chain_id", 31337)),
            application=str(data.pop("application", DEFAULT_APPLICATION)),
            scheme_id=str(data.pop("scheme_id", SCHEME_BN254)),
            pricing=PricingConfig(**{k: int(v) for k, v in pricing_d.items()}),
        )
        if data:
            raise ValueError(f"unknown config key(s): {', '.join(sorted(data))}")
        cfg.validate()
        return cfg


# -------------------------
# Utilities
# -------------------------


def _parse_json_or_yaml(text: str, path_hint: str) -> Dict[str, Any]:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    try:
        import yaml  # type: ignore

        return yaml.safe_load(text) or {}
    except Exception as e:
        raise ValueError(
            f"{path_hint!r} is neither JSON nor YAML (is PyYAML installed?): {e}"
        ) from e


DEFAULT: EngineConfig = EngineConfig()

__all__ = ["PricingConfig", "EngineConfig", "DEFAULT"]
