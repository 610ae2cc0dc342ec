"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. --config <path> CLI flag
2. ./fulfillment.yaml (working directory)
3. ~/.fulfillment/config.yaml (user home)

Environment variables override YAML: FULFILLMENT_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
When no file is found the defaults are used, which read credentials from
the conventional SHOPIFY_* / SHIPROCKET_* variables.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")
_ENV_PREFIX = "FULFILLMENT_"


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


def _env(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip()


class ServerConfig(BaseModel):
    """HTTP server settings."""

    host: str = "127.0.0.1"
    port: int = 3001
    log_level: str = "info"


class ShopifyConfig(BaseModel):
    """Storefront (Shopify Admin API) credentials and query defaults."""

    store_domain: str = Field(default_factory=lambda: _env("SHOPIFY_STORE_DOMAIN"))
    client_id: str = Field(default_factory=lambda: _env("SHOPIFY_CLIENT_ID"))
    client_secret: str = Field(default_factory=lambda: _env("SHOPIFY_CLIENT_SECRET"))
    api_version: str = "2026-01"
    lookback_days: int = Field(
        default_factory=lambda: int(_env("DETAILS_LOOKBACK_DAYS", "3") or 3)
    )
    timeout_seconds: float = 30.0


class CarrierConfig(BaseModel):
    """Shiprocket API credentials and lookup bounds."""

    base_url: str = "https://apiv2.shiprocket.in/v1/external"
    email: str = Field(default_factory=lambda: _env("SHIPROCKET_EMAIL"))
    password: str = Field(default_factory=lambda: _env("SHIPROCKET_PASSWORD"))
    timeout_seconds: float = 30.0
    max_search_pages: int = 5
    per_page: int = 100


class WalletConfig(BaseModel):
    """Policy values for the pre-flight wallet estimate."""

    fallback_shipping_cost: float = 95.0
    safety_margin: float = 0.10

    @field_validator("safety_margin")
    @classmethod
    def margin_in_range(cls, value: float) -> float:
        """Reject negative or absurd margins."""
        if value < 0 or value > 1:
            raise ValueError("safety_margin must be between 0 and 1")
        return value


class JobConfig(BaseModel):
    """Label job behaviour."""

    lookup_concurrency: int = Field(1, ge=1)
    schedule_pickup: bool = True
    timeout_seconds: float = 1800
    progress_every: int = Field(5, ge=1)


class ReportConfig(BaseModel):
    """Report and batch history settings."""

    gst_rate: float = Field(default_factory=lambda: float(_env("GST_RATE", "18") or 18))
    history_limit: int = 50


class FulfillmentConfig(BaseModel):
    """Top-level configuration for the fulfillment service."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    shopify: ShopifyConfig = Field(default_factory=ShopifyConfig)
    carrier: CarrierConfig = Field(default_factory=CarrierConfig)
    wallet: WalletConfig = Field(default_factory=WalletConfig)
    jobs: JobConfig = Field(default_factory=JobConfig)
    reports: ReportConfig = Field(default_factory=ReportConfig)


def _find_config_file() -> Path | None:
    candidates = [
        Path.cwd() / "fulfillment.yaml",
        Path.cwd() / "fulfillment.yml",
        Path.home() / ".fulfillment" / "config.yaml",
        Path.home() / ".fulfillment" / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply FULFILLMENT_<SECTION>_<KEY> env var overrides to config data.

    For example ``FULFILLMENT_WALLET_SAFETY_MARGIN=0.2`` maps to section
    ``wallet``, field ``safety_margin``. Values stay strings and are
    coerced by field type during validation.
    """
    known_sections = sorted(
        FulfillmentConfig.model_fields.keys(), key=len, reverse=True
    )
    for key, value in os.environ.items():
        if not key.startswith(_ENV_PREFIX):
            continue
        suffix = key[len(_ENV_PREFIX):].lower()
        matched_section = None
        matched_field = None
        for section in known_sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix):
                matched_section = section
                matched_field = suffix[len(section_prefix):]
                break
        if matched_section is None or not matched_field:
            continue
        section_data = data.setdefault(matched_section, {})
        if isinstance(section_data, dict):
            section_data[matched_field] = value
    return data


def load_config(config_path: str | None = None) -> FulfillmentConfig:
    """Load configuration from YAML (if any) plus env overrides.

    Args:
        config_path: Explicit path to config file. If None, searches
            standard locations (cwd, then ~/.fulfillment/).

    Returns:
        Validated FulfillmentConfig. Defaults apply when no file exists.

    Raises:
        FileNotFoundError: If an explicit config_path does not exist.
    """
    if config_path:
        path: Path | None = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()

    raw_data: dict[str, Any] = {}
    if path is not None:
        logger.info("Loading config from %s", path)
        with open(path) as f:
            raw_data = yaml.safe_load(f) or {}

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)
    return FulfillmentConfig(**data)
