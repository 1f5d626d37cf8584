"""Configuration loading and validation for Hoard."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


class GatewayConfig(BaseModel):
    """Gateway connection configuration."""

    host: str = "localhost:8080"
    verify_key: str = ""
    account_id: int = 0
    allowed_group_id: int = 0
    reconnect_delay_seconds: float = Field(0.0, ge=0.0)
    cancel_on_reconnect: bool = True

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        """Strip any scheme or trailing slash; URLs are derived per protocol."""
        for scheme in ("ws://", "wss://", "http://", "https://"):
            if v.startswith(scheme):
                v = v[len(scheme):]
        return v.rstrip("/")

    @property
    def ws_url(self) -> str:
        """Websocket endpoint receiving all event kinds."""
        return f"ws://{self.host}/all"

    @property
    def http_base(self) -> str:
        """Base URL for REST calls."""
        return f"http://{self.host}"

    @property
    def connect_params(self) -> dict[str, str]:
        """Query parameters sent on every connect attempt."""
        return {"verifyKey": self.verify_key, "qq": str(self.account_id)}


class StorageConfig(BaseModel):
    """Where collected media is written."""

    root: Path = Path("store/v2")


class NotifyConfig(BaseModel):
    """Acknowledgment reply configuration."""

    enabled: bool = True
    allowed_group_only: bool = False


class Config(BaseModel):
    """Root configuration for Hoard."""

    log_level: str = "INFO"
    log_json: bool = True

    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    notify: NotifyConfig = Field(default_factory=NotifyConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log_level is valid."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of: {allowed}")
        return v_upper

    def validate_runtime(self) -> None:
        """Check that everything needed to connect is present.

        Raises:
            ValueError: Listing every missing or invalid gateway input.
        """
        problems = []
        if not self.gateway.host:
            problems.append("gateway.host is empty")
        if not self.gateway.verify_key:
            problems.append("gateway.verify_key is not set")
        if self.gateway.account_id <= 0:
            problems.append("gateway.account_id must be a positive integer")
        if self.gateway.allowed_group_id <= 0:
            problems.append("gateway.allowed_group_id must be a positive integer")
        if problems:
            raise ValueError("Invalid configuration: " + "; ".join(problems))

    def redacted(self) -> dict[str, Any]:
        """Dump the config with the verify key masked."""
        data = self.model_dump(mode="json")
        if data["gateway"]["verify_key"]:
            data["gateway"]["verify_key"] = "***"
        return data

    @classmethod
    def load(cls, config_path: Path | str = Path("config.yaml")) -> "Config":
        """Load configuration from YAML file with env var overlay.

        Args:
            config_path: Path to YAML configuration file.

        Returns:
            Validated Config instance.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            ValueError: If config is invalid.
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path) as f:
                yaml_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {config_path}: {e}") from e

        if not isinstance(yaml_config, dict):
            raise ValueError(
                f"Configuration in {config_path} must be a mapping, "
                f"got {type(yaml_config).__name__}"
            )

        return cls.model_validate(apply_env_overrides(yaml_config))

    @classmethod
    def load_or_default(cls, config_path: Path | str | None = None) -> "Config":
        """Load configuration, falling back to defaults if file not found.

        Environment overrides apply in both cases.

        Args:
            config_path: Optional path to YAML configuration file.

        Returns:
            Config instance (from file or defaults).
        """
        if config_path is None:
            for path in [Path("hoard.yaml"), Path("config.yaml"), Path("config.yml")]:
                if path.exists():
                    return cls.load(path)
            return cls.model_validate(apply_env_overrides({}))

        try:
            return cls.load(config_path)
        except FileNotFoundError:
            return cls.model_validate(apply_env_overrides({}))


# Environment variable -> (section, key); section None means top level
ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "HOARD_HOST": ("gateway", "host"),
    "HOARD_VERIFY_KEY": ("gateway", "verify_key"),
    "HOARD_ACCOUNT_ID": ("gateway", "account_id"),
    "HOARD_ALLOWED_GROUP_ID": ("gateway", "allowed_group_id"),
    "HOARD_STORE_ROOT": ("storage", "root"),
    "HOARD_LOG_LEVEL": (None, "log_level"),
    "HOARD_LOG_JSON": (None, "log_json"),
}


def apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Overlay HOARD_* environment variables onto raw config data.

    Args:
        raw: Parsed YAML mapping (not mutated).

    Returns:
        New mapping with environment values applied.
    """
    merged = {k: dict(v) if isinstance(v, dict) else v for k, v in raw.items()}

    for env_var, (section, key) in ENV_OVERRIDES.items():
        if env_var not in os.environ:
            continue
        value: Any = os.environ[env_var]
        if key == "log_json":
            value = value.lower() == "true"
        if section is None:
            merged[key] = value
        else:
            if not isinstance(merged.get(section), dict):
                merged[section] = {}
            merged[section][key] = value

    return merged
