"""Session configuration with YAML support."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import Field, field_validator

from sandbox.protocol import DEFAULT_ENGINE

from .schemas import (
    DEFAULT_CAP_BYTES,
    DEFAULT_TIMEOUT_MS,
    BaseSchema,
    RunOptions,
    check_cap_bytes,
    check_timeout_ms,
)


class PlaygroundConfig(BaseSchema):
    """Defaults for a session and the sandbox processes it starts."""

    # Per-run defaults, overridable on each submit
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    cap_bytes: int = DEFAULT_CAP_BYTES

    # Sandbox bootstrap
    load_timeout_s: float = Field(default=30.0, gt=0)
    engine: str = DEFAULT_ENGINE
    python_executable: str | None = None
    memory_limit_mb: int | None = Field(default=None, gt=0)

    @field_validator("timeout_ms")
    @classmethod
    def timeout_ms_allowed(cls, value: int) -> int:
        return check_timeout_ms(value)

    @field_validator("cap_bytes")
    @classmethod
    def cap_bytes_allowed(cls, value: int) -> int:
        return check_cap_bytes(value)

    @field_validator("engine")
    @classmethod
    def engine_has_attr(cls, value: str) -> str:
        module_name, _, attr = value.partition(":")
        if not module_name or not attr:
            raise ValueError(f"engine must look like 'module:attr', got {value!r}")
        return value

    def run_options(self, timeout_ms: int | None = None, cap_bytes: int | None = None) -> RunOptions:
        return RunOptions(
            timeout_ms=self.timeout_ms if timeout_ms is None else timeout_ms,
            cap_bytes=self.cap_bytes if cap_bytes is None else cap_bytes,
        )


def load_config(yaml_path: str | Path) -> PlaygroundConfig:
    """Load session configuration from a YAML file.

    Args:
        yaml_path: Path to YAML configuration file

    Returns:
        PlaygroundConfig instance

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ValueError: If YAML is invalid or holds unsupported values
    """
    yaml_path = Path(yaml_path)

    if not yaml_path.exists():
        raise FileNotFoundError(f"Config file not found: {yaml_path}")

    with open(yaml_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        return PlaygroundConfig()
    if not isinstance(data, dict):
        raise ValueError(f"Empty or invalid YAML file: {yaml_path}")

    try:
        return PlaygroundConfig.from_dict(data)
    except Exception as e:
        raise ValueError(f"Invalid configuration in {yaml_path}: {e}") from e


def save_config(config: PlaygroundConfig, yaml_path: str | Path) -> None:
    """Write configuration to YAML.

    Args:
        config: PlaygroundConfig to save
        yaml_path: Path where to save YAML file
    """
    yaml_path = Path(yaml_path)
    yaml_path.parent.mkdir(parents=True, exist_ok=True)

    data = config.to_dict()

    with open(yaml_path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False, indent=2)
