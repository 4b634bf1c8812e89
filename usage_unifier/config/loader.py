"""
Configuration management and loading.

Handles the optional YAML run configuration for bundle generation.
"""

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from usage_unifier.core.pricing import LITELLM_PRICING_URL
from usage_unifier.storage.models import CostMode

DEFAULT_MAX_FILES = 5000
DEFAULT_OUT_PATH = "public/local-unified-usage.json"


@dataclass(frozen=True)
class RunConfig:
    """Settings for one bundle generation run."""
    timezone: str = "UTC"
    cost_mode: CostMode = CostMode.AUTO
    max_files: int = DEFAULT_MAX_FILES
    deep: bool = False
    out: str = DEFAULT_OUT_PATH
    pricing_url: str = LITELLM_PRICING_URL
    pricing_timeout: float = 30.0

    def __post_init__(self):
        """Validate numeric limits are positive."""
        if self.max_files <= 0:
            raise ValueError("max_files must be > 0")
        if self.pricing_timeout <= 0:
            raise ValueError("pricing_timeout must be > 0")

    def with_overrides(self, **overrides: Any) -> "RunConfig":
        """Copy with the given values replaced; None values are ignored."""
        values = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **values)


ALLOWED_KEYS = {
    'timezone', 'cost_mode', 'max_files', 'deep', 'out', 'pricing_url', 'pricing_timeout'
}


def parse_cost_mode(value: Any, path: str = "cost_mode") -> CostMode:
    """Parse a cost mode string.

    Raises:
        ValueError: If value is not one of the supported modes
    """
    if isinstance(value, CostMode):
        return value
    if not isinstance(value, str):
        raise ValueError(f"'{path}' must be a string")
    try:
        return CostMode(value.lower())
    except ValueError:
        valid_modes = [mode.value for mode in CostMode]
        raise ValueError(f"'{path}' must be one of: {valid_modes}")


def load_run_config(path: str) -> RunConfig:
    """Load and validate a run configuration from a YAML file.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated RunConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Run config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a mapping")

    unknown_keys = set(raw_config.keys()) - ALLOWED_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    return _parse_run_config(raw_config)


def _parse_run_config(data: Dict[str, Any]) -> RunConfig:
    """Validate individual fields and build a RunConfig."""
    values: Dict[str, Any] = {}

    for key in ('timezone', 'out', 'pricing_url'):
        if key in data:
            if not isinstance(data[key], str) or not data[key].strip():
                raise ValueError(f"'{key}' must be a non-empty string")
            values[key] = data[key].strip()

    if 'cost_mode' in data:
        values['cost_mode'] = parse_cost_mode(data['cost_mode'])

    if 'max_files' in data:
        max_files = data['max_files']
        if isinstance(max_files, bool) or not isinstance(max_files, int) or max_files <= 0:
            raise ValueError("'max_files' must be a positive integer")
        values['max_files'] = max_files

    if 'deep' in data:
        if not isinstance(data['deep'], bool):
            raise ValueError("'deep' must be true or false")
        values['deep'] = data['deep']

    if 'pricing_timeout' in data:
        timeout = data['pricing_timeout']
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError("'pricing_timeout' must be > 0")
        values['pricing_timeout'] = float(timeout)

    return RunConfig(**values)


def resolve_run_config(path: Optional[str] = None, **overrides: Any) -> RunConfig:
    """Run config from an optional file with command line overrides on top."""
    base = load_run_config(path) if path else RunConfig()
    return base.with_overrides(**overrides)
