"""Configuration loading with YAML parsing and validation."""

from pathlib import Path
from typing import Any

import pydantic_yaml

from .schema import EngineConfig


def load_config(config_path: Path | str) -> EngineConfig:
    """
    Load and validate engine configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated EngineConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        pydantic.ValidationError: If config is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r") as f:
        yaml_content = f.read()

    return pydantic_yaml.parse_yaml_raw_as(EngineConfig, yaml_content)


def load_config_with_overrides(
    config_path: Path | str,
    overrides: dict[str, Any],
) -> EngineConfig:
    """
    Load config from YAML and apply dictionary overrides.

    Used by CLI flags that override config file values. Nested keys are
    written with dots, e.g. "diff_expression.tie_policy".

    Raises:
        FileNotFoundError: If config file doesn't exist
        KeyError: If a dotted key traverses an unknown section
        pydantic.ValidationError: If final config is invalid
    """
    config_dict = load_config(config_path).model_dump()

    for key, value in overrides.items():
        if value is None:
            continue
        parts = key.split(".")
        target = config_dict
        for part in parts[:-1]:
            target = target[part]
        target[parts[-1]] = value

    return EngineConfig.model_validate(config_dict)
