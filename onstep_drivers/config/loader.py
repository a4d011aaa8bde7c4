"""
Configuration loader for loading and validating config.json.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .models import AppConfig


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config.json"


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""
    pass


def _write_config(config: AppConfig, config_path: Path, comment: Optional[str] = None) -> None:
    data = config.model_dump()
    if comment:
        data = {"_comment": comment, **data}

    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def load_config(path: Optional[str] = None) -> AppConfig:
    """
    Load configuration from JSON file.

    A missing file is created with default values.

    Args:
        path: Path to config.json file. If None, looks for config.json in current directory.

    Returns:
        Validated AppConfig instance.

    Raises:
        ConfigurationError: If config file is unreadable or invalid.
    """
    config_path = Path(path or DEFAULT_CONFIG_FILE)

    if not config_path.exists():
        logger.info(
            f"Config file not found: {config_path}. Creating with default configuration."
        )
        config = AppConfig()
        try:
            _write_config(
                config, config_path,
                comment="OnStep/OCS driver configuration (auto-generated)"
            )
            logger.info(f"Created default config file: {config_path}")
        except OSError as e:
            logger.warning(f"Failed to create default config file: {e}")
        return config

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config_dict = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Failed to read {config_path}: {e}") from e

    # Auto-generated files carry a comment key
    config_dict.pop("_comment", None)

    try:
        config = AppConfig(**config_dict)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            field = " -> ".join(str(x) for x in error["loc"])
            errors.append(f"  - {field}: {error['msg']}")

        error_message = "Configuration validation failed:\n" + "\n".join(errors)
        raise ConfigurationError(error_message) from e

    logger.info(f"Configuration loaded from {config_path}")
    return config


def save_config(config: AppConfig, path: Optional[str] = None) -> None:
    """
    Save configuration to JSON file.

    Raises:
        ConfigurationError: If config file cannot be written.
    """
    config_path = Path(path or DEFAULT_CONFIG_FILE)

    try:
        _write_config(config, config_path)
        logger.info(f"Configuration saved to {config_path}")
    except OSError as e:
        raise ConfigurationError(f"Failed to write {config_path}: {e}") from e


def create_example_config(path: str = "config.example.json") -> None:
    """Create an example configuration file with all default values."""
    _write_config(AppConfig(), Path(path))
    logger.info(f"Example configuration created: {path}")


if __name__ == "__main__":
    create_example_config()
    print("Created config.example.json with default values")
