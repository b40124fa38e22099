"""Configuration file loader with validation"""

import os
from pathlib import Path
from typing import Dict, Any, Optional

import yaml

from .errors import ConfigurationError

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "rules.yaml"

REQUIRED_KEYS = ['version', 'roles', 'rules', 'rule_selection', 'processor_schemas']


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load YAML configuration file with validation.

    Resolution order: explicit path, then RESIDUALS_CONFIG_PATH, then the
    rules file shipped with the package.

    Args:
        config_path: Path to configuration file

    Returns:
        Dictionary with configuration

    Raises:
        ConfigurationError: If file doesn't exist, is invalid YAML or misses required keys
    """
    if config_path is None:
        config_path = os.getenv("RESIDUALS_CONFIG_PATH") or str(DEFAULT_CONFIG_PATH)

    config_file = Path(config_path)
    if not config_file.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_file, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
    except OSError as e:
        raise ConfigurationError(f"Error loading configuration: {e}")

    if not isinstance(config, dict):
        raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

    missing_keys = [key for key in REQUIRED_KEYS if key not in config]
    if missing_keys:
        raise ConfigurationError(f"Missing required configuration keys: {missing_keys}")

    return config


def get_processor_schema(config: Dict[str, Any], processor_name: str) -> Dict[str, Any]:
    """
    Get processor-specific validation schema

    Args:
        config: Full configuration dictionary
        processor_name: Processor name as reported by the upload

    Returns:
        Schema dictionary (falls back to 'default')
    """
    schemas = config.get('processor_schemas', {})
    return schemas.get(processor_name, schemas.get('default', {}))


def get_section(config: Dict[str, Any], section: str) -> Dict[str, Any]:
    """Return an optional top-level section, empty if absent"""
    return config.get(section) or {}
