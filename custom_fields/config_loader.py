"""
Configuration loading utilities for the custom fields app.

This module loads config.yaml, merges it over the built-in defaults and
exposes the result as an immutable AppSettings object that is created once
at startup and handed to every component that needs it.
"""

import yaml
import logging
from copy import deepcopy
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")


def deep_merge(base_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, with update_dict taking precedence.

    Args:
        base_dict: Base dictionary (defaults)
        update_dict: Dictionary to merge in (user config)

    Returns:
        Merged dictionary
    """
    result = deepcopy(base_dict)

    for key, value in update_dict.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)

    return result


def get_default_config() -> Dict[str, Any]:
    """
    Get default configuration.

    Returns:
        Dictionary with default configuration
    """
    return {
        'app': {
            'name': 'Custom Fields',
            'version': '1.0.0',
            'debug': False
        },
        'schema': {
            'directory': 'schemas',
            'module_schema': 'module.yaml',
            'field_schema': 'fields.yaml'
        },
        'storage': {
            'data_dir': 'data'
        },
        'notifications': {
            'delay': 0.0,
            'hide_after': 7.5
        },
        'logging': {
            'level': 'INFO'
        },
        'ui': {
            'page_title': 'Custom Fields'
        },
        'catalog': {
            'records': {},
            'categories': {}
        },
        'stats': {
            'records': {},
            'users': {},
            'comments': 0,
            'plugins': []
        }
    }


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load application configuration.

    A missing, empty or unreadable file is not an error: the defaults are
    returned and a warning is logged.

    Args:
        config_path: Optional path to config file (defaults to config.yaml)

    Returns:
        Complete configuration dictionary
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    default_config = get_default_config()

    if not config_path.exists():
        logger.warning(f"Configuration file not found: {config_path}")
        logger.info("Using default configuration")
        return default_config

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            user_config = yaml.safe_load(f)

        if user_config is None:
            logger.warning(f"Configuration file is empty: {config_path}")
            return default_config

        if not isinstance(user_config, dict):
            logger.error(f"Configuration file is not a valid dictionary: {config_path}")
            logger.info("Using default configuration")
            return default_config

        config = deep_merge(default_config, user_config)

        logger.info(f"Successfully loaded configuration from {config_path}")
        return config

    except yaml.YAMLError as e:
        logger.error(f"YAML parsing error in {config_path}: {e}")
        logger.info("Using default configuration")
        return default_config

    except (IOError, OSError) as e:
        logger.error(f"Failed to read configuration file {config_path}: {e}")
        logger.info("Using default configuration")
        return default_config


def validate_config(config: Dict[str, Any]) -> bool:
    """
    Validate configuration structure.

    Args:
        config: Configuration dictionary to validate

    Returns:
        True if configuration is valid, False otherwise
    """
    for section in ['app', 'schema', 'storage', 'notifications']:
        if not isinstance(config.get(section), dict):
            logger.warning(f"Missing required configuration section: {section}")
            return False

    schema = config['schema']
    for key in ['directory', 'module_schema', 'field_schema']:
        if not isinstance(schema.get(key), str) or not schema.get(key):
            logger.warning(f"Schema setting must be a non-empty string: {key}")
            return False

    notifications = config['notifications']
    for key in ['delay', 'hide_after']:
        try:
            if float(notifications.get(key, 0)) < 0:
                logger.warning(f"notifications.{key} must not be negative")
                return False
        except (ValueError, TypeError):
            logger.warning(f"notifications.{key} must be a number")
            return False

    return True


def get_config_value(config: Dict[str, Any], section: str, key: str, default: Any = None) -> Any:
    """
    Get a specific configuration value.

    Args:
        config: Configuration dictionary
        section: Configuration section (e.g., 'schema', 'ui')
        key: Configuration key within section
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    section_values = config.get(section) or {}
    if not isinstance(section_values, dict):
        return default
    return section_values.get(key, default)


def get_logging_level(level_str: Any) -> int:
    """Map string logging level to logging constant."""
    level_map = {
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL
    }
    return level_map.get(str(level_str).upper(), logging.INFO)


@dataclass(frozen=True)
class AppSettings:
    """
    Immutable application settings built once from the configuration.

    Attributes:
        app_name: Display name of the application
        page_title: Browser page title
        schema_dir: Directory holding the schema documents
        module_schema: File name of the module schema
        field_schema: File name of the field schema
        data_dir: Directory used by the file based stores
        notification_delay: Seconds before a notification shows
        notification_hide_after: Seconds a notification stays visible
        log_level: Logging level name
    """
    app_name: str
    page_title: str
    schema_dir: Path
    module_schema: str
    field_schema: str
    data_dir: Path
    notification_delay: float
    notification_hide_after: float
    log_level: str

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'AppSettings':
        """
        Create AppSettings from a configuration dictionary.

        Args:
            config: Configuration dictionary, usually from load_config()

        Returns:
            AppSettings with values from config or defaults
        """
        defaults = get_default_config()
        merged = deep_merge(defaults, config or {})

        return cls(
            app_name=str(get_config_value(merged, 'app', 'name')),
            page_title=str(get_config_value(merged, 'ui', 'page_title')),
            schema_dir=Path(get_config_value(merged, 'schema', 'directory')),
            module_schema=str(get_config_value(merged, 'schema', 'module_schema')),
            field_schema=str(get_config_value(merged, 'schema', 'field_schema')),
            data_dir=Path(get_config_value(merged, 'storage', 'data_dir')),
            notification_delay=float(get_config_value(merged, 'notifications', 'delay', 0.0)),
            notification_hide_after=float(get_config_value(merged, 'notifications', 'hide_after', 7.5)),
            log_level=str(get_config_value(merged, 'logging', 'level', 'INFO')).upper()
        )

    @property
    def module_schema_path(self) -> Path:
        return self.schema_dir / self.module_schema

    @property
    def field_schema_path(self) -> Path:
        return self.schema_dir / self.field_schema
