"""Configuration persistence for FourCorners.

Saves and restores drill parameters, the enabled corners and the chosen
difficulty between application launches.
"""
import json
import logging
import os
import sys
from typing import Dict, Any

logger = logging.getLogger(__name__)

APP_DIR_NAME = 'FourCorners'


def _user_data_dir(xdg_var: str, xdg_default: str) -> str:
    if sys.platform == 'win32':
        # Windows: Use AppData\Local
        base = os.environ.get('LOCALAPPDATA', os.path.expanduser('~'))
        return os.path.join(base, APP_DIR_NAME)
    elif sys.platform == 'darwin':
        # macOS: Use ~/Library/Application Support
        return os.path.join(os.path.expanduser('~'), 'Library', 'Application Support', APP_DIR_NAME)
    # Linux/Unix: Use XDG_* or the XDG default under ~
    base = os.environ.get(xdg_var, os.path.join(os.path.expanduser('~'), xdg_default))
    return os.path.join(base, APP_DIR_NAME.lower())


def get_config_path() -> str:
    """Get platform-appropriate config file path.

    Returns:
        Path to the config file based on the platform.
    """
    return os.path.join(_user_data_dir('XDG_CONFIG_HOME', '.config'), 'config.json')


def get_default_log_dir() -> str:
    """Get platform-appropriate default directory for drill CSV logs."""
    return os.path.join(_user_data_dir('XDG_DATA_HOME', os.path.join('.local', 'share')), 'logs')


def load_config(path: str = None) -> Dict[str, Any]:
    """Load configuration from disk.

    Returns:
        Dictionary with configuration data, or empty dict if file doesn't exist
        or can't be parsed.
    """
    config_path = path or get_config_path()
    if not os.path.exists(config_path):
        return {}

    try:
        with open(config_path, 'r') as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Ignoring unreadable config %s: %s", config_path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config %s: expected an object", config_path)
        return {}
    return data


def save_config(config: Dict[str, Any], path: str = None) -> None:
    """Save configuration to disk.

    Args:
        config: Dictionary with configuration data to save.
        path: Override for the platform config path.
    """
    config_path = path or get_config_path()
    try:
        os.makedirs(os.path.dirname(config_path), exist_ok=True)
        with open(config_path, 'w') as f:
            json.dump(config, indent=2, fp=f)
    except OSError as e:
        logger.warning("Could not save config to %s: %s", config_path, e)
