import os
import copy
import json
import logging
from pathlib import Path
from typing import Any, Optional

from ..errors import ConfigParseError

logger = logging.getLogger("winsw_manager.config")

WINSW_DOWNLOAD_URL = 'https://github.com/winsw/winsw/releases/download/v2.12.0/WinSW-x64.exe'


def default_config_dir() -> str:
    """User-level directory for winsw-manager preferences and downloads."""
    if os.name == 'nt':  # Windows
        return os.path.join(os.getenv('APPDATA', os.path.expanduser('~')), 'winsw-manager')
    return os.path.expanduser(os.path.join('~', '.winsw-manager'))


class ConfigManager:
    """
    Manager for winsw-manager preferences.
    """

    DEFAULT_CONFIG = {
        "wrapper": {
            "path": "",
            "download_url": WINSW_DOWNLOAD_URL
        },
        "service": {
            "config_directory": ""  # Will be set during initialization
        },
        "logging": {
            "level": "INFO",
            "directory": ""
        },
        "recent_services": []  # List of recently managed service ids
    }

    def __init__(self, config_dir=None):
        """
        Initialize the configuration manager.

        Args:
            config_dir: Directory to store the preferences file,
                       defaults to the user's AppData directory
        """
        self.config = {}
        self.config_dir = config_dir or default_config_dir()

        # Create config directory if it doesn't exist
        Path(self.config_dir).mkdir(parents=True, exist_ok=True)

        self.config_file = os.path.join(self.config_dir, 'config.json')

        self.defaults = copy.deepcopy(self.DEFAULT_CONFIG)
        self.defaults["service"]["config_directory"] = os.path.join(self.config_dir, 'services')

        self.load_config()

    def load_config(self):
        """
        Load configuration from file or create default if it doesn't exist.

        Raises:
            ConfigParseError: If the file exists but is not valid JSON
        """
        if os.path.exists(self.config_file):
            try:
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    self.config = json.load(f)
            except json.JSONDecodeError as e:
                logger.error(f"Error loading configuration: {str(e)}")
                raise ConfigParseError(self.config_file, str(e)) from e

            # Make sure all default keys exist
            self._ensure_defaults()
            logger.info(f"Configuration loaded from {self.config_file}")
        else:
            self.config = copy.deepcopy(self.defaults)
            self.save_config()
            logger.info("Created new configuration with defaults")

    def _ensure_defaults(self):
        """Ensure all default configuration keys exist."""
        def update_nested_dict(d, u):
            for k, v in u.items():
                if isinstance(v, dict) and k in d and isinstance(d[k], dict):
                    update_nested_dict(d[k], v)
                elif k not in d:
                    d[k] = copy.deepcopy(v)
            return d

        self.config = update_nested_dict(self.config, self.defaults)

    def save_config(self):
        """Save configuration to file."""
        with open(self.config_file, 'w', encoding='utf-8') as f:
            json.dump(self.config, f, indent=4)
        logger.info(f"Configuration saved to {self.config_file}")

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            section: Configuration section
            key: Configuration key
            default: Default value if not found

        Returns:
            The configuration value or default
        """
        return self.config.get(section, {}).get(key, default)

    def set(self, section: str, key: str, value: Any):
        self.config.setdefault(section, {})[key] = value

    def get_wrapper_path(self) -> Optional[str]:
        return self.get('wrapper', 'path') or None

    def get_config_directory(self) -> str:
        return self.get('service', 'config_directory') or self.defaults['service']['config_directory']

    def add_recent_service(self, service_id: str, max_recent: int = 10):
        """
        Add a service to the recent services list and save.

        Args:
            service_id: Id of the service
            max_recent: Maximum number of recent services to keep
        """
        recent = self.config.get('recent_services', [])

        if service_id in recent:
            recent.remove(service_id)
        recent.insert(0, service_id)

        self.config['recent_services'] = recent[:max_recent]
        self.save_config()

    def get_recent_services(self) -> list:
        return self.config.get('recent_services', [])
