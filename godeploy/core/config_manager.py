"""Configuration manager for loading service definitions."""

import logging
import os
import re
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import yaml

from ..models.service import ConfigError, ServiceConfig
from ..utils.constants import DEFAULT_CONFIG_FILE

logger = logging.getLogger(__name__)

# Environment variable suffix for each configuration key. The full variable
# name is the service prefix (see env_prefix) followed by "_" and the suffix.
FIELD_KEYS: Dict[str, str] = {
    "user": "USER",
    "host": "HOST",
    "port": "PORT",
    "private_key_path": "PRIVATE_KEY_PATH",
    "go_exec_path": "GO_EXEC_PATH",
    "go_bin_directory": "GO_BIN_DIRECTORY",
    "go_install": "GO_INSTALL",
    "go_private": "GO_PRIVATE",
    "netrc_machine": "NETRC_MACHINE",
    "netrc_login": "NETRC_LOGIN",
    "netrc_password": "NETRC_PASSWORD",
    "systemd_path": "SYSTEMD_PATH",
    "systemd_services_directory": "SYSTEMD_SERVICES_DIRECTORY",
    "systemd_linger_dir": "SYSTEMD_LINGER_DIR",
    "exec_start": "EXEC_START",
    "working_directory": "WORKING_DIRECTORY",
    "environment": "ENVIRONMENT",
    "log_path": "LOG_PATH",
    "run_after_service": "RUN_AFTER_SERVICE",
    "start_limit_burst": "START_LIMIT_BURST",
    "start_limit_interval_sec": "START_LIMIT_INTERVAL_SEC",
    "restart_sec": "RESTART_SEC",
    "copy_files": "COPY_FILES",
    "ignore": "IGNORE",
}


def env_prefix(service_name: str) -> str:
    """Build the environment variable prefix for a service.

    Args:
        service_name: Service name as written in the configuration file

    Returns:
        Upper-cased name with non-alphanumeric characters replaced by '_'
        and a leading '_' if it starts with a digit (e.g. '2fa-api' -> '_2FA_API')
    """
    prefix = re.sub(r"[^A-Za-z0-9]", "_", service_name).upper()
    if prefix[:1].isdigit():
        prefix = "_" + prefix
    return prefix


def env_key(service_name: str, field_name: str) -> str:
    """Name of the environment variable overriding one field of a service."""
    return f"{env_prefix(service_name)}_{FIELD_KEYS[field_name]}"


class ConfigManager:
    """Loads service definitions from a YAML file with environment overlay."""

    def __init__(self, config_path: str = DEFAULT_CONFIG_FILE, environ: Optional[Mapping[str, str]] = None):
        """Initialize the config manager.

        Args:
            config_path: Path of the YAML configuration file
            environ: Environment used for the overlay (defaults to os.environ)
        """
        self.config_path = str(config_path)
        self.environ = os.environ if environ is None else environ
        self.services: Dict[str, ServiceConfig] = {}

    def load_config(self) -> Dict[str, ServiceConfig]:
        """Load configuration from file.

        Returns:
            Mapping of service name to ServiceConfig, in file order

        Raises:
            ConfigError: If the file cannot be read or parsed
        """
        path = Path(self.config_path)
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f)
        except OSError as e:
            logger.debug(f"Failed to read config {path}: {e}")
            raise ConfigError(f"cannot read configuration file `{path}`: {e.strerror or e}")
        except yaml.YAMLError as e:
            logger.debug(f"YAML parsing error: {e}")
            raise ConfigError(f"cannot parse configuration file `{path}`: {e}")

        if data is None:
            logger.warning("Empty config file, no services defined")
            data = {}

        if not self._validate_config(data):
            raise ConfigError(f"configuration file `{path}` must map service names to service options")

        services = {}
        for name, service_data in data.items():
            name = str(name)
            record = self._overlay_environment(name, service_data or {})
            services[name] = ServiceConfig.from_dict(name, record)

        self.services = services
        logger.info(f"Loaded {len(self.services)} services from {path}")
        return self.services

    def get_service(self, service_name: str) -> Optional[ServiceConfig]:
        """Get a service configuration by name.

        Args:
            service_name: Name of the service

        Returns:
            ServiceConfig if found, None otherwise
        """
        return self.services.get(service_name)

    def get_services(self) -> List[ServiceConfig]:
        """Get all service configurations, in file order."""
        return list(self.services.values())

    def _overlay_environment(self, service_name: str, data: dict) -> dict:
        """Override YAML values with environment variables.

        Args:
            service_name: Name of the service
            data: Raw YAML record of the service

        Returns:
            New record with overridden values
        """
        if not isinstance(data, dict):
            return data

        record = dict(data)
        for field_name in FIELD_KEYS:
            key = env_key(service_name, field_name)
            if key in self.environ:
                logger.debug(f"Using {key} from environment for {service_name}.{field_name}")
                record[field_name] = self.environ[key]
        return record

    def _validate_config(self, data) -> bool:
        """Validate configuration data structure.

        Args:
            data: Parsed YAML document

        Returns:
            True if valid, False otherwise
        """
        if not isinstance(data, dict):
            logger.debug("Config must be a dictionary")
            return False

        for name, service_data in data.items():
            if service_data is not None and not isinstance(service_data, dict):
                logger.debug(f"Service {name} must be a dictionary")
                return False

        return True

