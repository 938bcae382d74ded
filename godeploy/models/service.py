"""Data models for remote service deployment."""

import getpass
import logging
import posixpath
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Tuple

from ..utils.constants import (
    DEFAULT_GO_BIN_SUBDIR,
    DEFAULT_GO_EXEC_PATH,
    DEFAULT_PORT,
    DEFAULT_PRIVATE_KEY_PATH,
    DEFAULT_SYSTEMD_LINGER_DIR,
    DEFAULT_SYSTEMD_PATH,
    DEFAULT_SYSTEMD_SERVICES_SUBDIR,
)

logger = logging.getLogger(__name__)

# Last path element before the version suffix, e.g. "github.com/pioz/god@latest" -> "god"
PACKAGE_EXEC_RE = re.compile(r"/?([-_\w]+)@.*")


class ConfigError(ValueError):
    """Raised when the configuration is missing, malformed or incomplete."""


class Severity(Enum):
    """Severity of a progress event."""

    NORMAL = "normal"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class ProgressEvent:
    """A message describing the outcome of one step for one service."""

    service_name: str
    text: str
    severity: Severity = Severity.NORMAL


def to_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def to_int(value: Any) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"invalid integer value `{value}`")


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def to_list(value: Any) -> Tuple[str, ...]:
    if value is None or value == "":
        return ()
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(",") if part.strip())
    return tuple(str(item) for item in value)


# Parser for each configuration key, keyed by its YAML name
FIELD_PARSERS: Dict[str, Callable[[Any], Any]] = {
    "user": to_str,
    "host": to_str,
    "port": to_int,
    "private_key_path": to_str,
    "go_exec_path": to_str,
    "go_bin_directory": to_str,
    "go_install": to_str,
    "go_private": to_str,
    "netrc_machine": to_str,
    "netrc_login": to_str,
    "netrc_password": to_str,
    "systemd_path": to_str,
    "systemd_services_directory": to_str,
    "systemd_linger_dir": to_str,
    "exec_start": to_str,
    "working_directory": to_str,
    "environment": to_str,
    "log_path": to_str,
    "run_after_service": to_str,
    "start_limit_burst": to_int,
    "start_limit_interval_sec": to_int,
    "restart_sec": to_int,
    "copy_files": to_list,
    "ignore": to_bool,
}


def exec_name(package: str) -> str:
    """Return the executable name `go install` produces for a package path.

    Args:
        package: Package reference with version suffix (e.g. 'example.com/cmd/app@latest')

    Returns:
        Executable name, or an empty string if it cannot be derived
    """
    match = PACKAGE_EXEC_RE.search(package)
    if match:
        return match.group(1)
    return ""


@dataclass(frozen=True)
class ServiceConfig:
    """Configuration for a service deployed on a remote host.

    Attributes:
        name: Service name (key in the configuration YAML file), also the systemd unit name
        user: User to log in with on the remote host
        host: Remote hostname (required)
        port: Remote SSH port
        private_key_path: Local path of the private key used to authenticate
        go_exec_path: Remote path of the Go executable
        go_bin_directory: Remote directory where `go install` puts executables
        go_install: Go package to install, with version suffix (required)
        go_private: GOPRIVATE value used when installing from private sources
        netrc_machine: Machine name written to the remote .netrc file
        netrc_login: Login written to the remote .netrc file
        netrc_password: Password or token written to the remote .netrc file
        systemd_path: Remote path of the systemd executable
        systemd_services_directory: Remote directory for user unit files
        systemd_linger_dir: Remote directory holding the lingering user list
        exec_start: Command executed when the service starts
        working_directory: Remote working directory of the service
        environment: Space-separated environment assignments for the service
        log_path: Remote file receiving stdout and stderr of the service
        run_after_service: Unit this service is ordered after
        start_limit_burst: Start rate limiting burst count
        start_limit_interval_sec: Start rate limiting interval
        restart_sec: Seconds to sleep before restarting the service
        copy_files: Local paths mirrored into the working directory
        ignore: Exclude the service when no service name is given
    """

    name: str
    user: str = ""
    host: str = ""
    port: int = 0
    private_key_path: str = ""

    go_exec_path: str = ""
    go_bin_directory: str = ""
    go_install: str = ""

    go_private: str = ""
    netrc_machine: str = ""
    netrc_login: str = ""
    netrc_password: str = ""

    systemd_path: str = ""
    systemd_services_directory: str = ""
    systemd_linger_dir: str = ""

    exec_start: str = ""
    working_directory: str = ""
    environment: str = ""
    log_path: str = ""
    run_after_service: str = ""
    start_limit_burst: int = 0
    start_limit_interval_sec: int = 0
    restart_sec: int = 0
    copy_files: Tuple[str, ...] = field(default_factory=tuple)

    ignore: bool = False

    def __post_init__(self):
        """Validate the service name."""
        if not self.name:
            raise ConfigError("Service name cannot be empty")

    @property
    def executable(self) -> str:
        """Path of the installed binary (first word of exec_start)."""
        parts = self.exec_start.split()
        return parts[0] if parts else ""

    def validate(self, config_path: str = "") -> None:
        """Check that the required values are present.

        Args:
            config_path: Configuration file path, used in error messages

        Raises:
            ConfigError: If `host` or `go_install` is missing
        """
        for key, example in (("host", "<hostname>"), ("go_install", "<package>")):
            if not getattr(self, key):
                raise ConfigError(
                    f"required configuration `{key}` value is missing: "
                    f"please add `{key}: {example}` in `{config_path}` file"
                )

    def with_local_defaults(self) -> "ServiceConfig":
        """Fill the connection values that can be resolved locally.

        Returns:
            New ServiceConfig with user, port and private key path set
        """
        return replace(
            self,
            user=self.user or getpass.getuser(),
            port=self.port or DEFAULT_PORT,
            private_key_path=self.private_key_path or str(DEFAULT_PRIVATE_KEY_PATH),
        )

    def with_remote_defaults(self, home_directory: str) -> "ServiceConfig":
        """Fill the values that depend on the remote host.

        Args:
            home_directory: Remote home directory (output of `pwd` on login)

        Returns:
            New ServiceConfig with every default resolved

        Raises:
            ConfigError: If exec_start is unset and cannot be derived from go_install
        """
        go_bin_directory = self.go_bin_directory or posixpath.join(home_directory, DEFAULT_GO_BIN_SUBDIR)
        exec_start = self.exec_start
        if not exec_start:
            name = exec_name(self.go_install)
            if not name:
                raise ConfigError(
                    f"cannot derive the executable name from `{self.go_install}`: "
                    f"set `exec_start` for service `{self.name}`"
                )
            exec_start = posixpath.join(go_bin_directory, name)

        return replace(
            self,
            go_exec_path=self.go_exec_path or DEFAULT_GO_EXEC_PATH,
            go_bin_directory=go_bin_directory,
            systemd_path=self.systemd_path or DEFAULT_SYSTEMD_PATH,
            systemd_services_directory=(
                self.systemd_services_directory
                or posixpath.join(home_directory, DEFAULT_SYSTEMD_SERVICES_SUBDIR)
            ),
            systemd_linger_dir=self.systemd_linger_dir or DEFAULT_SYSTEMD_LINGER_DIR,
            exec_start=exec_start,
            working_directory=self.working_directory or home_directory,
        )

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "ServiceConfig":
        """Create ServiceConfig from a YAML record.

        Args:
            name: Service name
            data: Dictionary with service configuration

        Returns:
            ServiceConfig instance

        Raises:
            ConfigError: If the record is not a mapping or holds invalid values
        """
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"configuration for service `{name}` must be a mapping")

        values = {}
        for key, value in data.items():
            parser = FIELD_PARSERS.get(key)
            if parser is None:
                logger.debug(f"Ignoring unknown key '{key}' for service {name}")
                continue
            try:
                values[key] = parser(value)
            except ConfigError as e:
                raise ConfigError(f"service `{name}`, key `{key}`: {e}")
        return cls(name=name, **values)
