"""Application constants and configuration."""

from pathlib import Path

# Application metadata
APP_NAME = "godeploy"

# Paths
CONFIG_DIR = Path.home() / ".config" / "godeploy"
LOG_FILE = CONFIG_DIR / "godeploy.log"
DEFAULT_CONFIG_FILE = ".godeploy.yml"

# SSH connection defaults
DEFAULT_PORT = 22
DEFAULT_PRIVATE_KEY_PATH = Path.home() / ".ssh" / "id_rsa"

# Remote defaults (used when neither the config nor the remote host provide one)
DEFAULT_GO_EXEC_PATH = "/usr/local/go/bin/go"
DEFAULT_GO_BIN_SUBDIR = "go/bin"  # relative to the remote home directory
DEFAULT_SYSTEMD_PATH = "systemd"
DEFAULT_SYSTEMD_SERVICES_SUBDIR = ".config/systemd/user"  # relative to the remote home directory
DEFAULT_SYSTEMD_LINGER_DIR = "/var/lib/systemd/linger"

# Progress output
NAME_PADDING = 3  # extra columns after the longest service name

# Styles for progress severities (rich style strings)
STATUS_STYLES = {
    "normal": {"text": "", "name": "bold", "symbol": "→"},
    "success": {"text": "#059669", "name": "bold #22c55e", "symbol": "✓"},
    "error": {"text": "#dc2626", "name": "bold #ef4444", "symbol": "×"},
    "warning": {"text": "#fcc203", "name": "bold #f9c10b", "symbol": "⚠"},
}
