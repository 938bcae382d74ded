"""godeploy - Deploy and manage Go services on remote hosts with systemd."""

__version__ = "1.0.0"
