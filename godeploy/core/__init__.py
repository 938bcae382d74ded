"""Core functionality for remote service deployment."""

from .config_manager import ConfigManager
from .runner import ProgressSink, Runner
from .service_manager import Service
from .ssh_client import RemoteClient

__all__ = ["ConfigManager", "ProgressSink", "Runner", "Service", "RemoteClient"]
