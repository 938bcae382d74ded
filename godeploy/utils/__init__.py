"""Utility functions and constants."""

from .constants import *

__all__ = ["APP_NAME", "CONFIG_DIR", "LOG_FILE", "DEFAULT_CONFIG_FILE", "STATUS_STYLES"]
