"""Data models for remote service deployment."""

from .service import ConfigError, ProgressEvent, ServiceConfig, Severity

__all__ = ["ConfigError", "ProgressEvent", "ServiceConfig", "Severity"]
