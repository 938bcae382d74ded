"""Systemd unit file generation."""

import posixpath

from ..models.service import ServiceConfig

UNIT_SECTION = """[Unit]
Description={name}"""

SERVICE_SECTION = """[Service]
Type=simple
Restart=always"""

INSTALL_SECTION = """[Install]
WantedBy=default.target"""


def render_unit(name: str, config: ServiceConfig) -> str:
    """Render the systemd unit file of a service.

    Optional directives are written only when their value is set.

    Args:
        name: Service (unit) name
        config: Resolved service configuration

    Returns:
        Unit file content
    """
    unit = [UNIT_SECTION.format(name=name)]
    if config.run_after_service:
        unit.append(f"After={config.run_after_service}")
    if config.start_limit_burst:
        unit.append(f"StartLimitBurst={config.start_limit_burst}")
    if config.start_limit_interval_sec:
        unit.append(f"StartLimitIntervalSec={config.start_limit_interval_sec}")

    service = [SERVICE_SECTION]
    if config.restart_sec:
        service.append(f"RestartSec={config.restart_sec}")
    if config.environment:
        service.append(f"Environment={config.environment}")
    if config.log_path:
        service.append(f"StandardOutput=append:{config.log_path}")
        service.append(f"StandardError=append:{config.log_path}")
    service.append(f"WorkingDirectory={config.working_directory}")
    service.append(f"ExecStart={config.exec_start}")

    sections = ["\n".join(unit), "\n".join(service), INSTALL_SECTION]
    return "\n\n".join(sections) + "\n"


def unit_path(name: str, config: ServiceConfig) -> str:
    """Remote path of the unit file of a service."""
    return posixpath.join(config.systemd_services_directory, f"{name}.service")
