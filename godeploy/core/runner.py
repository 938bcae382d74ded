"""Concurrent execution of service commands with ordered progress output."""

import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from rich.console import Console
from rich.text import Text

from ..models.service import ConfigError, ProgressEvent, Severity
from ..utils.constants import NAME_PADDING, STATUS_STYLES
from .config_manager import ConfigManager
from .service_manager import Service
from .ssh_client import RemoteClient

logger = logging.getLogger(__name__)

_STOP = object()


class SinkState(Enum):
    COLLECTING = "collecting"
    STOPPED = "stopped"


class ProgressSink:
    """Single delivery point for progress events.

    Events are queued by any number of workers and printed, one line group at
    a time, by a single receiver thread.
    """

    def __init__(self, console: Optional[Console] = None, quiet: bool = False):
        """Initialize the sink.

        Args:
            console: Console used for printing (defaults to stdout)
            quiet: Print only error events
        """
        self.console = console or Console(highlight=False)
        self.quiet = quiet
        self.width = 0
        self.state = SinkState.STOPPED
        self._queue: "queue.Queue" = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    def start(self, service_names: Iterable[str]):
        """Start printing events.

        Args:
            service_names: Names of the services of this run, used to align the output
        """
        longest = max((len(name) for name in service_names), default=0)
        self.width = longest + NAME_PADDING if longest else 0
        self.state = SinkState.COLLECTING
        self._thread = threading.Thread(target=self._receive, name="progress-sink", daemon=True)
        self._thread.start()

    def send(self, event: ProgressEvent):
        """Queue an event for printing.

        Raises:
            RuntimeError: If the sink is stopped
        """
        if self.state is not SinkState.COLLECTING:
            raise RuntimeError("progress sink is stopped")
        self._queue.put(event)

    def stop(self):
        """Stop printing once every event sent so far has been printed."""
        if self.state is not SinkState.COLLECTING:
            return
        self.state = SinkState.STOPPED
        self._queue.put(_STOP)
        self._thread.join()
        self._thread = None

    def _receive(self):
        while True:
            event = self._queue.get()
            if event is _STOP:
                return
            if self.quiet and event.severity is not Severity.ERROR:
                continue
            self.console.print(self.render(event), soft_wrap=True)

    def render(self, event: ProgressEvent) -> Text:
        """Format an event as `{symbol} [{service}]   {text}`.

        Continuation lines of a multi-line text are indented to the text column.
        """
        style = STATUS_STYLES[event.severity.value]
        label = f"[{event.service_name}]".ljust(max(self.width, len(event.service_name) + 2))
        indent = " " * (len(style["symbol"]) + 1 + len(label) + 1)
        text = event.text.replace("\n", "\n" + indent)
        return Text.assemble(
            (style["symbol"], style["name"]),
            " ",
            (label, style["name"]),
            " ",
            (text, style["text"]),
        )


class Runner:
    """Runs a command on a set of services, one worker thread per service."""

    COMMANDS = ("install", "uninstall", "start", "stop", "restart", "status", "show-service")

    def __init__(
        self,
        config_manager: ConfigManager,
        quiet: bool = False,
        console: Optional[Console] = None,
        client_factory: Callable[..., RemoteClient] = RemoteClient,
    ):
        """Initialize the runner.

        Args:
            config_manager: Loaded configuration
            quiet: Print only error events
            console: Console used for progress output
            client_factory: Callable creating a RemoteClient (username, host, port, private_key_path)
        """
        self.config_manager = config_manager
        self.client_factory = client_factory
        self.sink = ProgressSink(console, quiet)
        self.services: Dict[str, Service] = {}
        self._lock = threading.Lock()

    def get_service_names(self) -> List[str]:
        """Names of all services not marked as ignored, in configuration order."""
        return [config.name for config in self.config_manager.get_services() if not config.ignore]

    def make_service(self, service_name: str, emit: Callable[[ProgressEvent], None]) -> Service:
        """Connect to the host of a service and resolve its configuration.

        The result is cached for the lifetime of the runner.

        Args:
            service_name: Name of the service
            emit: Receiver of the service progress events

        Returns:
            Service ready to run lifecycle steps

        Raises:
            ConfigError: If the service is unknown or its configuration is incomplete
            RemoteClientError: If the connection fails
        """
        with self._lock:
            service = self.services.get(service_name)
        if service is not None:
            return service

        config_path = self.config_manager.config_path
        config = self.config_manager.get_service(service_name)
        if config is None:
            raise ConfigError(
                f"configuration for service `{service_name}` was not found. "
                f"Please add service configuration in `{config_path}` file"
            )
        config.validate(config_path)
        config = config.with_local_defaults()

        client = self.client_factory(config.user, config.host, config.port, config.private_key_path)
        client.connect()
        try:
            home_directory = client.exec("pwd")
            config = config.with_remote_defaults(home_directory)
        except Exception:
            client.close()
            raise

        service = Service(service_name, config, client, emit, home_directory, config_path)
        with self._lock:
            self.services[service_name] = service
        logger.debug(f"Resolved configuration of {service_name}: {config}")
        return service

    def run(
        self,
        command: str,
        service_names: Optional[Iterable[str]] = None,
        create_working_directory: bool = False,
        remove_working_directory: bool = False,
    ):
        """Run a command on every selected service in parallel.

        Per-service failures are printed, never raised.

        Args:
            command: One of COMMANDS
            service_names: Selected services (all non-ignored services if empty)
            create_working_directory: install: create the working directory if missing
            remove_working_directory: uninstall: also delete the log file and working directory
        """
        if command not in self.COMMANDS:
            raise ValueError(f"Unknown command: {command}")

        names = list(dict.fromkeys(service_names or [])) or self.get_service_names()
        if not names:
            logger.warning("No services selected")
            return

        options = {
            "create_working_directory": create_working_directory,
            "remove_working_directory": remove_working_directory,
        }
        self.sink.start(names)
        try:
            with ThreadPoolExecutor(max_workers=len(names), thread_name_prefix="service") as executor:
                for name in names:
                    executor.submit(self._work, command, name, options)
        finally:
            self.sink.stop()
            self.close()

    def close(self):
        """Close the connections of every materialized service."""
        with self._lock:
            services = list(self.services.values())
            self.services.clear()
        for service in services:
            try:
                service.close()
            except Exception as e:
                logger.debug(f"Error closing connection of {service.name}: {e}")

    def _work(self, command: str, service_name: str, options: dict):
        """Run one command for one service. Never raises."""
        try:
            service = self.make_service(service_name, self.sink.send)
        except Exception as e:
            logger.info(f"Cannot prepare service {service_name}: {e}")
            self.sink.send(ProgressEvent(service_name, str(e), Severity.ERROR))
            return

        try:
            self._dispatch(service, command, options)
        except Exception as e:
            logger.exception(f"Unexpected error while running {command} on {service_name}")
            self.sink.send(ProgressEvent(service_name, f"unexpected error: {e}", Severity.ERROR))

    @staticmethod
    def _dispatch(service: Service, command: str, options: dict) -> bool:
        if command == "install":
            return service.install(options["create_working_directory"])
        if command == "uninstall":
            return service.uninstall(options["remove_working_directory"])
        actions = {
            "start": service.start_service,
            "stop": service.stop_service,
            "restart": service.restart_service,
            "status": service.status_service,
            "show-service": service.show_service_file,
        }
        return actions[command]()
