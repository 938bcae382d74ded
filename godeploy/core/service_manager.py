"""Service lifecycle on a remote host: install, uninstall and systemctl actions."""

import logging
from typing import Callable, List

from ..models.service import ProgressEvent, ServiceConfig, Severity
from .mirror import DirectoryMirror, DirectoryNotEmptyError
from .ssh_client import RemoteClient, RemoteClientError, RemoteCommandError
from .unit_file import render_unit, unit_path

logger = logging.getLogger(__name__)

NETRC_FILE = ".netrc"  # relative to the remote home directory


class Service:
    """A service installed and managed on a remote host.

    Every step reports what it is about to do with a normal progress event,
    then reports its outcome with a success, warning or error event. Steps
    return True on success and False on failure.
    """

    SYSTEMCTL = "systemctl --user"

    def __init__(
        self,
        name: str,
        config: ServiceConfig,
        client: RemoteClient,
        emit: Callable[[ProgressEvent], None],
        home_directory: str,
        config_path: str = "",
    ):
        """Initialize the service.

        Args:
            name: Service (unit) name
            config: Configuration with every default resolved
            client: Connected client, owned by this service
            emit: Receiver of progress events
            home_directory: Remote home directory of the user
            config_path: Configuration file path, used in error messages
        """
        self.name = name
        self.config = config
        self.client = client
        self.emit = emit
        self.home_directory = home_directory
        self.config_path = config_path

    # Reporting

    def send(self, text: str, severity: Severity = Severity.NORMAL):
        self.emit(ProgressEvent(self.name, text, severity))

    def _success(self, output: str = "") -> bool:
        self.send(output or "ok", Severity.SUCCESS)
        return True

    def _failure(self, message: str, severity: Severity = Severity.ERROR) -> bool:
        logger.info(f"{self.name}: {message}")
        self.send(message, severity)
        return False

    def _exec(self, command: str, error_message: str = "") -> bool:
        """Run a command and report its outcome.

        Args:
            command: Remote command
            error_message: Prefix of the error event; the remote diagnostic follows it

        Returns:
            True if the command succeeded
        """
        self.send(command)
        try:
            output = self.client.exec(command)
        except RemoteClientError as e:
            diagnostic = e.output if isinstance(e, RemoteCommandError) else str(e)
            if error_message:
                diagnostic = f"{error_message}: {diagnostic}"
            return self._failure(diagnostic)
        return self._success(output)

    def _mirror(self) -> DirectoryMirror:
        return DirectoryMirror(self.client.open_sftp())

    # Checks

    def check_go(self) -> bool:
        error_message = (
            f"couldn't find the `go` executable. Please install `go` or set the executable path "
            f"in `{self.config_path}` file using the `go_exec_path` variable"
        )
        return self._exec(f"{self.config.go_exec_path} version", error_message)

    def check_systemd(self) -> bool:
        error_message = (
            f"couldn't find the `systemd` executable. Please install `systemd` or set the executable path "
            f"in `{self.config_path}` file using the `systemd_path` variable"
        )
        return self._exec(f"{self.config.systemd_path} --version", error_message)

    def check_lingering(self) -> bool:
        """Check that the user is allowed to keep services running after logout."""
        command = f"ls {self.config.systemd_linger_dir}"
        self.send(command)
        try:
            output = self.client.exec(command)
        except RemoteCommandError as e:
            return self._failure(e.output or str(e))
        except RemoteClientError as e:
            return self._failure(str(e))

        user = self.config.user
        if user not in output.split("\n"):
            return self._failure(
                f"user `{user}` is not in the linger list. "
                f"You can add it with the command `sudo loginctl enable-linger {user}`"
            )
        return self._success(output)

    def check_working_directory(self, create: bool = False) -> bool:
        """Check that the working directory exists, optionally creating it.

        Args:
            create: Create the directory if it does not exist
        """
        directory = self.config.working_directory
        command = f"test -e {directory}"
        self.send(command)
        try:
            self.client.exec(command)
            return self._success()
        except RemoteCommandError:
            pass
        except RemoteClientError as e:
            return self._failure(str(e))

        if not create:
            return self._failure(f"Service working directory '{directory}' does not exist on the remote host")
        return self._exec(f"mkdir -p {directory}", f"cannot create working directory `{directory}`")

    def check_executable(self) -> bool:
        executable = self.config.executable
        return self._exec(f"test -f {executable}", f"couldn't find the `{executable}` executable")

    # Install steps

    def auth_private_repo(self) -> bool:
        """Add the private repository credentials to the remote .netrc file.

        Does nothing unless `go_private` is configured. The entry is appended
        only if the file does not already contain it.
        """
        if not self.config.go_private:
            return True

        self.send("GO_PRIVATE found: edit .netrc file")
        entry = (
            f"machine {self.config.netrc_machine} "
            f"login {self.config.netrc_login} "
            f"password {self.config.netrc_password}"
        )
        try:
            sftp = self.client.open_sftp()
            try:
                with sftp.open(NETRC_FILE, "r") as f:
                    content = f.read().decode("utf-8")
            except FileNotFoundError:
                content = ""

            if entry not in (line.strip() for line in content.splitlines()):
                prefix = "\n" if content and not content.endswith("\n") else ""
                with sftp.open(NETRC_FILE, "a") as f:
                    f.write(f"{prefix}{entry}\n".encode("utf-8"))
                sftp.chmod(NETRC_FILE, 0o600)
        except (OSError, RemoteClientError) as e:
            return self._failure(f"cannot edit remote .netrc file: {e}")
        return self._success()

    def install_executable(self) -> bool:
        """Install the Go package with `go install`."""
        env = f"GOBIN={self.config.go_bin_directory}"
        if self.config.go_private:
            env = f"GOPRIVATE={self.config.go_private} {env}"
        command = f"{env} {self.config.go_exec_path} install {self.config.go_install}"
        return self._exec(command, f"cannot install the package `{self.config.go_install}`")

    def copy_files(self) -> bool:
        """Mirror the configured local paths into the working directory."""
        if not self.config.copy_files:
            return True

        self.send("Copying files")
        try:
            mirror = self._mirror()
        except RemoteClientError as e:
            return self._failure(f"cannot copy files: {e}")

        for path in self.config.copy_files:
            try:
                mirror.copy(path, self.config.working_directory)
            except (OSError, RemoteClientError) as e:
                return self._failure(f"cannot copy file '{path}': {e}")
        return self._success("All files copied")

    def create_service_file(self) -> bool:
        """Render the unit file and upload it to the systemd services directory."""
        self.send(f"Copy service file in `{self.config.systemd_services_directory}`")
        try:
            self._mirror().write_file(unit_path(self.name, self.config), render_unit(self.name, self.config))
        except (OSError, RemoteClientError) as e:
            return self._failure(f"cannot copy service file: {e}")
        return self._success("Copied")

    # Uninstall steps

    def delete_service_file(self) -> bool:
        filename = unit_path(self.name, self.config)
        return self._exec(f"rm {filename}", f"cannot delete service file `{filename}`")

    def delete_executable(self) -> bool:
        executable = self.config.executable
        return self._exec(f"rm {executable}", f"cannot delete service binary file `{executable}`")

    def delete_files(self, remove_working_directory: bool = False) -> bool:
        """Delete the mirrored files and, optionally, the log file and working directory.

        Files that cannot be deleted are reported as warnings.

        Args:
            remove_working_directory: Also delete the log file and the working
                directory (the latter only if empty and not the home directory)

        Returns:
            True if everything was deleted
        """
        ok = True
        if self.config.copy_files:
            self.send("Deleting files")
            failures = 0
            for path in self.config.copy_files:
                try:
                    errors = self._mirror().delete(path, self.config.working_directory)
                except (OSError, RemoteClientError) as e:
                    errors = [(path, e)]
                for remote_path, error in errors:
                    failures += 1
                    self._failure(f"cannot delete file '{remote_path}': {error}", Severity.WARNING)
            if failures:
                ok = self._failure(f"{failures} file(s) could not be deleted", Severity.WARNING)
            else:
                self._success("All files deleted")

        if not remove_working_directory:
            return ok

        log_path = self.config.log_path
        if log_path:
            self.send(f"Deleting log file '{log_path}'")
            try:
                self._mirror().remove_file(log_path)
                self._success("Deleted")
            except (OSError, RemoteClientError) as e:
                ok = self._failure(f"Cannot delete log file '{log_path}': {e}")

        directory = self.config.working_directory
        if directory.rstrip("/") != self.home_directory.rstrip("/"):
            self.send(f"Deleting service working directory '{directory}'")
            try:
                self._mirror().remove_if_empty(directory)
                self._success("Deleted")
            except DirectoryNotEmptyError:
                ok = self._failure(f"Cannot delete service working directory '{directory}': directory is not empty")
            except (OSError, RemoteClientError) as e:
                ok = self._failure(f"Cannot delete service working directory '{directory}': {e}")
        return ok

    # systemctl actions

    def reload_daemon(self) -> bool:
        return self._exec(f"{self.SYSTEMCTL} daemon-reload", "couldn't reload systemd daemon")

    def reset_failed_services(self) -> bool:
        return self._exec(f"{self.SYSTEMCTL} reset-failed", "couldn't reset failed systemd services")

    def enable_service(self) -> bool:
        return self._exec(f"{self.SYSTEMCTL} enable {self.name}", "couldn't enable systemd service")

    def disable_service(self) -> bool:
        return self._exec(f"{self.SYSTEMCTL} disable {self.name}", "couldn't disable systemd service")

    def start_service(self) -> bool:
        return self._exec(f"{self.SYSTEMCTL} start {self.name}", "couldn't start systemd service")

    def stop_service(self) -> bool:
        return self._exec(f"{self.SYSTEMCTL} stop {self.name}", "couldn't stop systemd service")

    def restart_service(self) -> bool:
        return self._exec(f"{self.SYSTEMCTL} restart {self.name}", "couldn't restart systemd service")

    def status_service(self) -> bool:
        return self._exec(f"{self.SYSTEMCTL} status {self.name}")

    def show_service_file(self) -> bool:
        self.send(render_unit(self.name, self.config))
        return True

    # Pipelines

    def install(self, create_working_directory: bool = False) -> bool:
        """Install the service, stopping at the first failing step.

        Args:
            create_working_directory: Create the working directory if missing

        Returns:
            True if every step succeeded
        """
        steps: List[Callable[[], bool]] = [
            self.check_go,
            self.check_systemd,
            self.check_lingering,
            lambda: self.check_working_directory(create_working_directory),
            self.auth_private_repo,
            self.install_executable,
            self.check_executable,
            self.copy_files,
            self.create_service_file,
            self.reload_daemon,
            self.enable_service,
        ]
        for step in steps:
            if not step():
                logger.info(f"Install of {self.name} aborted")
                return False
        logger.info(f"Installed {self.name}")
        return True

    def uninstall(self, remove_working_directory: bool = False) -> bool:
        """Uninstall the service, running every step even if some fail.

        Args:
            remove_working_directory: Also delete the log file and working directory

        Returns:
            True if every step succeeded
        """
        results = [
            self.stop_service(),
            self.disable_service(),
            self.delete_service_file(),
            self.reload_daemon(),
            self.reset_failed_services(),
            self.delete_executable(),
            self.delete_files(remove_working_directory),
        ]
        ok = all(results)
        logger.info(f"Uninstalled {self.name}" + ("" if ok else " with errors"))
        return ok

    def close(self):
        self.client.close()
