"""SSH client for running commands and transferring files on a remote host."""

import logging
import socket
from typing import Optional

import paramiko

logger = logging.getLogger(__name__)


class RemoteClientError(Exception):
    """Base class for remote client failures."""


class AuthenticationError(RemoteClientError):
    """The private key cannot be used or the remote host rejected it."""


class NetworkError(RemoteClientError):
    """The remote host cannot be reached."""


class RemoteCommandError(RemoteClientError):
    """A remote command exited with a non-zero status.

    Attributes:
        command: Command that was run
        output: Standard error of the command (trailing newline stripped)
        exit_status: Exit status reported by the remote host
    """

    def __init__(self, command: str, output: str, exit_status: int):
        self.command = command
        self.output = output
        self.exit_status = exit_status
        super().__init__(output or f"command `{command}` exited with status {exit_status}")


class RemoteClient:
    """Runs commands on a remote host over one SSH connection.

    Host keys are not verified: any key presented by the remote host is
    accepted.
    """

    def __init__(self, username: str, host: str, port: int = 22, private_key_path: str = ""):
        """Initialize the client and load the private key.

        Args:
            username: User to log in with
            host: Remote hostname
            port: Remote SSH port
            private_key_path: Local path of the private key

        Raises:
            AuthenticationError: If the private key cannot be read or parsed
        """
        self.username = username
        self.host = host
        self.port = int(port or 22)
        self.ssh_client: Optional[paramiko.SSHClient] = None
        self.sftp_client: Optional[paramiko.SFTPClient] = None

        try:
            self._private_key = paramiko.PKey.from_path(private_key_path)
        except (OSError, paramiko.SSHException, ValueError) as e:
            raise AuthenticationError(f"cannot load private key `{private_key_path}`: {e}") from e

    def connect(self):
        """Connect to the remote host.

        Raises:
            AuthenticationError: If the remote host rejects the key
            NetworkError: If the host cannot be reached
        """
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=self.host,
                port=self.port,
                username=self.username,
                pkey=self._private_key,
                allow_agent=False,
                look_for_keys=False,
            )
        except paramiko.AuthenticationException as e:
            client.close()
            raise AuthenticationError(f"authentication failed for {self.username}@{self.host}: {e}") from e
        except (paramiko.SSHException, socket.error) as e:
            client.close()
            raise NetworkError(f"cannot connect to {self.host}:{self.port}: {e}") from e

        self.ssh_client = client
        logger.info(f"Connected to {self.username}@{self.host}:{self.port}")

    def exec(self, command: str) -> str:
        """Run a command on the remote host.

        Each call uses its own SSH channel.

        Args:
            command: Shell command line

        Returns:
            Standard output without the trailing newline

        Raises:
            RemoteCommandError: If the command exits with a non-zero status
            RemoteClientError: If the client is not connected
        """
        if self.ssh_client is None:
            raise RemoteClientError("client is not connected")

        logger.debug(f"[{self.host}] $ {command}")
        try:
            _, stdout, stderr = self.ssh_client.exec_command(command)
            output = stdout.read().decode("utf-8", errors="replace")
            error_output = stderr.read().decode("utf-8", errors="replace")
            exit_status = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, socket.error) as e:
            raise NetworkError(f"cannot run command on {self.host}: {e}") from e

        if exit_status != 0:
            logger.debug(f"[{self.host}] exit status {exit_status}: {error_output.strip()}")
            raise RemoteCommandError(command, error_output.removesuffix("\n"), exit_status)
        return output.removesuffix("\n")

    def open_sftp(self) -> paramiko.SFTPClient:
        """Open the SFTP sub-channel, or return the one already open.

        Raises:
            RemoteClientError: If the client is not connected
        """
        if self.sftp_client is not None:
            return self.sftp_client
        if self.ssh_client is None:
            raise RemoteClientError("client is not connected")
        try:
            self.sftp_client = self.ssh_client.open_sftp()
        except (paramiko.SSHException, socket.error) as e:
            raise NetworkError(f"cannot open SFTP channel on {self.host}: {e}") from e
        return self.sftp_client

    def close(self):
        """Close the SFTP sub-channel and the SSH connection."""
        if self.sftp_client is not None:
            self.sftp_client.close()
            self.sftp_client = None
        if self.ssh_client is not None:
            self.ssh_client.close()
            self.ssh_client = None
