"""Tests for the paramiko-backed remote client."""

import socket

import paramiko
import pytest

from godeploy.core import ssh_client
from godeploy.core.ssh_client import (
    AuthenticationError,
    NetworkError,
    RemoteClient,
    RemoteClientError,
    RemoteCommandError,
)


class StubChannel:
    def __init__(self, exit_status):
        self.exit_status = exit_status

    def recv_exit_status(self):
        return self.exit_status


class StubStream:
    def __init__(self, data, exit_status=0):
        self.data = data
        self.channel = StubChannel(exit_status)

    def read(self):
        return self.data


class StubSSHClient:
    """Stands in for paramiko.SSHClient."""

    def __init__(self):
        self.commands = []
        self.result = (b"", b"", 0)
        self.connect_error = None
        self.sftp_opened = 0
        self.closed = False
        self.connect_kwargs = None

    def set_missing_host_key_policy(self, policy):
        self.policy = policy

    def connect(self, **kwargs):
        self.connect_kwargs = kwargs
        if self.connect_error is not None:
            raise self.connect_error

    def exec_command(self, command):
        self.commands.append(command)
        if isinstance(self.result, Exception):
            raise self.result
        stdout, stderr, exit_status = self.result
        return None, StubStream(stdout, exit_status), StubStream(stderr, exit_status)

    def open_sftp(self):
        self.sftp_opened += 1
        return object()

    def close(self):
        self.closed = True


@pytest.fixture
def stub(monkeypatch):
    stub = StubSSHClient()
    monkeypatch.setattr(ssh_client.paramiko, "SSHClient", lambda: stub)
    monkeypatch.setattr(ssh_client.paramiko.PKey, "from_path", staticmethod(lambda path: "key"))
    return stub


@pytest.fixture
def client(stub):
    client = RemoteClient("deploy", "example.com", 2222, "/keys/id_ed25519")
    client.connect()
    return client


class TestPrivateKey:
    def test_unreadable_key(self, monkeypatch):
        def from_path(path):
            raise FileNotFoundError(2, "No such file or directory", path)

        monkeypatch.setattr(ssh_client.paramiko.PKey, "from_path", staticmethod(from_path))
        with pytest.raises(AuthenticationError, match="/keys/missing"):
            RemoteClient("deploy", "example.com", 22, "/keys/missing")

    def test_invalid_key(self, monkeypatch):
        def from_path(path):
            raise paramiko.SSHException("not a valid key")

        monkeypatch.setattr(ssh_client.paramiko.PKey, "from_path", staticmethod(from_path))
        with pytest.raises(AuthenticationError):
            RemoteClient("deploy", "example.com", 22, "/keys/garbage")


class TestConnect:
    def test_connect_with_key_only(self, client, stub):
        assert stub.connect_kwargs == {
            "hostname": "example.com",
            "port": 2222,
            "username": "deploy",
            "pkey": "key",
            "allow_agent": False,
            "look_for_keys": False,
        }
        assert isinstance(stub.policy, paramiko.AutoAddPolicy)

    def test_rejected_key(self, stub):
        stub.connect_error = paramiko.AuthenticationException("denied")
        with pytest.raises(AuthenticationError):
            RemoteClient("deploy", "example.com").connect()
        assert stub.closed

    def test_unreachable_host(self, stub):
        stub.connect_error = socket.timeout("timed out")
        with pytest.raises(NetworkError, match="example.com:22"):
            RemoteClient("deploy", "example.com").connect()


class TestExec:
    def test_not_connected(self, stub):
        with pytest.raises(RemoteClientError, match="not connected"):
            RemoteClient("deploy", "example.com").exec("pwd")

    def test_output_without_trailing_newline(self, client, stub):
        stub.result = (b"/home/deploy\n", b"", 0)
        assert client.exec("pwd") == "/home/deploy"
        assert stub.commands == ["pwd"]

    def test_only_last_newline_is_stripped(self, client, stub):
        stub.result = (b"a\nb\n\n", b"", 0)
        assert client.exec("ls") == "a\nb\n"

    def test_failure_carries_stderr(self, client, stub):
        stub.result = (b"", b"Unit api.service not found.\n", 5)
        with pytest.raises(RemoteCommandError) as excinfo:
            client.exec("systemctl --user start api")
        error = excinfo.value
        assert str(error) == "Unit api.service not found."
        assert error.exit_status == 5
        assert error.command == "systemctl --user start api"

    def test_failure_without_stderr(self, client, stub):
        stub.result = (b"", b"", 1)
        with pytest.raises(RemoteCommandError, match="exited with status 1"):
            client.exec("test -f /nowhere")

    def test_transport_failure(self, client, stub):
        stub.result = paramiko.SSHException("channel closed")
        with pytest.raises(NetworkError):
            client.exec("pwd")


class TestSFTP:
    def test_opened_once(self, client, stub):
        assert client.open_sftp() is client.open_sftp()
        assert stub.sftp_opened == 1

    def test_close(self, client, stub):
        client.close()
        assert stub.closed
        with pytest.raises(RemoteClientError):
            client.exec("pwd")
