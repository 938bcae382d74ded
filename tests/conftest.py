"""pytest configuration and fakes for godeploy tests."""

import errno
import io
import posixpath

import pytest

from godeploy.core.ssh_client import RemoteCommandError
from godeploy.models.service import ServiceConfig


HOME = "/home/deploy"


# ── Fakes ─────────────────────────────────────────────────────────


class FakeRemoteFile:
    """File returned by FakeSFTP.open; its content is stored on close."""

    def __init__(self, sftp, path, mode):
        initial = sftp.files.get(path, b"") if ("a" in mode or "r" in mode) else b""
        self._buffer = io.BytesIO(initial)
        if "a" in mode:
            self._buffer.seek(0, io.SEEK_END)
        self._sftp = sftp
        self._path = path
        self._writable = "w" in mode or "a" in mode
        if self._writable:
            sftp.files[path] = initial

    def read(self, size=-1):
        return self._buffer.read(size)

    def write(self, data):
        return self._buffer.write(data)

    def close(self):
        if not self._buffer.closed and self._writable:
            self._sftp.files[self._path] = self._buffer.getvalue()
        self._buffer.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


class FakeSFTP:
    """In-memory stand-in for paramiko.SFTPClient.

    Errors mimic paramiko: missing paths raise FileNotFoundError and removing
    a non-empty directory raises a generic IOError without errno.
    """

    def __init__(self, directories=("/", "/home", HOME)):
        self.dirs = set(directories)
        self.files = {}
        self.modes = {}
        self.closed = False

    def _missing(self, path):
        return FileNotFoundError(errno.ENOENT, "No such file", path)

    def _abs(self, path):
        return path if path.startswith("/") else posixpath.join(HOME, path)

    def _check_parent(self, path):
        if posixpath.dirname(path) not in self.dirs:
            raise self._missing(path)

    def stat(self, path):
        path = self._abs(path)
        if path not in self.dirs and path not in self.files:
            raise self._missing(path)
        return object()

    def mkdir(self, path, mode=0o777):
        path = self._abs(path)
        self._check_parent(path)
        if path in self.dirs or path in self.files:
            raise IOError("Failure")
        self.dirs.add(path)

    def open(self, path, mode="r"):
        path = self._abs(path)
        if "r" in mode and path not in self.files:
            raise self._missing(path)
        self._check_parent(path)
        return FakeRemoteFile(self, path, mode)

    def chmod(self, path, mode):
        self.modes[self._abs(path)] = mode

    def remove(self, path):
        path = self._abs(path)
        if path not in self.files:
            raise self._missing(path)
        del self.files[path]

    def rmdir(self, path):
        path = self._abs(path)
        if path not in self.dirs:
            raise self._missing(path)
        prefix = path.rstrip("/") + "/"
        if any(p.startswith(prefix) for p in list(self.dirs) + list(self.files)):
            raise IOError("Failure")
        self.dirs.remove(path)

    def close(self):
        self.closed = True

    def snapshot(self):
        return frozenset(self.dirs), dict(self.files)


class FakeClient:
    """Stand-in for RemoteClient that records commands.

    Responses are configured with ``respond(fragment, result)``: the first
    rule whose fragment appears in a command decides its result. A string is
    returned as output; an exception instance is raised. Commands without a
    rule succeed with empty output.
    """

    def __init__(self, username="deploy", host="example.com", port=22, private_key_path="", sftp=None):
        self.username = username
        self.host = host
        self.port = port
        self.private_key_path = private_key_path
        self.sftp = sftp if sftp is not None else FakeSFTP()
        self.commands = []
        self.rules = [("pwd", HOME)]
        self.connected = False
        self.closed = False
        self.connect_error = None

    def respond(self, fragment, result):
        self.rules.insert(0, (fragment, result))

    def fail(self, fragment, output="boom", exit_status=1):
        self.respond(fragment, RemoteCommandError(fragment, output, exit_status))

    def connect(self):
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    def exec(self, command):
        self.commands.append(command)
        for fragment, result in self.rules:
            if fragment in command:
                if isinstance(result, Exception):
                    raise result
                return result
        return ""

    def open_sftp(self):
        return self.sftp

    def close(self):
        self.closed = True


class EventRecorder(list):
    """Callable collecting progress events."""

    def __call__(self, event):
        self.append(event)

    def texts(self):
        return [event.text for event in self]

    def severities(self):
        return [event.severity for event in self]


# ── Fixtures ──────────────────────────────────────────────────────


@pytest.fixture
def sftp():
    return FakeSFTP()


@pytest.fixture
def client(sftp):
    return FakeClient(sftp=sftp)


@pytest.fixture
def events():
    return EventRecorder()


@pytest.fixture
def resolved_config():
    """Configuration of a service with every default resolved."""
    return ServiceConfig(
        name="api",
        user="deploy",
        host="example.com",
        port=22,
        private_key_path="/tmp/id_rsa",
        go_install="github.com/acme/api@latest",
    ).with_remote_defaults(HOME)
