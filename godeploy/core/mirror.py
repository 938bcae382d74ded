"""Mirror local files and directories onto a remote host over SFTP."""

import errno
import logging
import os
import posixpath
import shutil
import stat
from typing import Iterator, List, Tuple

logger = logging.getLogger(__name__)


class DirectoryNotEmptyError(OSError):
    """A remote directory could not be removed because it still has entries."""


def walk(local_path: str, remote_root: str) -> Iterator[Tuple[str, str, bool]]:
    """Walk a local tree and pair every entry with its remote path.

    Entries are visited depth-first, in name order. The remote path of an
    entry is its path relative to the parent of ``local_path``, joined onto
    ``remote_root``: walking ``assets/`` into ``/srv/app`` yields
    ``/srv/app/assets``, ``/srv/app/assets/css``, ... Walking ``.`` yields
    ``/srv/app`` itself followed by the entries of the current directory.

    Every directory pushed on the stack carries its own remote path, so
    siblings and parents at different depths always map correctly.

    Args:
        local_path: Local file or directory
        remote_root: Remote directory the tree is mirrored into

    Yields:
        Tuples of (local path, remote path, is directory)

    Raises:
        FileNotFoundError: If local_path does not exist
    """
    local_path = os.path.expanduser(local_path)
    if not os.path.lexists(local_path):
        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), local_path)

    # "." and "/" mirror their contents straight into remote_root
    base = os.path.basename(os.path.normpath(local_path))
    root = posixpath.join(remote_root, base) if base not in ("", ".") else remote_root
    stack = [(local_path, root)]
    while stack:
        local, remote = stack.pop()
        is_dir = os.path.isdir(local) and not os.path.islink(local)
        yield local, remote, is_dir
        if is_dir:
            # Reverse order so the smallest name is popped first
            for child in sorted(os.listdir(local), reverse=True):
                stack.append((os.path.join(local, child), posixpath.join(remote, child)))


class DirectoryMirror:
    """Copies local trees to, and removes them from, a remote host.

    Args:
        sftp: Open SFTP client (paramiko.SFTPClient or compatible)
    """

    def __init__(self, sftp):
        self.sftp = sftp

    def copy(self, local_path: str, remote_root: str):
        """Copy a local file or directory tree into remote_root.

        Directories are created as needed and files are overwritten. The
        first failure is raised.
        """
        for local, remote, is_dir in walk(local_path, remote_root):
            if is_dir:
                self.makedirs(remote)
                continue
            logger.debug(f"Uploading {local} -> {remote}")
            with open(local, "rb") as src, self.sftp.open(remote, "wb") as dst:
                shutil.copyfileobj(src, dst)
            self.sftp.chmod(remote, stat.S_IMODE(os.stat(local).st_mode))

    def delete(self, local_path: str, remote_root: str) -> List[Tuple[str, OSError]]:
        """Remove from remote_root the entries a copy of local_path created.

        Files are removed as they are visited; directories are removed
        bottom-up once all their descendants have been processed. Failures do
        not stop the walk. remote_root itself is never removed.

        Returns:
            List of (remote path, error) for every entry that could not be removed
        """
        failures = []
        directories = []
        for _, remote, is_dir in walk(local_path, remote_root):
            if is_dir:
                if remote != remote_root:
                    directories.append(remote)
                continue
            try:
                self.sftp.remove(remote)
                logger.debug(f"Removed {remote}")
            except OSError as e:
                failures.append((remote, e))

        for remote in reversed(directories):
            try:
                self.sftp.rmdir(remote)
                logger.debug(f"Removed directory {remote}")
            except OSError as e:
                failures.append((remote, e))
        return failures

    def remove_if_empty(self, remote_path: str):
        """Remove a remote directory only if it is empty.

        Raises:
            DirectoryNotEmptyError: If the directory still has entries
            OSError: For any other failure (e.g. the directory does not exist)
        """
        try:
            self.sftp.rmdir(remote_path)
        except OSError as e:
            # SFTP reports a non-empty directory as a generic failure (no errno)
            if e.errno in (None, errno.ENOTEMPTY, errno.EEXIST):
                raise DirectoryNotEmptyError(errno.ENOTEMPTY, "directory is not empty", remote_path) from e
            raise

    def remove_file(self, remote_path: str):
        self.sftp.remove(remote_path)

    def makedirs(self, remote_path: str):
        """Create a remote directory and any missing parents."""
        current = "/" if remote_path.startswith("/") else ""
        for part in remote_path.split("/"):
            if not part:
                continue
            current = posixpath.join(current, part)
            try:
                self.sftp.stat(current)
            except FileNotFoundError:
                logger.debug(f"Creating remote directory {current}")
                self.sftp.mkdir(current)

    def write_file(self, remote_path: str, text: str):
        """Write text to a remote file, creating its directory if needed."""
        directory = posixpath.dirname(remote_path)
        if directory:
            self.makedirs(directory)
        with self.sftp.open(remote_path, "wb") as dst:
            dst.write(text.encode("utf-8"))
