"""Module that implements the remote session on top of the OpenSSH client."""

import os
import posixpath
import shlex
import shutil
import subprocess
import tempfile
from typing import Iterable, List, Optional

import rmkmount.constants as constants
from rmkmount.errors import DecodeError, TransportError
from rmkmount.logger import log, summarize
from .common import RemoteStat

# Format of a single stat line: size uid gid mode(hex) atime mtime path
STAT_FORMAT = "%s %u %g %f %X %Y %n"


class SshSession:
    """
    Remote session to the tablet that multiplexes all requests over one connection.

    The session starts an SSH ControlMaster once it has been authenticated. Every
    request afterwards spawns a short-lived ssh client that reuses the master's
    connection, which avoids a new handshake per request and allows requests to be
    made from multiple threads at the same time.

    All requests are blocking and there is no cancellation: a hung connection blocks
    the caller until ssh itself gives up.
    """

    def __init__(
        self,
        identity_file: Optional[str] = None,
        connect_timeout: int = 10,
        extra_args: Iterable[str] = (),
    ):
        """Instantiate an unconnected session with optional OpenSSH settings."""
        self._identity_file = identity_file
        self._connect_timeout = connect_timeout
        self._extra_args = list(extra_args)

        self._host: Optional[str] = None
        self._port = constants.DEFAULT_PORT
        self._user: Optional[str] = None

        self._control_dir: Optional[str] = None

    def __enter__(self) -> "SshSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    #
    # Session management
    #

    def connect(self, host: str, port: int = constants.DEFAULT_PORT) -> "SshSession":
        """
        Set the destination of the session.

        The TCP connection itself is established by ssh as part of authentication.
        """
        self._host = host
        self._port = port

        if self._control_dir is None:
            self._control_dir = tempfile.mkdtemp(prefix="rmkmount_")

        return self

    def authenticate(self, user: str, password: Optional[str] = None) -> "SshSession":
        """
        Log in and start the connection master.

        Password authentication relies on sshpass, otherwise keys or an agent are used.
        """
        if self._host is None:
            raise TransportError("session is not connected")

        self._user = user

        command = self._ssh_command(
            ["-M", "-N", "-f", "-o", "ControlPersist=yes"], master=True
        )
        env = None

        if password is not None:
            command = ["sshpass", "-e"] + command
            env = dict(os.environ, SSHPASS=password)
        else:
            command[1:1] = ["-o", "BatchMode=yes"]

        log.debug(f"starting ssh master for {self._destination}")

        # The master forks into the background and keeps its stderr open, so errors
        # are collected in a file rather than a pipe that would never be closed.
        with tempfile.TemporaryFile() as stderr:
            try:
                proc = subprocess.run(
                    command,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=stderr,
                    env=env,
                )
            except OSError as e:
                raise TransportError(f"failed to start ssh: {e}")

            if proc.returncode != 0:
                stderr.seek(0)
                message = stderr.read().decode(errors="replace").strip()
                raise TransportError(f"ssh failed: {message}")

        log.info(f"authenticated as {self._destination}")

        return self

    def close(self) -> None:
        """Stop the connection master and clean up its control socket."""
        if self._control_dir is None:
            return

        if self._user is not None:
            subprocess.run(
                self._ssh_command(["-O", "exit"]),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )

        shutil.rmtree(self._control_dir, ignore_errors=True)
        self._control_dir = None

    #
    # Requests
    #

    def execute(self, command: str) -> str:
        """
        Execute a command on the tablet and return its output.

        A non-zero exit status of the command itself is not considered an error.
        """
        return self._run(command).stdout.decode(errors="replace")

    def stat(self, path: str) -> RemoteStat:
        """Retrieve the attributes of a remote file."""
        return self.stat_many([path])[0]

    def stat_many(self, paths: List[str]) -> List[RemoteStat]:
        """
        Retrieve the attributes of many remote files in a single request.

        The request fails as a whole if any of the files can't be stat'ed.
        """
        if len(paths) == 0:
            return []

        quoted_paths = " ".join(shlex.quote(p) for p in paths)
        proc = self._run(f"stat -c {shlex.quote(STAT_FORMAT)} -- {quoted_paths}")

        if proc.returncode != 0:
            message = proc.stderr.decode(errors="replace").strip()
            raise TransportError(f"failed to stat remote files: {message}")

        lines = proc.stdout.decode(errors="replace").splitlines()

        if len(lines) != len(paths):
            raise TransportError(
                f"expected {len(paths)} stat results, got {len(lines)}"
            )

        return [self._parse_stat(line) for line in lines]

    def read_text(self, path: str) -> str:
        """Read an entire remote file as UTF-8 text."""
        proc = self._run(f"cat -- {shlex.quote(path)}")

        if proc.returncode != 0:
            message = proc.stderr.decode(errors="replace").strip()
            raise TransportError(f"failed to read {path}: {message}")

        try:
            return proc.stdout.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"{path} is not valid text: {e}")

    def read_bytes(self, path: str, offset: int, length: int) -> bytes:
        """Read exactly length bytes at the given offset of a remote file."""
        if length == 0:
            return b""

        proc = self._run(
            f"tail -c +{offset + 1} -- {shlex.quote(path)} | head -c {length}"
        )
        data = proc.stdout

        if len(data) != length:
            raise TransportError(
                f"short read on {path}: expected {length} bytes at offset {offset}, "
                f"got {len(data)}"
            )

        return data

    def find_descriptors_by_parent(
        self, document_root: str, parent_id: str
    ) -> List[RemoteStat]:
        """
        Find the descriptor files that declare the given id as their parent.

        The search is a fixed-string grep over all descriptors in the document root, so
        the id is never interpreted as a pattern or by the remote shell.
        """
        pattern = f'"parent": "{parent_id}"'
        root = posixpath.join(document_root, "")

        command = (
            f"grep -l -F -e {shlex.quote(pattern)} "
            f"{shlex.quote(root)}*.{constants.METADATA_EXTENSION}"
        )
        log.debug(f"searching descriptors: {command}")

        output = self.execute(command)
        files = [line for line in output.split("\n") if line]

        log.debug(f"found {len(files)} descriptors: {summarize(files)}")

        return self.stat_many(files)

    #
    # Helpers
    #

    @property
    def _destination(self) -> str:
        return f"{self._user}@{self._host}"

    def _ssh_command(self, options: List[str], master: bool = False) -> List[str]:
        """Compose an ssh invocation that goes through the control socket."""
        assert self._control_dir is not None

        command = ["ssh"]

        # Disable SSH INFO messages
        command.extend(["-o", "LogLevel=error"])
        command.extend(["-o", f"ConnectTimeout={self._connect_timeout}"])
        command.extend(["-S", os.path.join(self._control_dir, "control")])

        if not master:
            command.extend(["-o", "ControlMaster=no"])

        command.extend(["-p", str(self._port)])

        if self._identity_file:
            command.extend(["-i", self._identity_file])

        command.extend(self._extra_args)
        command.extend(options)
        command.append(self._destination)

        return command

    def _run(self, remote_command: str) -> subprocess.CompletedProcess:
        """Run a command through the connection master."""
        if self._control_dir is None or self._user is None:
            raise TransportError("session is not authenticated")

        command = self._ssh_command(["-T"]) + [remote_command]

        try:
            proc = subprocess.run(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise TransportError(f"failed to start ssh: {e}")

        # SSH exits with the remote command's exit code or 255 in case of failure
        if proc.returncode == 255:
            message = proc.stderr.decode(errors="replace").strip()
            raise TransportError(f"ssh failed: {message}")

        return proc

    @staticmethod
    def _parse_stat(line: str) -> RemoteStat:
        try:
            size, uid, gid, mode, atime, mtime, path = line.split(" ", 6)

            return RemoteStat(
                path=path,
                size=int(size),
                uid=int(uid),
                gid=int(gid),
                mode=int(mode, 16),
                atime=int(atime),
                mtime=int(mtime),
            )
        except ValueError:
            raise TransportError(f"unexpected stat output: {summarize(line)}")
