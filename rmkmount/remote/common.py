"""Data structures describing remote file system entries."""

from __future__ import annotations

from dataclasses import dataclass
import posixpath
import stat
import time

# Permission bits reported when the remote didn't send any.
DEFAULT_PERMISSIONS = 0o755

# Permission bits of the synthesized root and trash directories.
SPECIAL_PERMISSIONS = 0o444


@dataclass
class RemoteStat:
    """
    Attributes of a remote file as reported by the tablet.

    Times are in seconds since the epoch. The mode contains the file type bits as well
    as the permission bits.
    """

    path: str
    size: int = 0
    uid: int = 0
    gid: int = 0
    mode: int = 0
    atime: int = 0
    mtime: int = 0

    @staticmethod
    def special(path: str) -> RemoteStat:
        """Synthesize the attributes of a directory that doesn't exist remotely."""
        now = int(time.time())

        return RemoteStat(
            path=path,
            mode=stat.S_IFDIR | SPECIAL_PERMISSIONS,
            atime=now,
            mtime=now,
        )

    @property
    def unique_id(self) -> str:
        """Return the file name without its extension, which is the remote id."""
        stem, _ = posixpath.splitext(posixpath.basename(self.path))
        return stem

    @property
    def perm(self) -> int:
        """Return the permission bits."""
        perm = stat.S_IMODE(self.mode) & 0o777
        return perm if self.mode else DEFAULT_PERMISSIONS

    def is_more_recent_than(self, other: RemoteStat) -> bool:
        """Check if this file was modified strictly after the other one."""
        return self.mtime > other.mtime
