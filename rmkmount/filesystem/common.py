"""Data structures used by multiple file system components."""

from __future__ import annotations

from dataclasses import dataclass
import stat

from rmkmount.constants import BLOCK_SIZE
from rmkmount.filesystem.nodes import Node

NANOSECONDS = 10 ** 9


@dataclass
class Attributes:
    """Container of file system attributes (basically os.stat_result as a dataclass)."""

    st_mode: int
    st_ino: int
    st_nlink: int
    st_uid: int
    st_gid: int
    st_size: int
    st_blksize: int
    st_blocks: int
    st_atime_ns: int
    st_mtime_ns: int
    st_ctime_ns: int

    @staticmethod
    def from_node(node: Node) -> Attributes:
        """
        Instantiate from a node and the remote stat its attributes are reported from.

        The tablet has no separate change time, so it is reported as the modification
        time.
        """
        remote_stat = node.remote_stat
        size = node.size

        if node.is_directory:
            mode = stat.S_IFDIR | remote_stat.perm
            nlink = 2
        else:
            mode = stat.S_IFREG | remote_stat.perm
            nlink = 1

        return Attributes(
            st_mode=mode,
            st_ino=node.inode,
            st_nlink=nlink,
            st_uid=remote_stat.uid,
            st_gid=remote_stat.gid,
            st_size=size,
            st_blksize=BLOCK_SIZE,
            st_blocks=(size + BLOCK_SIZE - 1) // BLOCK_SIZE,
            st_atime_ns=remote_stat.atime * NANOSECONDS,
            st_mtime_ns=remote_stat.mtime * NANOSECONDS,
            st_ctime_ns=remote_stat.mtime * NANOSECONDS,
        )

    @property
    def is_directory(self) -> bool:
        return stat.S_ISDIR(self.st_mode)
