"""Module that exposes the document tree of the tablet as a FUSE file system."""

import errno
import os
from typing import Callable, Optional

import fasteners

import rmkmount.constants as constants
from rmkmount.errors import HandleMisuse, NodeNotFound, TransportError
from rmkmount.filesystem.common import Attributes
from rmkmount.filesystem.fuse import DirectoryFiller, Operations
from rmkmount.filesystem.nodes import DirEntry, InodeTable
from rmkmount.filesystem.tree import TreeMaterializer
from rmkmount.logger import log
from rmkmount.remote import SshSession


class RemarkableFileSystem(Operations):
    """
    Class that implements a read-only FUSE file system on top of the tablet's documents.

    The file system is built around inodes: every operation is also available on inode
    numbers and the path based FUSE operations resolve their path to an inode first,
    one component at a time, starting from the root.

    FUSE calls operations from multiple threads, but the inode table must only be
    mutated by one of them at a time. Operations that may change the table take an
    exclusive lock, while attribute and name lookups in listed directories only take a
    shared lock. The remote transfer of a read happens outside of the lock, so a slow
    read doesn't hold up any other operation.
    """

    def __init__(
        self,
        session: SshSession,
        document_root: str,
        mount_callback: Optional[Callable] = None,
    ):
        """Instantiate the file system on top of an authenticated session."""
        self._session = session
        self._document_root = document_root
        self._mount_callback = mount_callback

        self._table = InodeTable()
        self._tree = TreeMaterializer(self._table, session, document_root)
        self._lock = fasteners.ReaderWriterLock()

    def seed(self) -> None:
        """Create the reserved nodes, which must happen before mounting."""
        with self._lock.write_lock():
            self._table.seed()

        log.info("initialization done")

    def init(self) -> None:
        """File system has been successfully mounted by FUSE."""
        if self._mount_callback is not None:
            self._mount_callback()

    #
    # Inode operations
    #

    def getattr_inode(self, inode: int) -> Attributes:
        """Retrieve the attributes of the node with the given inode."""
        with self._lock.read_lock():
            try:
                return Attributes.from_node(self._table.get(inode))
            except NodeNotFound:
                log.error(f"node {inode} not found")
                raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT))

    def lookup(self, parent_inode: int, name: str) -> int:
        """
        Resolve a child of a directory by name.

        A missing child is reported as ENOENT, while a parent that is itself invalid is
        reported as ENOSYS so that the two can be told apart. A parent that is a document
        is reported as ENOTDIR.
        """
        try:
            with self._lock.read_lock():
                parent = self._table.get(parent_inode)
                needs_listing = parent.is_directory and not parent.listed

                if not needs_listing:
                    child = self._find_child(parent_inode, name)

            if needs_listing:
                with self._lock.write_lock():
                    # Directories are listed once before their children can be resolved.
                    if not parent.listed:
                        self._tree.list_directory(parent_inode, 0)

                    child = self._find_child(parent_inode, name)
        except NodeNotFound as e:
            log.error(f"got error {e}")
            raise OSError(errno.ENOSYS, os.strerror(errno.ENOSYS))
        except TransportError as e:
            log.error(f"failed to list {parent_inode}: {e}")
            raise OSError(errno.EIO, os.strerror(errno.EIO))

        if child is None:
            log.debug(f"node {name} not found in parent {parent_inode}")
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT))

        return child

    def readdir_inode(
        self, inode: int, offset: int, sink: Callable[[DirEntry], bool]
    ) -> int:
        """
        Pass the entries of a directory from the given offset to the sink.

        The listing stops early once the sink returns True to report that it is full.
        Returns the number of entries that were passed.
        """
        with self._lock.write_lock():
            try:
                entries = self._tree.list_directory(inode, offset)
            except NodeNotFound as e:
                log.error(f"got error {e}")
                raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT))
            except TransportError as e:
                log.error(f"failed to list {inode}: {e}")
                raise OSError(errno.EIO, os.strerror(errno.EIO))

        count = 0

        for entry in entries:
            count += 1

            if sink(entry):
                break

        return count

    def open_inode(self, inode: int) -> int:
        """Acquire a handle on a node and return the handle value."""
        with self._lock.write_lock():
            try:
                handle = self._table.open(inode)
            except NodeNotFound:
                log.error(f"open failed: {inode} not found")
                raise OSError(errno.EBADFD, os.strerror(errno.EBADFD))
            except HandleMisuse as e:
                log.error(f"open failed for {inode}: {e}")
                raise OSError(e.errno, os.strerror(e.errno))

        log.debug(f"open request for {inode} = {handle}")

        return handle

    def read_inode(self, inode: int, offset: int, size: int) -> bytes:
        """
        Read up to size bytes at the given offset from a document's target file.

        Reads at or past the end of the file return no data.
        """
        if size <= 0 or offset < 0:
            log.error(f"read failed for {inode}: invalid size {size} or offset {offset}")
            raise OSError(errno.EINVAL, os.strerror(errno.EINVAL))

        with self._lock.read_lock():
            try:
                node = self._table.get(inode)
            except NodeNotFound:
                log.error(f"read failed: {inode} not found")
                raise OSError(errno.EBADFD, os.strerror(errno.EBADFD))

            file_size = node.size

            if offset >= file_size:
                return b""

            target_path = node.target_path(self._document_root)

            if target_path is None:
                log.error(f"read failed: {inode} has no target file")
                raise OSError(errno.EBADFD, os.strerror(errno.EBADFD))

            length = min(file_size - offset, size)

        log.debug(
            f"read request for {inode}: ofs={offset} reqsz={size} gotsz={length} "
            f"on {target_path}"
        )

        try:
            return self._session.read_bytes(target_path, offset, length)
        except TransportError as e:
            log.error(f"read failed for {inode}: {e}")
            raise OSError(errno.EIO, os.strerror(errno.EIO))

    def release_inode(self, inode: int) -> int:
        """Release a handle on a node and return the number of handles left."""
        with self._lock.write_lock():
            try:
                handles = self._table.close(inode)
            except NodeNotFound:
                log.error(f"release failed: {inode} not found")
                raise OSError(errno.EBADFD, os.strerror(errno.EBADFD))
            except HandleMisuse as e:
                log.error(f"release failed for {inode}: {e}")
                raise OSError(e.errno, os.strerror(e.errno))

        log.debug(f"release request for {inode} = {handles}")

        return handles

    def resolve(self, path: str) -> int:
        """Resolve an absolute path within the file system to an inode."""
        inode = constants.ROOT_NODE_INO

        for name in path.split("/"):
            if name:
                inode = self.lookup(inode, name)

        return inode

    def _find_child(self, parent_inode: int, name: str) -> Optional[int]:
        if not self._table.get(parent_inode).is_directory:
            log.debug(f"node {parent_inode} is not a directory")
            raise NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR))

        return self._table.resolve_child(parent_inode, name)

    #
    # Path operations
    #

    def getattr(self, path: str, fh: Optional[int]) -> dict:
        return self.getattr_inode(self.resolve(path)).__dict__

    def readdir(self, path: str, offset: int, filler: DirectoryFiller) -> None:
        def sink(entry: DirEntry) -> bool:
            with self._lock.read_lock():
                attrs = Attributes.from_node(self._table.get(entry.inode))

            return filler(entry.name, attrs.__dict__, entry.offset + 1)

        self.readdir_inode(self.resolve(path), offset, sink)

    def open(self, path: str, flags: int) -> int:
        if flags & os.O_ACCMODE != os.O_RDONLY:
            raise OSError(errno.EROFS, os.strerror(errno.EROFS))

        return self.open_inode(self.resolve(path))

    def read(self, path: str, fh: int, offset: int, size: int) -> bytes:
        return self.read_inode(self.resolve(path), offset, size)

    def release(self, path: str, fh: int) -> None:
        self.release_inode(self.resolve(path))
