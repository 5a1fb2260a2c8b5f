"""Exceptions raised by the file system engine and its remote collaborators."""


class RemarkableError(Exception):
    """Base class of all rmkmount errors."""


class NodeNotFound(RemarkableError):
    """Raised when an inode is invalid or unknown to the inode table."""

    def __init__(self, inode: int):
        super().__init__(f"node not found: {inode}")
        self.inode = inode


class DecodeError(RemarkableError):
    """Raised when a descriptor or content file can't be decoded."""


class TransportError(RemarkableError):
    """Raised when the remote session fails to execute a request."""


class HandleMisuse(RemarkableError):
    """
    Raised when a node's handle counter would overflow or underflow.

    The errno is the one that should be reported back to the caller.
    """

    def __init__(self, errno: int, message: str):
        super().__init__(message)
        self.errno = errno
