"""
Module with high-level bindings for FUSE 3.x.

rmkmount comes with its own FUSE bindings rather than depending on an existing package:

* pyfuse only supports FUSE 2.x.
* pyfuse3 requires an async event loop, while every request here is answered by
blocking calls over the remote session anyway.

Only the operations of a read-only file system are bound. The file system is mounted
read-only, so the kernel rejects any modification before it reaches these bindings.
"""

import ctypes
from dataclasses import dataclass
import errno
import sys
import threading
import traceback
from typing import Callable, Optional, Type

from rmkmount.logger import log
from .fuse import (
    FUSE_ARGS_INIT,
    fuse_config_p,
    fuse_file_info_p,
    fuse_fill_dir_t,
    fuse_operations,
    fuse_opt_proc_t,
    load_fuse3,
    stat,
    stat_p,
)

# Callback that adds a directory entry (name, attributes, offset of the next entry) to
# a readdir reply. It returns True once the reply is full.
DirectoryFiller = Callable[[str, dict, int], bool]


@dataclass
class FuseConfig:
    """
    FUSE options to enable.

    See the FUSE documentation about mount options for more information:

    * https://man7.org/linux/man-pages/man8/mount.fuse.8.html
    """

    fsname: Optional[str] = None

    read_only: bool = True
    auto_unmount: bool = True
    default_permissions: bool = False

    use_ino: bool = True
    kernel_cache: bool = False

    single_threaded: bool = False


class Operations:
    """
    Base class for a read-only FUSE file system.

    File systems should inherit this class and implement all of the file system
    functions they wish to support.

    Unless FUSE is configured to be single threaded, the implementation should expect
    functions to be invoked simultaneously from an arbitrary number of threads.

    Functions can return errors by raising the built-in OSError exception with the errno
    set:

        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT))
    """

    def init(self) -> None:
        """Initialize data after the file system has been mounted."""

    def destroy(self) -> None:
        """Clean up after the file system has been unmounted."""

    def getattr(self, path: str, fh: Optional[int]) -> dict:
        """
        Retrieve the attributes of a file system entry.

        The function should return a dict with st_* keys that correspond to stat data.
        """
        raise NotImplementedError()

    def readdir(self, path: str, offset: int, filler: DirectoryFiller) -> None:
        """
        List the contents of a directory starting at the given offset.

        Entries are passed to the filler along with the offset of the entry after them,
        which is where the listing resumes once the filler reports that it is full.
        """
        raise NotImplementedError()

    def open(self, path: str, flags: int) -> int:
        """Open a file."""
        raise NotImplementedError()

    def read(self, path: str, fh: int, offset: int, size: int) -> bytes:
        """Read from a file."""
        raise NotImplementedError()

    def release(self, path: str, fh: int) -> None:
        """Close a file handle."""
        raise NotImplementedError()


class FUSE:
    """
    File system wrapper class that handles the FUSE connection.

    This class starts the FUSE main loop and serves as the layer between the C callbacks
    and the Operations interface.
    """

    def __init__(self, operations: Operations, config: FuseConfig):
        """Specify the operations and configuration for FUSE."""

        self._operations = operations
        self._config = config

    def mount(self, name: str, mount_path: str) -> int:
        """Mount the FUSE file system at the specified path with a given name."""
        fuse3 = load_fuse3()

        # Program name and mount path arguments for FUSE
        argv = (ctypes.POINTER(ctypes.c_char) * 2)()
        argv[:] = [
            ctypes.create_string_buffer(name.encode(errors="surrogateescape")),
            ctypes.create_string_buffer(mount_path.encode(errors="surrogateescape")),
        ]
        args = FUSE_ARGS_INIT(2, argv)

        fuse3.fuse_opt_parse(
            ctypes.pointer(args), None, None, ctypes.cast(None, fuse_opt_proc_t)
        )

        # Additional options
        options = self._mount_options(name)

        for option in options:
            fuse3.fuse_opt_add_arg(ctypes.pointer(args), option.encode())

        # Operation callbacks
        operations = fuse_operations()

        operations.init = self._wrap_operation("init", self._op_init)
        operations.destroy = self._wrap_operation("destroy", self._op_destroy)
        operations.getattr = self._wrap_operation("getattr", self._op_getattr)
        operations.readdir = self._wrap_operation("readdir", self._op_readdir)
        operations.open = self._wrap_operation("open", self._op_open)
        operations.read = self._wrap_operation("read", self._op_read)
        operations.release = self._wrap_operation("release", self._op_release)

        # FUSE main loop
        return fuse3.fuse_main_real(
            args.argc,
            args.argv,
            ctypes.pointer(operations),
            ctypes.sizeof(operations),
            None,
        )

    def _mount_options(self, name: str) -> list:
        """Translate the configuration into command-line options for FUSE."""
        options = [f"-ofsname={self._config.fsname or name}"]

        if self._config.read_only:
            options.append("-oro")

        if self._config.auto_unmount:
            options.append("-oauto_unmount")

        if self._config.default_permissions:
            options.append("-odefault_permissions")

        if self._config.single_threaded:
            options.append("-s")

        options.append("-f")

        return options

    def _wrap_operation(self, name: str, fn: Callable) -> Callable:
        """Wrap an operation callback to capture self and handle exceptions."""

        def wrapper(*args, **kwargs):
            # Support coverage.py within FUSE threads.
            if hasattr(threading, "_trace_hook"):
                sys.settrace(getattr(threading, "_trace_hook"))

            try:
                res = fn(*args, **kwargs)

                if res is None:
                    res = 0

                return res
            except OSError as e:
                # FUSE expects an error to be returned as negative errno.
                if e.errno:
                    return -e.errno
                else:
                    return -errno.EIO
            except NotImplementedError:
                log.debug(f"fuse::{name}() not implemented!")

                return -errno.ENOSYS
            except Exception:
                log.warning(f"fuse::{name}() raised an unexpected exception:")
                log.warning(traceback.format_exc())

                return -errno.EIO

        return self._typeof(fuse_operations, name)(wrapper)

    @staticmethod
    def _typeof(struct: ctypes.Structure, field: str) -> Type:
        """Return the type of a field in a ctypes Structure."""

        for name, t in getattr(struct, "_fields_"):
            if name == field:
                return t

        raise ValueError(f"cannot determine type of nonexistent field {field}")

    def _op_init(self, _conn: ctypes.c_void_p, config: fuse_config_p) -> None:
        """
        Handle fuse_operations.init.

        Sets up the FUSE config options.
        """
        config.contents.kernel_cache = 1 if self._config.kernel_cache else 0
        config.contents.use_ino = 1 if self._config.use_ino else 0
        config.contents.readdir_ino = 1 if self._config.use_ino else 0

        self._operations.init()

    def _op_destroy(self, _private_data: ctypes.c_void_p) -> None:
        """Handle fuse_operations.destroy."""
        self._operations.destroy()

    def _op_getattr(self, path: bytes, stbuf: stat_p, fi: fuse_file_info_p) -> None:
        """Handle fuse_operations.getattr."""
        stat_values = self._operations.getattr(
            path.decode(errors="surrogateescape"), fi.contents.fh if fi else None
        )

        ctypes.memset(stbuf, 0, ctypes.sizeof(stat))
        self._fill_stat(stbuf.contents, stat_values)

    def _op_readdir(
        self,
        path: bytes,
        buf: ctypes.c_void_p,
        filler: fuse_fill_dir_t,
        offset: int,
        _fi: fuse_file_info_p,
        _flags: int,
    ) -> None:
        """
        Handle fuse_operations.readdir.

        Entries are passed with non-zero offsets, so FUSE calls readdir again with the
        offset of the last entry that fit once its buffer is full.
        """

        def fill(name: str, attrs: dict, next_offset: int) -> bool:
            st = stat()
            self._fill_stat(st, attrs)

            full = filler(
                buf,
                name.encode(errors="surrogateescape"),
                ctypes.pointer(st),
                next_offset,
                0,
            )

            return full != 0

        self._operations.readdir(path.decode(errors="surrogateescape"), offset, fill)

    def _op_open(self, path: bytes, fi: fuse_file_info_p) -> None:
        """Handle fuse_operations.open."""
        fi.contents.fh = self._operations.open(
            path.decode(errors="surrogateescape"), fi.contents.flags
        )

    def _op_read(
        self,
        path: bytes,
        buf: ctypes.POINTER(ctypes.c_char_p),
        size: int,
        offset: int,
        fi: fuse_file_info_p,
    ) -> int:
        """Handle fuse_operations.read."""
        data = self._operations.read(
            path.decode(errors="surrogateescape"), fi.contents.fh, offset, size
        )
        actual_size = len(data)

        assert actual_size <= size

        ctypes.memmove(buf, data, actual_size)

        return actual_size

    def _op_release(self, path: bytes, fi: fuse_file_info_p) -> None:
        """Handle fuse_operations.release."""
        self._operations.release(path.decode(errors="surrogateescape"), fi.contents.fh)

    @staticmethod
    def _fill_stat(st: stat, stat_values: dict) -> None:
        """Copy st_* values into a stat struct, converting nanosecond timestamps."""
        for key, value in stat_values.items():
            if key.startswith("st_") and hasattr(st, key):
                setattr(st, key, value)
            elif key in ("st_atime_ns", "st_mtime_ns", "st_ctime_ns"):
                timespec = {
                    "st_atime_ns": st.st_atim,
                    "st_mtime_ns": st.st_mtim,
                    "st_ctime_ns": st.st_ctim,
                }[key]

                timespec.tv_sec, timespec.tv_nsec = divmod(int(value), 10 ** 9)
