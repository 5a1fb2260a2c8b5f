"""Module that implements unmounting a previously mounted file system."""

import contextlib
import os
import subprocess

from rmkmount.args import Arguments
from rmkmount.logger import log
from .common import Operations

# Unmount helpers in order of preference, FUSE 3 ships the first one.
UNMOUNT_COMMANDS = ["fusermount3", "fusermount"]


class UnmountOperations(Operations):
    """Class that unmounts a file system mounted by another rmkmount instance."""

    def __init__(self, args: Arguments):
        self._args = args

    def _run(self, stack: contextlib.ExitStack) -> int:
        mountpoint = os.path.abspath(self._args.mountpoint)

        for helper in UNMOUNT_COMMANDS:
            try:
                subprocess.check_output([helper, "-u", mountpoint])
            except FileNotFoundError:
                log.debug(f"{helper} is not available")
                continue
            except subprocess.CalledProcessError as e:
                raise RuntimeError(f"failed to unmount {mountpoint}: {e}")

            log.info(f"unmounted {mountpoint}")

            return 0

        raise RuntimeError("no fusermount command found")
