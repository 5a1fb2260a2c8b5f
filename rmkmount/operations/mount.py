"""Module that implements mounting the documents of the tablet."""

import contextlib
import os

from rmkmount.args import Arguments
from rmkmount.config import Config, DeviceConfig
import rmkmount.constants as constants
from rmkmount.filesystem import RemarkableFileSystem
from rmkmount.filesystem.fuse import FUSE, FuseConfig
from rmkmount.logger import log
from rmkmount.remote import SshSession
from .common import Operations


class MountOperations(Operations):
    """
    Class that mounts the tablet's documents and serves them until unmounted.

    FUSE runs in the foreground, so this only returns once the file system has been
    unmounted or the mount failed.
    """

    def __init__(self, args: Arguments, config: Config):
        """Initialize mount operations from the command-line arguments and config."""
        self._args = args
        self._config = config

    def _run(self, stack: contextlib.ExitStack) -> int:
        mountpoint = os.path.abspath(self._args.mountpoint)

        if not os.path.isdir(mountpoint):
            raise RuntimeError(f"mount point {mountpoint} is not a directory")

        device = self._device_config()

        # Connect to the tablet
        session = SshSession(
            identity_file=self._config.ssh.identity_file,
            connect_timeout=self._config.ssh.connect_timeout,
            extra_args=self._config.ssh.options + self._args.extra_ssh_args,
        )
        stack.enter_context(session)

        session.connect(device.host, device.port)
        session.authenticate(device.user, device.password)

        # Set up the file system
        def mount_callback() -> None:
            log.info(f"mounted {device.user}@{device.host} on {mountpoint}")

        fs = RemarkableFileSystem(session, device.document_root, mount_callback)
        fs.seed()

        instance = FUSE(fs, FuseConfig(fsname=constants.FILESYSTEM_NAME))
        exit_code = instance.mount(constants.FILESYSTEM_NAME, mountpoint)

        if exit_code != 0:
            log.error(f"fuse exited with code {exit_code}")

        return exit_code

    def _device_config(self) -> DeviceConfig:
        """Combine the device config with the overrides from the command line."""
        device = self._config.device

        return DeviceConfig(
            host=self._args.host or device.host,
            port=self._args.port or device.port,
            user=self._args.user or device.user,
            password=(
                self._args.password
                if self._args.password is not None
                else device.password
            ),
            document_root=self._args.document_root or device.document_root,
        )
