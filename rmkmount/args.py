"""Module defining the command-line arguments and providing a parser for them."""

from __future__ import annotations

import argparse
import shlex
from typing import List, Optional

from rmkmount.constants import VERSION


class Arguments(argparse.Namespace):
    """Parsed command-line arguments."""

    action: str
    mountpoint: str

    config: str

    host: Optional[str]
    port: Optional[int]
    user: Optional[str]
    password: Optional[str]
    document_root: Optional[str]

    extra_ssh_args: List[str]

    debug: bool
    verbose: bool

    @classmethod
    def parse(cls, args: Optional[List[str]] = None) -> Arguments:
        """
        Parse command-line arguments from the given list of strings.

        Defaults to sys.argv if none are specified.
        """
        return cls._get_parser().parse_args(args, namespace=cls())

    @classmethod
    def _get_parser(cls) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="rmkmount",
            description="Mount the documents of a reMarkable tablet as a read-only "
            "file system.",
        )

        parser.add_argument(
            "--version",
            action="version",
            version=f"%(prog)s {VERSION}",
            help="show the program version",
        )

        # Path to (optional) config file
        parser.add_argument(
            "--config",
            type=str,
            help="path to config file (default is ~/.rmkmount/config)",
            default="~/.rmkmount/config",
        )

        # Enable debug output for development
        parser.add_argument(
            "--debug", action="store_true", help="enable debug information"
        )
        parser.add_argument(
            "-v", "--verbose", action="store_true", help="enable informational output"
        )

        subparsers = parser.add_subparsers(dest="action", metavar="command")
        subparsers.required = True

        mount = subparsers.add_parser("mount", help="mount tablet documents")
        mount.add_argument("mountpoint", type=str, help="mount point for documents")

        # Device settings, default to the config file
        mount.add_argument("--host", type=str, help="tablet address")
        mount.add_argument("--port", type=cls._parse_port, help="tablet SSH port")
        mount.add_argument("--user", type=str, help="tablet SSH user")
        mount.add_argument("--password", type=str, help="tablet SSH password")
        mount.add_argument(
            "--document-root", type=str, help="directory holding the documents"
        )

        # Flag to pass additional options to SSH
        mount.add_argument(
            "--ssh",
            type=cls._parse_extra_args,
            help="additional arguments to pass to SSH",
            dest="extra_ssh_args",
            default=[],
        )

        umount = subparsers.add_parser(
            "umount", help="unmount previously mounted tablet documents"
        )
        umount.add_argument("mountpoint", type=str, help="mount point to release")

        return parser

    @staticmethod
    def _parse_extra_args(arg: str) -> List[str]:
        return shlex.split(arg)

    @staticmethod
    def _parse_port(arg: str) -> int:
        try:
            val = int(arg)
            assert 0 < val < 65536
            return val
        except (ValueError, AssertionError):
            raise argparse.ArgumentTypeError("expected port number between 1 and 65535")
