"""
Module implementing the command-line interface and invoking the main logic of rmkmount.

rmkmount connects to a reMarkable tablet over SSH and mounts its documents as a
read-only file system. Folders on the tablet become directories and documents become
files, with documents imported from PDF and EPUB files readable as such.
"""

import os
import signal
import sys
from typing import List, NoReturn, Optional

from rmkmount.config import Config
import rmkmount.constants as constants
from rmkmount.logger import log, set_verbosity
import rmkmount.operations as operations
from .args import Arguments


def main(arguments: Optional[List[str]] = None) -> NoReturn:
    """
    Run the requested command with the given arguments.

    Defaults to parsing command-line arguments from sys.argv if none are specified.
    """
    # Parse command-line arguments.
    args = Arguments.parse(arguments)

    # Configure logging before anything is logged.
    set_verbosity(args.debug, args.verbose)

    ops: operations.Operations

    if args.action == "mount":
        config = Config.load(os.path.expanduser(args.config))
        ops = operations.MountOperations(args, config)
    else:
        ops = operations.UnmountOperations(args)

    try:
        exit_code = ops.run()
    except KeyboardInterrupt:
        exit_code = 128 + signal.SIGINT
    except Exception as e:
        log.error(f"failed to {args.action}: {e}")
        exit_code = constants.RMKMOUNT_ERROR_CODE

    # Exit with either the exit code of FUSE or RMKMOUNT_ERROR_CODE for failures.
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
