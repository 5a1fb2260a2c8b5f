"""Shared functionality between the command-line actions."""

from abc import ABC
import contextlib


class Operations(ABC):
    """Base class for the logic of a command-line action."""

    def run(self) -> int:
        """Run the operations and clean up properly in case of errors."""
        with contextlib.ExitStack() as stack:
            return self._run(stack)

        # https://github.com/python/mypy/issues/7726
        assert False, "unreachable"

    def _run(self, stack: contextlib.ExitStack) -> int:
        """Run the actual operations."""
        raise NotImplementedError()
