"""Modules that implement the workflows behind the command-line actions."""

from .common import Operations
from .mount import MountOperations
from .umount import UnmountOperations

__all__ = [
    "MountOperations",
    "Operations",
    "UnmountOperations",
]
