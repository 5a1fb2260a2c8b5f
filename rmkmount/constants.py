"""Module defining various global constants."""

# rmkmount version
VERSION = "0.1.0"

# Special exit code for when rmkmount itself fails.
RMKMOUNT_ERROR_CODE = 254

# Name of the FUSE file system as shown by mount and df
FILESYSTEM_NAME = "Remarkable"

# Block size used for block count rounding in file attributes
BLOCK_SIZE = 512

# Reserved inodes
INVALID_NODE_INO = 0
ROOT_NODE_INO = 1
TRASH_NODE_INO = 2

# Reserved names and remote identifiers of the special nodes
INVALID_NODE_NAME = "<Invalid Node>"
ROOT_NODE_UID = ""
ROOT_NODE_PATH = "/"
TRASH_NODE_UID = ".Trash"
TRASH_NODE_PATH = ".Trash"

# Remote file extensions
METADATA_EXTENSION = "metadata"
CONTENT_EXTENSION = "content"

# Default device settings (tablet connected over USB)
DEFAULT_HOST = "10.11.99.1"
DEFAULT_PORT = 22
DEFAULT_USER = "root"
DEFAULT_DOCUMENT_ROOT = "/home/root/.local/share/remarkable/xochitl/"
