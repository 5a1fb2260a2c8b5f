"""Read-only FUSE file system for the documents on a reMarkable tablet."""
