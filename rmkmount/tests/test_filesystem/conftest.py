"""Module with an in-memory stand-in for the tablet used by the engine tests."""

import json
import posixpath
import stat

import pytest

from rmkmount.errors import TransportError
from rmkmount.remote import RemoteStat

DOCUMENT_ROOT = "/docs/"


class FakeTablet:
    """Session double that serves descriptors from a dict and records requests."""

    def __init__(self):
        self.files = {}
        self.requests = []

    def add_file(self, name, data, mtime=100):
        if isinstance(data, str):
            data = data.encode()

        self.files[posixpath.join(DOCUMENT_ROOT, name)] = (data, mtime)

    def add_collection(self, uid, name, parent="", mtime=100):
        self.add_file(
            f"{uid}.metadata",
            self._descriptor(name, "CollectionType", parent, mtime),
            mtime,
        )

    def add_document(
        self, uid, name, parent="", file_type="pdf", data=b"", mtime=100
    ):
        self.add_file(
            f"{uid}.metadata",
            self._descriptor(name, "DocumentType", parent, mtime),
            mtime,
        )
        self.add_file(f"{uid}.content", json.dumps({"fileType": file_type}), mtime)

        if file_type in ("pdf", "epub"):
            self.add_file(f"{uid}.{file_type}", data, mtime)

    def remove(self, name):
        del self.files[posixpath.join(DOCUMENT_ROOT, name)]

    #
    # Session interface
    #

    def find_descriptors_by_parent(self, document_root, parent_id):
        self.requests.append(("find", parent_id))

        paths = []

        for path, (data, _) in sorted(self.files.items()):
            if path.endswith(".metadata") and f'"parent": "{parent_id}"' in data.decode(
                errors="replace"
            ):
                paths.append(path)

        return [self._stat(path) for path in paths]

    def read_text(self, path):
        self.requests.append(("read_text", path))

        if path not in self.files:
            raise TransportError(f"failed to read {path}")

        return self.files[path][0].decode()

    def stat(self, path):
        self.requests.append(("stat", path))

        if path not in self.files:
            raise TransportError(f"failed to stat {path}")

        return self._stat(path)

    def read_bytes(self, path, offset, length):
        self.requests.append(("read_bytes", path, offset, length))

        if path not in self.files:
            raise TransportError(f"failed to read {path}")

        data = self.files[path][0][offset : offset + length]

        if len(data) != length:
            raise TransportError(f"short read on {path}")

        return data

    #
    # Helpers
    #

    def _stat(self, path):
        data, mtime = self.files[path]

        return RemoteStat(
            path=path,
            size=len(data),
            uid=0,
            gid=0,
            mode=stat.S_IFREG | 0o644,
            atime=mtime,
            mtime=mtime,
        )

    @staticmethod
    def _descriptor(name, node_type, parent, mtime):
        return json.dumps(
            {
                "visibleName": name,
                "type": node_type,
                "parent": parent,
                "lastModified": str(mtime * 1000),
                "deleted": False,
            }
        )


@pytest.fixture
def tablet():
    return FakeTablet()
