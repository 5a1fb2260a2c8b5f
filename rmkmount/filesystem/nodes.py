"""Module that implements the file system nodes and the inode table that owns them."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import errno
import posixpath
from typing import Dict, List, NamedTuple, Optional, Tuple

import rmkmount.constants as constants
from rmkmount.errors import HandleMisuse, NodeNotFound, RemarkableError
from rmkmount.filesystem.records import ContentRecord, MetadataRecord, NodeType
from rmkmount.logger import log
from rmkmount.remote import RemoteStat

# Handles are passed to FUSE as an unsigned 64-bit file handle.
MAX_HANDLES = 2 ** 64 - 1


class NodeKind(Enum):
    """Kind of file system entry."""

    INVALID = "invalid"
    ROOT = "root"
    TRASH = "trash"
    COLLECTION = "collection"
    DOCUMENT = "document"


class DirEntry(NamedTuple):
    """Summary of a node as it appears in the listing of its parent directory."""

    inode: int
    offset: int
    is_directory: bool
    name: str


@dataclass
class Node:
    """
    File system entry backed by a remote descriptor.

    The descriptor stat is the stat of the .metadata file and is only used to detect
    remote changes. Documents with a pdf or epub target also remember the stat of that
    target, which is what their attributes are reported from.
    """

    inode: int
    remote_unique_id: str
    parent_inode: int
    descriptor_stat: RemoteStat

    kind: NodeKind = NodeKind.COLLECTION

    metadata: Optional[MetadataRecord] = None
    content: Optional[ContentRecord] = None
    target_stat: Optional[RemoteStat] = None

    children: List[DirEntry] = field(default_factory=list)
    listed: bool = False

    open_handles: int = 0

    @property
    def is_special(self) -> bool:
        return self.kind in (NodeKind.INVALID, NodeKind.ROOT, NodeKind.TRASH)

    @property
    def is_document(self) -> bool:
        return self.kind == NodeKind.DOCUMENT

    @property
    def is_directory(self) -> bool:
        """Check if the node is presented as a directory (unknown nodes are)."""
        return self.kind != NodeKind.DOCUMENT

    @property
    def remote_stat(self) -> RemoteStat:
        """Return the stat that the node's attributes are reported from."""
        return self.target_stat or self.descriptor_stat

    @property
    def extension(self) -> Optional[str]:
        """Return the extension of the node's target file, if it has one."""
        if self.is_document and self.content:
            return self.content.extension
        else:
            return None

    @property
    def name(self) -> str:
        """Return the name of the node as displayed in its parent directory."""
        if self.kind == NodeKind.ROOT:
            base = constants.ROOT_NODE_PATH
        elif self.kind == NodeKind.TRASH:
            base = constants.TRASH_NODE_PATH
        elif self.metadata:
            base = self.metadata.visible_name
        else:
            base = constants.INVALID_NODE_NAME

        ext = self.extension

        return f"{base}.{ext}" if ext else base

    @property
    def size(self) -> int:
        """
        Return the number of bytes that can be read from the node.

        Notebooks have no single file that they could be rendered to, so they are
        presented as empty files.
        """
        if self.is_document:
            if self.extension and self.target_stat:
                return self.target_stat.size
            else:
                return 0
        else:
            return self.remote_stat.size

    def content_path(self, document_root: str) -> str:
        """Return the remote path of the document's .content file."""
        return posixpath.join(
            document_root, f"{self.remote_unique_id}.{constants.CONTENT_EXTENSION}"
        )

    def target_path(self, document_root: str) -> Optional[str]:
        """Return the remote path of the document's pdf or epub file, if it has one."""
        ext = self.extension

        if ext:
            return posixpath.join(document_root, f"{self.remote_unique_id}.{ext}")
        else:
            return None

    def needs_refresh(self, new_stat: RemoteStat) -> bool:
        """
        Check if the node has to be fetched again given its latest descriptor stat.

        That is the case if it was never fetched successfully or if the descriptor has
        been modified since. Remote deletions are not detected.
        """
        if self.is_special:
            return False

        return self.metadata is None or new_stat.is_more_recent_than(
            self.descriptor_stat
        )

    def set_metadata(
        self, metadata: MetadataRecord, stat: RemoteStat, parent_inode: int
    ) -> None:
        """Replace the descriptor, which invalidates the content and target."""
        self.metadata = metadata
        self.descriptor_stat = stat
        self.parent_inode = parent_inode

        self.content = None
        self.target_stat = None

        if metadata.node_type == NodeType.DOCUMENT:
            self.kind = NodeKind.DOCUMENT
        else:
            self.kind = NodeKind.COLLECTION

    def set_content(self, content: ContentRecord) -> None:
        self.content = content

    def set_remote_stat(self, stat: RemoteStat) -> None:
        """Store the stat of the target file, which becomes the attribute source."""
        self.target_stat = stat

    def set_children(self, children: List[DirEntry]) -> None:
        """Replace the listing, since every listing is a full resync."""
        self.children = list(children)
        self.listed = True

    def open(self) -> int:
        """Acquire a new handle on the node and return the number of handles."""
        if self.open_handles >= MAX_HANDLES:
            raise HandleMisuse(errno.EACCES, f"too many handles on node {self.inode}")

        self.open_handles += 1
        return self.open_handles

    def close(self) -> int:
        """Release a handle on the node and return the number of handles left."""
        if self.open_handles <= 0:
            raise HandleMisuse(errno.EINVAL, f"no open handles on node {self.inode}")

        self.open_handles -= 1
        return self.open_handles


class InodeTable:
    """
    Arena of all nodes known during a mount session, indexed by inode.

    Inodes are allocated in order and never reused, and a remote id always maps to the
    same inode once it has been seen. Nodes are never removed: the table lives as long
    as the mount and is only expected to grow as large as the number of documents.

    The table is not thread-safe and relies on the caller to serialize mutations.
    """

    def __init__(self) -> None:
        """Instantiate an empty table, which must be seeded before use."""
        self._nodes: List[Node] = []
        self._uid_map: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def seed(self) -> None:
        """Create the invalid, root and trash nodes at their reserved inodes."""
        if len(self._nodes) > 0:
            raise RemarkableError("inode table has already been seeded")

        self._nodes.append(
            Node(
                inode=constants.INVALID_NODE_INO,
                remote_unique_id="",
                parent_inode=constants.INVALID_NODE_INO,
                descriptor_stat=RemoteStat(path=constants.INVALID_NODE_NAME),
                kind=NodeKind.INVALID,
            )
        )

        self._nodes.append(
            Node(
                inode=constants.ROOT_NODE_INO,
                remote_unique_id=constants.ROOT_NODE_UID,
                parent_inode=constants.ROOT_NODE_INO,
                descriptor_stat=RemoteStat.special(constants.ROOT_NODE_UID),
                kind=NodeKind.ROOT,
            )
        )
        self._uid_map[constants.ROOT_NODE_UID] = constants.ROOT_NODE_INO

        self._nodes.append(
            Node(
                inode=constants.TRASH_NODE_INO,
                remote_unique_id=constants.TRASH_NODE_UID,
                parent_inode=constants.ROOT_NODE_INO,
                descriptor_stat=RemoteStat.special(constants.TRASH_NODE_UID),
                kind=NodeKind.TRASH,
            )
        )
        self._uid_map[constants.TRASH_NODE_UID] = constants.TRASH_NODE_INO

    def get(self, inode: int) -> Node:
        """Retrieve the node with the given inode."""
        if constants.INVALID_NODE_INO < inode < len(self._nodes):
            return self._nodes[inode]

        raise NodeNotFound(inode)

    def inode_of(self, remote_unique_id: str) -> Optional[int]:
        """Return the inode a remote id is mapped to, if it is known."""
        return self._uid_map.get(remote_unique_id)

    def allocate_or_touch(
        self, remote_unique_id: str, parent_inode: int, remote_stat: RemoteStat
    ) -> Tuple[int, bool]:
        """
        Resolve the inode of a remote id, allocating a new one if it is unknown.

        Returns the inode and whether the node has to be (re)fetched. Newly allocated
        nodes always have to be fetched.
        """
        inode = self._uid_map.get(remote_unique_id)

        if inode is not None:
            needs_refresh = self._nodes[inode].needs_refresh(remote_stat)

            if not needs_refresh:
                log.debug(f"node {remote_unique_id} is unchanged: {inode}")

            return inode, needs_refresh

        inode = len(self._nodes)

        self._nodes.append(
            Node(
                inode=inode,
                remote_unique_id=remote_unique_id,
                parent_inode=parent_inode,
                descriptor_stat=remote_stat,
            )
        )
        self._uid_map[remote_unique_id] = inode

        log.debug(f"allocated node {inode} for {remote_unique_id}")

        return inode, True

    def resolve_child(self, parent_inode: int, name: str) -> Optional[int]:
        """Find a child of a directory by its display name in the cached listing."""
        if parent_inode == constants.ROOT_NODE_INO and name == constants.TRASH_NODE_PATH:
            return constants.TRASH_NODE_INO

        parent = self.get(parent_inode)

        for entry in parent.children:
            if entry.name == name:
                return entry.inode

        log.debug(f"{name} not found in {parent_inode}")

        return None

    #
    # Mutators
    #

    def set_metadata(
        self, inode: int, metadata: MetadataRecord, stat: RemoteStat, parent_inode: int
    ) -> None:
        self.get(inode).set_metadata(metadata, stat, parent_inode)

    def set_content(self, inode: int, content: ContentRecord) -> None:
        self.get(inode).set_content(content)

    def set_remote_stat(self, inode: int, stat: RemoteStat) -> None:
        self.get(inode).set_remote_stat(stat)

    def set_children(self, inode: int, children: List[DirEntry]) -> None:
        self.get(inode).set_children(children)

    def open(self, inode: int) -> int:
        return self.get(inode).open()

    def close(self, inode: int) -> int:
        return self.get(inode).close()
