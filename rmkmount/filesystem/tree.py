"""Module that reconstructs the directory tree from the flat set of remote descriptors."""

import posixpath
from typing import List

import rmkmount.constants as constants
from rmkmount.errors import DecodeError, TransportError
from rmkmount.filesystem.nodes import DirEntry, InodeTable, Node, NodeKind
from rmkmount.filesystem.records import decode_content, decode_descriptor
from rmkmount.logger import log, summarize
from rmkmount.remote import RemoteStat, SshSession


class TreeMaterializer:
    """
    Class that lazily materializes the directory tree into the inode table.

    The tablet stores all descriptors in one flat directory and every descriptor names
    its parent by id. A directory's children are therefore found by searching for the
    descriptors that reference it, which is done every time the directory is listed from
    the start. Listings at later offsets are served from that result, so a paginated
    listing sees a consistent set of entries.

    Children are fetched only when they are new or their descriptor has been modified
    since they were last fetched. Entries that fail to be fetched are left out of the
    listing rather than failing it, and will be retried on the next listing.
    """

    def __init__(self, table: InodeTable, session: SshSession, document_root: str):
        """Instantiate a materializer that fills the table from the session."""
        self._table = table
        self._session = session
        self._document_root = document_root

    def list_directory(self, dir_inode: int, offset: int) -> List[DirEntry]:
        """
        List a directory starting at the given offset.

        Listing from offset 0 synchronizes the directory with the tablet first.
        """
        directory = self._table.get(dir_inode)

        if offset == 0:
            self._synchronize(directory)

        return directory.children[offset:]

    def _synchronize(self, directory: Node) -> None:
        """Replace the directory's listing with the children found on the tablet."""
        entries: List[DirEntry] = []

        if directory.kind == NodeKind.TRASH:
            # Deleted documents are not exposed.
            self._table.set_children(directory.inode, entries)
            return

        if directory.kind == NodeKind.ROOT:
            trash = self._table.get(constants.TRASH_NODE_INO)
            entries.append(DirEntry(trash.inode, 0, True, trash.name))

        candidates = self._session.find_descriptors_by_parent(
            self._document_root, directory.remote_unique_id
        )

        for descriptor_stat in candidates:
            try:
                node = self._add_or_update_node(directory.inode, descriptor_stat)
            except (DecodeError, TransportError) as e:
                log.warning(f"dropping {descriptor_stat.path} from listing: {e}")
                continue

            name = node.name

            if "/" in name:
                log.warning(f"name of {descriptor_stat.path} can't be resolved: {name}")
            elif any(entry.name == name for entry in entries):
                log.warning(f"name of {descriptor_stat.path} is shadowed: {name}")

            entries.append(DirEntry(node.inode, len(entries), node.is_directory, name))

        log.debug(f"listing of {directory.inode} has {len(entries)} entries")

        self._table.set_children(directory.inode, entries)

    def _add_or_update_node(self, parent_inode: int, descriptor_stat: RemoteStat) -> Node:
        """Resolve the node of a descriptor and fetch it if it is new or stale."""
        inode, needs_refresh = self._table.allocate_or_touch(
            descriptor_stat.unique_id, parent_inode, descriptor_stat
        )
        node = self._table.get(inode)

        if needs_refresh:
            log.info(f"refreshing node {inode}: {descriptor_stat}")
            self._fetch(node, parent_inode, descriptor_stat)

        return node

    def _fetch(self, node: Node, parent_inode: int, descriptor_stat: RemoteStat) -> None:
        """
        Fetch the descriptor of a node, and the content and target of a document.

        The node is only updated once everything has been fetched, so that a failure
        leaves it in a state where it will be fetched again on the next listing.
        """
        metadata = decode_descriptor(self._session.read_text(descriptor_stat.path))
        log.debug(f"decoded descriptor of {node.inode}: {summarize(metadata)}")

        content = None
        target_stat = None

        if metadata.is_document:
            content_path = node.content_path(self._document_root)
            log.info(f"adding content for node {node.inode}: {content_path}")

            content = decode_content(self._session.read_text(content_path))

            if content.extension:
                target_path = posixpath.join(
                    self._document_root,
                    f"{descriptor_stat.unique_id}.{content.extension}",
                )

                log.debug(f"stat target for size: {target_path}")
                target_stat = self._session.stat(target_path)

        self._table.set_metadata(node.inode, metadata, descriptor_stat, parent_inode)

        if content is not None:
            self._table.set_content(node.inode, content)

        if target_stat is not None:
            self._table.set_remote_stat(node.inode, target_stat)
