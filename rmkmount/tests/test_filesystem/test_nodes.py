import errno
from unittest import mock

import pytest

import rmkmount.constants as constants
from rmkmount.errors import HandleMisuse, NodeNotFound, RemarkableError
from rmkmount.filesystem.nodes import MAX_HANDLES, DirEntry, InodeTable, NodeKind
from rmkmount.filesystem.records import (
    ContentRecord,
    FileKind,
    MetadataRecord,
    NodeType,
)
from rmkmount.remote import RemoteStat


def metadata(name="Notes", node_type=NodeType.DOCUMENT, parent=""):
    return MetadataRecord(
        visible_name=name, node_type=node_type, parent=parent, last_modified=0
    )


def descriptor_stat(uid, mtime=100, size=300):
    return RemoteStat(path=f"/docs/{uid}.metadata", size=size, mtime=mtime)


@pytest.fixture
def table():
    table = InodeTable()
    table.seed()
    return table


def test_seed(table):
    assert len(table) == 3

    root = table.get(constants.ROOT_NODE_INO)
    assert root.kind == NodeKind.ROOT
    assert root.remote_unique_id == ""
    assert root.is_directory

    trash = table.get(constants.TRASH_NODE_INO)
    assert trash.kind == NodeKind.TRASH
    assert trash.parent_inode == constants.ROOT_NODE_INO
    assert trash.name == ".Trash"

    assert table.inode_of(constants.ROOT_NODE_UID) == constants.ROOT_NODE_INO
    assert table.inode_of(constants.TRASH_NODE_UID) == constants.TRASH_NODE_INO


def test_seed_twice(table):
    with pytest.raises(RemarkableError):
        table.seed()


def test_get_invalid(table):
    for inode in (-1, constants.INVALID_NODE_INO, len(table), 1000):
        with pytest.raises(NodeNotFound) as e:
            table.get(inode)

        assert e.value.inode == inode


def test_allocate_is_monotonic(table):
    inodes = []

    for uid in ("a", "b", "c"):
        length = len(table)
        inode, needs_refresh = table.allocate_or_touch(
            uid, constants.ROOT_NODE_INO, descriptor_stat(uid)
        )

        assert inode == length
        assert needs_refresh
        inodes.append(inode)

    assert inodes == [3, 4, 5]
    assert len(table) == 6


def test_touch_unchanged(table):
    inode, _ = table.allocate_or_touch("a", 1, descriptor_stat("a"))
    table.set_metadata(inode, metadata(), descriptor_stat("a"), 1)

    assert table.allocate_or_touch("a", 1, descriptor_stat("a")) == (inode, False)
    assert table.allocate_or_touch("a", 1, descriptor_stat("a", 99)) == (inode, False)
    assert len(table) == 4


def test_touch_without_metadata_needs_refresh(table):
    inode, _ = table.allocate_or_touch("a", 1, descriptor_stat("a"))

    assert table.allocate_or_touch("a", 1, descriptor_stat("a")) == (inode, True)


def test_touch_modified(table):
    inode, _ = table.allocate_or_touch("a", 1, descriptor_stat("a", 100))
    table.set_metadata(inode, metadata(), descriptor_stat("a", 100), 1)

    assert table.allocate_or_touch("a", 1, descriptor_stat("a", 101)) == (inode, True)
    assert table.inode_of("a") == inode


def test_special_nodes_never_refresh(table):
    st = RemoteStat(path="", mtime=2 ** 40)

    assert table.allocate_or_touch("", 1, st) == (constants.ROOT_NODE_INO, False)
    assert table.allocate_or_touch(".Trash", 1, st) == (constants.TRASH_NODE_INO, False)


def test_resolve_child(table):
    inode, _ = table.allocate_or_touch("a", 1, descriptor_stat("a"))
    table.set_children(1, [DirEntry(inode, 0, False, "Notes.pdf")])

    assert table.resolve_child(1, "Notes.pdf") == inode
    assert table.resolve_child(1, "Notes") is None
    assert table.resolve_child(1, ".Trash") == constants.TRASH_NODE_INO


def test_resolve_child_invalid_parent(table):
    with pytest.raises(NodeNotFound):
        table.resolve_child(99, "Notes")

    with pytest.raises(NodeNotFound):
        table.resolve_child(constants.INVALID_NODE_INO, "Notes")


def test_set_metadata_sets_kind(table):
    doc, _ = table.allocate_or_touch("a", 1, descriptor_stat("a"))
    table.set_metadata(doc, metadata(), descriptor_stat("a"), 1)

    col, _ = table.allocate_or_touch("b", 1, descriptor_stat("b"))
    table.set_metadata(
        col, metadata("Books", NodeType.COLLECTION), descriptor_stat("b"), 1
    )

    assert table.get(doc).kind == NodeKind.DOCUMENT
    assert not table.get(doc).is_directory
    assert table.get(col).kind == NodeKind.COLLECTION
    assert table.get(col).is_directory


def test_set_metadata_resets_content(table):
    inode, _ = table.allocate_or_touch("a", 1, descriptor_stat("a"))
    table.set_metadata(inode, metadata(), descriptor_stat("a"), 1)
    table.set_content(inode, ContentRecord(file_kind=FileKind.PDF))
    table.set_remote_stat(inode, RemoteStat(path="/docs/a.pdf", size=4096))

    table.set_metadata(inode, metadata(), descriptor_stat("a", 200), 1)

    node = table.get(inode)
    assert node.content is None
    assert node.target_stat is None
    assert node.descriptor_stat.mtime == 200


def test_name_and_size(table):
    inode, _ = table.allocate_or_touch("a", 1, descriptor_stat("a", size=300))
    node = table.get(inode)

    assert node.name == constants.INVALID_NODE_NAME

    table.set_metadata(inode, metadata(), descriptor_stat("a", size=300), 1)
    assert node.name == "Notes"
    assert node.size == 0

    table.set_content(inode, ContentRecord(file_kind=FileKind.PDF))
    table.set_remote_stat(inode, RemoteStat(path="/docs/a.pdf", size=4096))

    assert node.name == "Notes.pdf"
    assert node.size == 4096
    assert node.remote_stat.path == "/docs/a.pdf"
    assert node.target_path("/docs/") == "/docs/a.pdf"
    assert node.content_path("/docs/") == "/docs/a.content"

    # Staleness is still judged by the descriptor
    assert node.descriptor_stat.size == 300


def test_notebook_is_empty(table):
    inode, _ = table.allocate_or_touch("a", 1, descriptor_stat("a"))
    table.set_metadata(inode, metadata(), descriptor_stat("a"), 1)
    table.set_content(inode, ContentRecord(file_kind=FileKind.NOTEBOOK))

    node = table.get(inode)

    assert node.name == "Notes"
    assert node.size == 0
    assert node.target_path("/docs/") is None


def test_collection_size(table):
    inode, _ = table.allocate_or_touch("a", 1, descriptor_stat("a", size=300))
    table.set_metadata(
        inode, metadata("Books", NodeType.COLLECTION), descriptor_stat("a", size=300), 1
    )

    assert table.get(inode).size == 300


def test_set_children_replaces(table):
    table.set_children(1, [DirEntry(2, 0, True, ".Trash"), DirEntry(3, 1, True, "A")])
    table.set_children(1, [DirEntry(2, 0, True, ".Trash")])

    root = table.get(1)
    assert root.listed
    assert root.children == [DirEntry(2, 0, True, ".Trash")]


def test_open_close(table):
    assert table.open(1) == 1
    assert table.open(1) == 2
    assert table.close(1) == 1
    assert table.close(1) == 0

    with pytest.raises(HandleMisuse) as e:
        table.close(1)

    assert e.value.errno == errno.EINVAL
    assert table.get(1).open_handles == 0


def test_open_overflow(table):
    node = table.get(1)
    node.open_handles = MAX_HANDLES

    with pytest.raises(HandleMisuse) as e:
        table.open(1)

    assert e.value.errno == errno.EACCES
    assert node.open_handles == MAX_HANDLES


def test_open_invalid(table):
    with pytest.raises(NodeNotFound):
        table.open(50)

    with pytest.raises(NodeNotFound):
        table.close(50)


def test_unchanged_node_is_logged(table):
    inode, _ = table.allocate_or_touch("a", 1, descriptor_stat("a"))
    table.set_metadata(inode, metadata(), descriptor_stat("a"), 1)

    with mock.patch("rmkmount.filesystem.nodes.log") as mock_log:
        table.allocate_or_touch("a", 1, descriptor_stat("a"))

    assert "unchanged" in mock_log.debug.call_args[0][0]
