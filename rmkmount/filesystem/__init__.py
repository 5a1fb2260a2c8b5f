"""
Modules that present the documents of the tablet as a file system.

The tablet doesn't store its documents as a directory tree. Every document and folder
(a "collection") is a set of files named after a unique id in one flat directory:

* <id>.metadata: JSON descriptor with the visible name, type and parent id.
* <id>.content: JSON record with the file type of a document.
* <id>.pdf or <id>.epub: the document itself, if it was imported from such a file.

The file system reconstructs the tree from the parent ids on demand. Directories are
only searched once they are listed and nodes are only fetched again once their
descriptor has been modified, which keeps the number of remote requests low since every
one of them is a round trip over SSH.

Documents that were created on the tablet itself (notebooks) have no single file that
represents them, so they show up as empty files.
"""

from .filesystem import RemarkableFileSystem
from .nodes import DirEntry, InodeTable, Node, NodeKind
from .tree import TreeMaterializer

__all__ = [
    "DirEntry",
    "InodeTable",
    "Node",
    "NodeKind",
    "RemarkableFileSystem",
    "TreeMaterializer",
]
